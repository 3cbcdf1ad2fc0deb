"""In-memory quote cache used to skip unnecessary price updates."""
from __future__ import annotations

import time
from typing import Callable, Iterable

from ..models import PriceQuote


def _now_ms() -> int:
    return int(time.time() * 1000)


class PriceCache:
    """Latest known quote per denom.

    Polling refreshes and post-transaction refreshes may race; whichever
    read completes last wins. Callers that gate a transaction on a price
    must ask for a ``fresh`` quote rather than trusting ``get``.
    """

    def __init__(self, clock: Callable[[], int] = _now_ms) -> None:
        self._clock = clock
        self._quotes: dict[str, PriceQuote] = {}

    def now_ms(self) -> int:
        return self._clock()

    def put(self, quote: PriceQuote) -> None:
        self._quotes[quote.denom] = quote

    def put_many(self, quotes: Iterable[PriceQuote]) -> None:
        for quote in quotes:
            self.put(quote)

    def get(self, denom: str) -> PriceQuote | None:
        return self._quotes.get(denom)

    def fresh(self, denom: str, budget_ms: int) -> PriceQuote | None:
        """Cached quote if it was published within ``budget_ms``, else None."""
        quote = self._quotes.get(denom)
        if quote is None or not quote.is_fresh(self._clock(), budget_ms):
            return None
        return quote

    def prices(self) -> dict[str, PriceQuote]:
        return dict(self._quotes)
