"""Price oracle protocol — price feed abstraction."""
from typing import Protocol

from ..models import PriceQuote, PriceUpdate


class PriceOracle(Protocol):
    """Abstract interface for fetching quotes and signed price updates."""

    async def fetch_quotes(self, denoms: list[str]) -> dict[str, PriceQuote]: ...

    async def fetch_update(self, denom: str) -> PriceUpdate: ...
