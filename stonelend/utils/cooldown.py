"""Per-address, per-denom cooldown tracking with an injected clock."""
from __future__ import annotations

import time
from typing import Callable


def _now_ms() -> int:
    return int(time.time() * 1000)


class CooldownStore:
    """Remembers when each (address, denom) last acted and enforces a cooldown.

    State lives for the process lifetime only. Pass ``clock`` (returning
    milliseconds) to make behaviour deterministic in tests.
    """

    def __init__(self, cooldown_ms: int, clock: Callable[[], int] = _now_ms) -> None:
        if cooldown_ms < 0:
            raise ValueError("cooldown_ms must be non-negative")
        self._cooldown_ms = cooldown_ms
        self._clock = clock
        self._last: dict[tuple[str, str], int] = {}

    def remaining_ms(self, address: str, denom: str) -> int:
        last = self._last.get((address, denom))
        if last is None:
            return 0
        return max(0, last + self._cooldown_ms - self._clock())

    def is_allowed(self, address: str, denom: str) -> bool:
        return self.remaining_ms(address, denom) == 0

    def record(self, address: str, denom: str) -> None:
        self._last[(address, denom)] = self._clock()

    def clear(self, address: str | None = None) -> None:
        """Forget one address, or everything when ``address`` is None."""
        if address is None:
            self._last.clear()
            return
        for key in [k for k in self._last if k[0] == address]:
            del self._last[key]
