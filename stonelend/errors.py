"""Error kinds raised by the risk/oracle core and its network clients."""
from __future__ import annotations


class StoneError(Exception):
    """Base class for every error raised by stonelend."""


class InvalidAmount(StoneError):
    """Amount is non-numeric, negative or zero; rejected before any network call."""

    def __init__(self, amount: object) -> None:
        self.amount = amount
        super().__init__(f"Invalid amount: {amount!r}")


class StaleOrMissingPrice(StoneError):
    """No quote within the freshness budget could be obtained for a denom."""

    def __init__(self, denom: str, reason: str = "") -> None:
        self.denom = denom
        self.reason = reason
        message = f"No fresh price for {denom}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class BroadcastRejected(StoneError):
    """The chain (or the signer) rejected the instruction.

    ``raw_log`` is surfaced verbatim to the user.
    """

    def __init__(self, raw_log: str, code: int | None = None, tx_hash: str | None = None) -> None:
        self.raw_log = raw_log
        self.code = code
        self.tx_hash = tx_hash
        super().__init__(raw_log)


class BroadcastTimeout(StoneError):
    """No confirmation arrived within the bound; the true outcome is unknown."""

    def __init__(self, timeout_ms: int, tx_hash: str | None = None) -> None:
        self.timeout_ms = timeout_ms
        self.tx_hash = tx_hash
        super().__init__(f"Broadcast not confirmed within {timeout_ms} ms")


class IndexerUnavailable(StoneError):
    """The indexer could not be queried; callers degrade to local data."""


class ChainQueryError(StoneError):
    """Every configured chain endpoint failed for a read query."""
