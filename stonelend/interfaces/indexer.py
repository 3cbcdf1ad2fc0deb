"""Indexer protocol — canonical transaction history."""
from typing import Protocol

from ..models import IndexedTransaction


class TransactionIndexer(Protocol):
    """Abstract interface for querying indexed transactions."""

    async def get_transactions(
        self,
        user_address: str | None = None,
        market_id: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[IndexedTransaction]: ...
