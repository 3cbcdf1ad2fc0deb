"""Chain client protocol — read-only contract queries."""
from typing import Any, Protocol

from ..models import Market, Position


class ChainClient(Protocol):
    """Abstract interface for chain reads."""

    async def query_smart(self, contract: str, query: dict[str, Any]) -> dict[str, Any]: ...

    async def get_market(self, market_address: str) -> Market: ...

    async def get_user_position(self, market_address: str, user: str) -> Position: ...
