"""GraphQL client for the lending indexer."""
from __future__ import annotations

import asyncio
import logging
import ssl
from datetime import datetime, timezone
from typing import Any

import aiohttp
import certifi

from ..config import IndexerConfig
from ..errors import IndexerUnavailable
from ..models import Action, IndexedTransaction

logger = logging.getLogger(__name__)

_COLLATERAL_ACTIONS = (Action.SUPPLY_COLLATERAL, Action.WITHDRAW_COLLATERAL)

GET_TRANSACTIONS = """
query GetTransactions(
  $limit: Int
  $offset: Int
  $marketId: ID
  $userAddress: String
) {
  transactions(
    limit: $limit
    offset: $offset
    marketId: $marketId
    userAddress: $userAddress
  ) {
    id
    txHash
    blockHeight
    timestamp
    userAddress
    action
    amount
    market {
      id
      marketAddress
      collateralDenom
      debtDenom
    }
  }
}
"""

GET_MARKETS = """
query GetMarkets($limit: Int, $offset: Int) {
  markets(limit: $limit, offset: $offset) {
    id
    marketAddress
    collateralDenom
    debtDenom
    loanToValue
    liquidationThreshold
    totalSupply
    totalDebt
    utilization
  }
}
"""


def parse_timestamp_ms(value: Any) -> int:
    """Indexer DateTime (ISO-8601 string or unix seconds/millis) → unix millis."""
    if isinstance(value, (int, float)):
        # Values below 1e12 are seconds.
        return int(value * 1000) if value < 1e12 else int(value)
    text = str(value).strip()
    if text.isdigit():
        return parse_timestamp_ms(int(text))
    parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


def parse_transaction(raw: dict[str, Any]) -> IndexedTransaction:
    """Convert one ``TransactionFields`` object into an IndexedTransaction."""
    market = raw.get("market") or {}
    action = Action.from_indexer(raw.get("action", ""))
    if action in _COLLATERAL_ACTIONS:
        denom = market.get("collateralDenom", "")
    else:
        denom = market.get("debtDenom") or market.get("collateralDenom", "")

    return IndexedTransaction(
        id=str(raw.get("id", "")),
        tx_hash=raw.get("txHash", ""),
        action=action,
        amount=str(raw.get("amount") or "0"),
        denom=denom,
        market_address=market.get("marketAddress", ""),
        block_height=int(raw.get("blockHeight", 0)),
        timestamp_ms=parse_timestamp_ms(raw.get("timestamp", 0)),
    )


class IndexerClient:
    """Query markets and transaction history from the indexer's GraphQL API."""

    def __init__(self, config: IndexerConfig) -> None:
        self.graphql_url = config.graphql_url
        self.timeout_ms = config.timeout_ms

    async def _query(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        if not self.graphql_url:
            raise IndexerUnavailable("No indexer URL configured")

        payload = {"query": query, "variables": variables}
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.post(
                    self.graphql_url,
                    json=payload,
                    timeout=aiohttp.ClientTimeout(total=self.timeout_ms / 1000),
                ) as response:
                    if response.status != 200:
                        raise IndexerUnavailable(f"Indexer HTTP {response.status}")
                    result = await response.json()
        except IndexerUnavailable:
            raise
        except asyncio.TimeoutError as e:
            raise IndexerUnavailable(f"Indexer timed out after {self.timeout_ms} ms") from e
        except Exception as e:
            raise IndexerUnavailable(f"Indexer request failed: {e}") from e

        if result.get("errors"):
            messages = ", ".join(err.get("message", "?") for err in result["errors"])
            raise IndexerUnavailable(f"GraphQL errors: {messages}")
        return result.get("data") or {}

    async def get_transactions(
        self,
        user_address: str | None = None,
        market_id: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[IndexedTransaction]:
        """Most recent transactions, optionally filtered by user and market."""
        variables: dict[str, Any] = {"limit": limit, "offset": offset}
        if user_address:
            variables["userAddress"] = user_address
        if market_id:
            variables["marketId"] = market_id

        data = await self._query(GET_TRANSACTIONS, variables)

        transactions: list[IndexedTransaction] = []
        for raw in data.get("transactions") or []:
            try:
                transactions.append(parse_transaction(raw))
            except (ValueError, TypeError) as e:
                logger.warning("Skipping malformed indexed transaction %s: %s", raw.get("id"), e)
        logger.debug("Indexer returned %d transactions", len(transactions))
        return transactions

    async def get_markets(self, limit: int = 100, offset: int = 0) -> list[dict[str, Any]]:
        data = await self._query(GET_MARKETS, {"limit": limit, "offset": offset})
        return list(data.get("markets") or [])
