"""CosmWasm LCD client with endpoint fallback."""
from __future__ import annotations

import base64
import json
import logging
import ssl
from typing import Any

import aiohttp
import certifi

from ...config import ChainConfig
from ...errors import ChainQueryError
from ...models import Market, Position
from ...utils.format import parse_decimal

logger = logging.getLogger(__name__)

SMART_QUERY_PATH = "/cosmwasm/wasm/v1/contract/{address}/smart/{query}"


def encode_query(query: dict[str, Any]) -> str:
    """Base64 (URL-safe) JSON encoding used by the LCD smart-query route."""
    raw = json.dumps(query, separators=(",", ":")).encode()
    return base64.urlsafe_b64encode(raw).decode()


class CosmWasmClient:
    """Read-only smart-contract queries with automatic endpoint fallback."""

    def __init__(self, config: ChainConfig) -> None:
        self.endpoints = [e.rstrip("/") for e in config.lcd_endpoints]
        self.timeout_ms = config.timeout_ms
        self.current_index = 0

    async def query_smart(self, contract: str, query: dict[str, Any]) -> dict[str, Any]:
        """Run a smart query, trying each endpoint once starting from the current one."""
        if not self.endpoints:
            raise ChainQueryError("No LCD endpoints configured")

        path = SMART_QUERY_PATH.format(address=contract, query=encode_query(query))
        ssl_context = ssl.create_default_context(cafile=certifi.where())

        last_error: Exception | None = None
        for attempt in range(len(self.endpoints)):
            index = (self.current_index + attempt) % len(self.endpoints)
            url = f"{self.endpoints[index]}{path}"

            try:
                connector = aiohttp.TCPConnector(ssl=ssl_context)
                async with aiohttp.ClientSession(connector=connector) as session:
                    async with session.get(
                        url,
                        timeout=aiohttp.ClientTimeout(total=self.timeout_ms / 1000),
                    ) as response:
                        result = await response.json()
                        if response.status != 200:
                            message = result.get("message") if isinstance(result, dict) else result
                            raise ChainQueryError(
                                f"LCD error {response.status}: {message}"
                            )

                        if index != self.current_index:
                            logger.info("Switched to LCD endpoint: %s", self.endpoints[index])
                            self.current_index = index

                        return result.get("data", {})
            except Exception as e:
                last_error = e
                logger.warning("LCD endpoint %s failed: %s", self.endpoints[index], e)
                if attempt < len(self.endpoints) - 1:
                    logger.info("Trying next endpoint...")
                continue

        raise ChainQueryError(f"All LCD endpoints failed. Last error: {last_error}")

    async def get_user_position(self, market_address: str, user: str) -> Position:
        """Fetch the user's collateral, supply and debt amounts in a market."""
        data = await self.query_smart(market_address, {"user_position": {"user": user}})
        return Position(
            collateral_amount=str(data.get("collateral_amount", "0")),
            supply_amount=str(data.get("supply_amount", "0")),
            debt_amount=str(data.get("debt_amount", "0")),
        )

    async def get_market(self, market_address: str) -> Market:
        """Fetch config, params and state of a market contract."""
        config = await self.query_smart(market_address, {"config": {}})
        params = await self.query_smart(market_address, {"params": {}})
        state = await self.query_smart(market_address, {"state": {}})

        return Market(
            address=market_address,
            collateral_denom=config.get("collateral_denom", ""),
            debt_denom=config.get("debt_denom", ""),
            liquidation_threshold=parse_decimal(params.get("liquidation_threshold")),
            loan_to_value=parse_decimal(
                params.get("loan_to_value", params.get("max_ltv"))
            ),
            total_supplied=str(state.get("total_supply", state.get("total_supply_scaled", "0"))),
            total_borrowed=str(state.get("total_debt", state.get("total_debt_scaled", "0"))),
            utilization=parse_decimal(state.get("utilization")),
        )
