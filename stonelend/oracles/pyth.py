"""Pyth Network (Hermes) price oracle client."""
from __future__ import annotations

import asyncio
import logging
import ssl
from decimal import Decimal, InvalidOperation
from typing import Any

import aiohttp
import certifi

from ..config import PythConfig
from ..errors import StaleOrMissingPrice
from ..models import PriceQuote, PriceUpdate
from .feeds import FeedRegistry, normalize_feed_id

logger = logging.getLogger(__name__)

LATEST_PATH = "/v2/updates/price/latest"


def parse_quote(item: dict[str, Any], denom: str) -> PriceQuote:
    """Build a quote from one ``parsed`` entry: price = price × 10^expo."""
    price_data = item.get("price", {})
    expo = int(price_data.get("expo", 0))
    return PriceQuote(
        denom=denom,
        price=Decimal(str(price_data.get("price", "0"))).scaleb(expo),
        confidence=Decimal(str(price_data.get("conf", "0"))).scaleb(expo),
        publish_time=int(price_data.get("publish_time", 0)),
        feed_id=normalize_feed_id(str(item.get("id", ""))),
    )


class PythOracle:
    """Fetch quotes and signed price updates from Pyth Hermes.

    One request is issued per denom so that a bad feed cannot take the
    others down with it.
    """

    def __init__(self, config: PythConfig, feeds: FeedRegistry | None = None) -> None:
        self.hermes_url = config.hermes_url.rstrip("/")
        self.timeout_ms = config.timeout_ms
        self.feeds = feeds or FeedRegistry(config.feeds)

    async def _get_latest(self, feed_id: str, denom: str) -> dict[str, Any]:
        """GET the latest update for one feed (base64-encoded binary payload)."""
        url = f"{self.hermes_url}{LATEST_PATH}?ids[]={feed_id}&encoding=base64"

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.get(
                    url,
                    headers={"Accept": "application/json"},
                    timeout=aiohttp.ClientTimeout(total=self.timeout_ms / 1000),
                ) as response:
                    if response.status != 200:
                        raise StaleOrMissingPrice(denom, f"Hermes HTTP {response.status}")
                    return await response.json()
        except StaleOrMissingPrice:
            raise
        except asyncio.TimeoutError as e:
            raise StaleOrMissingPrice(denom, f"timed out after {self.timeout_ms} ms") from e
        except Exception as e:
            raise StaleOrMissingPrice(denom, str(e)) from e

    def _require_feed(self, denom: str) -> str:
        feed_id = self.feeds.feed_id(denom)
        if not feed_id:
            raise StaleOrMissingPrice(denom, "no price feed configured")
        return feed_id

    def _quote_from(self, data: dict[str, Any], denom: str, feed_id: str) -> PriceQuote | None:
        for item in data.get("parsed") or []:
            if normalize_feed_id(str(item.get("id", ""))) == feed_id:
                try:
                    return parse_quote(item, denom)
                except (InvalidOperation, ValueError, TypeError, AttributeError) as e:
                    raise StaleOrMissingPrice(denom, f"malformed price entry: {e!r}") from e
        return None

    async def fetch_quote(self, denom: str) -> PriceQuote:
        feed_id = self._require_feed(denom)
        data = await self._get_latest(feed_id, denom)
        quote = self._quote_from(data, denom, feed_id)
        if quote is None:
            raise StaleOrMissingPrice(denom, "feed missing from Hermes response")
        return quote

    async def fetch_quotes(self, denoms: list[str]) -> dict[str, PriceQuote]:
        """Fetch quotes concurrently; denoms that fail are logged and left out."""
        unique = list(dict.fromkeys(denoms))
        results = await asyncio.gather(
            *(self.fetch_quote(denom) for denom in unique), return_exceptions=True
        )

        quotes: dict[str, PriceQuote] = {}
        for denom, result in zip(unique, results):
            if isinstance(result, StaleOrMissingPrice):
                logger.warning("Price unavailable for %s: %s", denom, result.reason)
                continue
            if isinstance(result, Exception):
                logger.warning("Price fetch failed for %s: %s", denom, result)
                continue
            if isinstance(result, BaseException):
                raise result
            quotes[denom] = result
            logger.debug("  %s: $%s (±%s)", denom, result.price, result.confidence)

        logger.info("Fetched %d/%d prices from Pyth", len(quotes), len(unique))
        return quotes

    async def fetch_update(self, denom: str) -> PriceUpdate:
        """Signed update payload for one denom, ready for ``update_price_feeds``."""
        feed_id = self._require_feed(denom)
        data = await self._get_latest(feed_id, denom)

        binary = (data.get("binary") or {}).get("data") or []
        if not binary:
            raise StaleOrMissingPrice(denom, "no price update data received")

        return PriceUpdate(
            denom=denom,
            feed_id=feed_id,
            data=tuple(binary),
            quote=self._quote_from(data, denom, feed_id),
        )
