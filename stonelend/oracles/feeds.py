"""Denom → Pyth feed ID registry."""
from __future__ import annotations

from typing import Iterable, Mapping


def normalize_feed_id(feed_id: str) -> str:
    """Lower-case feed ID without the ``0x`` prefix."""
    return feed_id.strip().lower().removeprefix("0x")


class FeedRegistry:
    """Maps chain denoms to Pyth price feed IDs and back."""

    def __init__(self, feeds: Mapping[str, str]) -> None:
        self._by_denom = {
            denom: normalize_feed_id(feed_id) for denom, feed_id in feeds.items() if feed_id
        }
        self._by_feed = {feed_id: denom for denom, feed_id in self._by_denom.items()}

    def feed_id(self, denom: str) -> str | None:
        return self._by_denom.get(denom)

    def denom_for(self, feed_id: str) -> str | None:
        return self._by_feed.get(normalize_feed_id(feed_id))

    def feed_ids_for(self, denoms: Iterable[str]) -> list[str]:
        """Unique feed IDs for the denoms that have one, in input order."""
        seen: list[str] = []
        for denom in denoms:
            feed_id = self._by_denom.get(denom)
            if feed_id and feed_id not in seen:
                seen.append(feed_id)
        return seen

    def has_feeds(self, denoms: Iterable[str]) -> bool:
        return bool(self.feed_ids_for(denoms))
