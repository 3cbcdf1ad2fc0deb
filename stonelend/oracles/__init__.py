"""Price oracle clients."""
from .cache import PriceCache
from .feeds import FeedRegistry
from .pyth import PythOracle

__all__ = ["FeedRegistry", "PriceCache", "PythOracle"]
