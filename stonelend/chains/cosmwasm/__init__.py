"""CosmWasm chain client."""
from .client import CosmWasmClient

__all__ = ["CosmWasmClient"]
