"""Chain clients."""
from .cosmwasm import CosmWasmClient

__all__ = ["CosmWasmClient"]
