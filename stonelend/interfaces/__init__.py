"""Protocol interfaces for the lending client core."""
from .chain import ChainClient
from .indexer import TransactionIndexer
from .price_oracle import PriceOracle
from .signer import SigningClient

__all__ = ["ChainClient", "PriceOracle", "SigningClient", "TransactionIndexer"]
