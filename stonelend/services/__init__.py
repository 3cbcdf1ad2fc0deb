"""Service modules"""
from .bundler import PriceUpdateBundler, get_relevant_denoms, should_attempt_price_updates
from .lending import LendingService
from .transactions import TransactionLedger, TransactionReconciler, merge_transactions

__all__ = [
    "LendingService",
    "PriceUpdateBundler",
    "TransactionLedger",
    "TransactionReconciler",
    "get_relevant_denoms",
    "merge_transactions",
    "should_attempt_price_updates",
]
