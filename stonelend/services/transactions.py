"""Optimistic transaction tracking and reconciliation with the indexer."""
from __future__ import annotations

import dataclasses
import logging
import time
from typing import Callable, Sequence

from ..config import TransactionsConfig
from ..errors import BroadcastRejected, BroadcastTimeout, IndexerUnavailable
from ..interfaces.indexer import TransactionIndexer
from ..interfaces.signer import SigningClient
from ..models import (
    Action,
    IndexedTransaction,
    InstructionBatch,
    PendingTransaction,
    TimelineEntry,
    TxStatus,
)

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class TransactionLedger:
    """Locally originated transactions, newest first.

    Every change replaces ``entries`` with a new tuple, so callers can
    detect changes by identity.
    """

    def __init__(self, clock: Callable[[], int] = _now_ms, max_entries: int = 50) -> None:
        self._clock = clock
        self._max_entries = max_entries
        self._counter = 0
        self._entries: tuple[PendingTransaction, ...] = ()

    @property
    def entries(self) -> tuple[PendingTransaction, ...]:
        return self._entries

    @property
    def pending_count(self) -> int:
        return sum(1 for e in self._entries if e.status is TxStatus.PENDING)

    def now_ms(self) -> int:
        return self._clock()

    def get(self, tx_id: str) -> PendingTransaction | None:
        for entry in self._entries:
            if entry.id == tx_id:
                return entry
        return None

    def add_pending(self, action: Action, amount: str, denom: str, market_address: str) -> str:
        now = self._clock()
        self._counter += 1
        tx_id = f"tx-{now}-{self._counter}"
        entry = PendingTransaction(
            id=tx_id,
            action=action,
            amount=amount,
            denom=denom,
            market_address=market_address,
            status=TxStatus.PENDING,
            timestamp_ms=now,
        )
        self._entries = ((entry,) + self._entries)[: self._max_entries]
        return tx_id

    def _update(self, tx_id: str, **changes) -> None:
        updated = []
        found = False
        for entry in self._entries:
            if entry.id == tx_id:
                entry = dataclasses.replace(entry, **changes)
                found = True
            updated.append(entry)
        if not found:
            logger.debug("Transaction %s not in ledger, ignoring update", tx_id)
            return
        self._entries = tuple(updated)

    def mark_completed(self, tx_id: str, tx_hash: str) -> None:
        self._update(tx_id, status=TxStatus.COMPLETED, tx_hash=tx_hash, error=None)

    def mark_failed(self, tx_id: str, error: str) -> None:
        # A failed broadcast never changed chain state, so it keeps no hash.
        self._update(tx_id, status=TxStatus.FAILED, error=error, tx_hash=None)

    def mark_timed_out(self, tx_id: str, error: str, tx_hash: str | None = None) -> None:
        self._update(tx_id, status=TxStatus.TIMED_OUT, error=error, tx_hash=tx_hash)

    def clear_transaction(self, tx_id: str) -> None:
        remaining = tuple(e for e in self._entries if e.id != tx_id)
        if len(remaining) != len(self._entries):
            self._entries = remaining

    def clear_all_completed(self) -> None:
        """Drop completed and failed entries; unresolved ones stay."""
        keep = (TxStatus.PENDING, TxStatus.TIMED_OUT)
        remaining = tuple(e for e in self._entries if e.status in keep)
        if len(remaining) != len(self._entries):
            self._entries = remaining


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def _local_entry(tx: PendingTransaction) -> TimelineEntry:
    return TimelineEntry(
        id=tx.id,
        action=tx.action,
        amount=tx.amount,
        denom=tx.denom,
        status=tx.status.display,
        timestamp_ms=tx.timestamp_ms,
        tx_hash=tx.tx_hash,
        error=tx.error,
        source="local",
    )


def _indexed_entry(tx: IndexedTransaction) -> TimelineEntry:
    return TimelineEntry(
        id=tx.id,
        action=tx.action,
        amount=tx.amount,
        denom=tx.denom,
        status=TxStatus.COMPLETED.value,
        timestamp_ms=tx.timestamp_ms,
        tx_hash=tx.tx_hash,
        source="indexer",
    )


def merge_transactions(
    local: Sequence[PendingTransaction],
    indexed: Sequence[IndexedTransaction],
    limit: int = 20,
) -> list[TimelineEntry]:
    """Combined history, newest first, with each hash appearing once.

    A local entry that carries a hash wins over the indexer's copy of the
    same transaction.
    """
    local_hashes = {tx.tx_hash for tx in local if tx.tx_hash}
    remaining = [tx for tx in indexed if tx.tx_hash not in local_hashes]

    combined = [_local_entry(tx) for tx in local] + [_indexed_entry(tx) for tx in remaining]
    combined.sort(key=lambda entry: entry.timestamp_ms, reverse=True)
    return combined[: max(limit, 0)]


def _matches(entry: PendingTransaction, tx: IndexedTransaction) -> bool:
    if entry.tx_hash:
        return tx.tx_hash == entry.tx_hash
    return (
        tx.action is entry.action
        and tx.denom == entry.denom
        and tx.amount == entry.amount
        and tx.market_address == entry.market_address
        and tx.timestamp_ms >= entry.timestamp_ms
    )


def reconcile_timeouts(
    ledger: TransactionLedger,
    indexed: Sequence[IndexedTransaction],
    grace_ms: int,
) -> int:
    """Resolve timed-out entries against indexed history.

    A timed-out entry found in the index becomes completed with the
    indexed hash; one still missing after ``grace_ms`` becomes failed.
    Returns the number of entries resolved.
    """
    claimed = {tx.tx_hash for tx in ledger.entries if tx.tx_hash and tx.status is TxStatus.COMPLETED}
    now = ledger.now_ms()
    oldest_first = sorted(indexed, key=lambda tx: tx.timestamp_ms)
    resolved = 0

    # Oldest first, so the earliest submission claims the earliest match.
    for entry in reversed(ledger.entries):
        if entry.status is not TxStatus.TIMED_OUT:
            continue

        match = next(
            (tx for tx in oldest_first if tx.tx_hash not in claimed and _matches(entry, tx)),
            None,
        )
        if match is not None:
            claimed.add(match.tx_hash)
            ledger.mark_completed(entry.id, match.tx_hash)
            logger.info("Timed-out transaction %s confirmed by indexer (%s)", entry.id, match.tx_hash)
            resolved += 1
        elif now - entry.timestamp_ms >= grace_ms:
            ledger.mark_failed(entry.id, entry.error or "Transaction was not confirmed")
            logger.info("Timed-out transaction %s not indexed after %d ms, marking failed", entry.id, grace_ms)
            resolved += 1

    return resolved


# ---------------------------------------------------------------------------
# Reconciler
# ---------------------------------------------------------------------------


class TransactionReconciler:
    """Keeps the local ledger and the indexer's history in one timeline."""

    def __init__(
        self,
        ledger: TransactionLedger,
        indexer: TransactionIndexer | None,
        config: TransactionsConfig | None = None,
    ) -> None:
        self.ledger = ledger
        self._indexer = indexer
        self._config = config or TransactionsConfig()
        self._indexed: tuple[IndexedTransaction, ...] = ()
        self._memo: tuple[object, object, int, tuple[TimelineEntry, ...]] | None = None

    @property
    def indexed(self) -> tuple[IndexedTransaction, ...]:
        """Last indexed history successfully fetched."""
        return self._indexed

    def get_transaction_timeline(
        self,
        local: Sequence[PendingTransaction],
        indexed: Sequence[IndexedTransaction],
        limit: int | None = None,
    ) -> tuple[TimelineEntry, ...]:
        """Merged timeline; the same tuple is returned while inputs are unchanged."""
        limit = self._config.display_limit if limit is None else limit
        if self._memo is not None:
            memo_local, memo_indexed, memo_limit, merged = self._memo
            if memo_local is local and memo_indexed is indexed and memo_limit == limit:
                return merged

        merged = tuple(merge_transactions(local, indexed, limit))
        self._memo = (local, indexed, limit, merged)
        return merged

    def timeline(self, limit: int | None = None) -> tuple[TimelineEntry, ...]:
        return self.get_transaction_timeline(self.ledger.entries, self._indexed, limit)

    async def refresh(
        self, user_address: str, market_id: str | None = None
    ) -> tuple[IndexedTransaction, ...]:
        """Fetch indexed history for ``user_address`` and resolve timeouts.

        When the indexer is down the previous snapshot is kept.
        """
        if self._indexer is None:
            logger.debug("No indexer configured, timeline uses local entries only")
        else:
            try:
                fetched = await self._indexer.get_transactions(
                    user_address=user_address,
                    market_id=market_id,
                    limit=self._config.display_limit,
                )
                self._indexed = tuple(fetched)
            except IndexerUnavailable as e:
                logger.warning("Indexer unavailable, using local transactions only: %s", e)

        reconcile_timeouts(self.ledger, self._indexed, self._config.timeout_grace_ms)
        return self._indexed

    async def submit(
        self,
        bundler,
        signer: SigningClient,
        sender: str,
        batch: InstructionBatch,
        action: Action,
        amount: str,
        denom: str,
        market_address: str,
    ) -> PendingTransaction | None:
        """Track ``batch`` as pending, broadcast it and record the outcome.

        Broadcast errors are recorded on the entry and then re-raised.
        """
        tx_id = self.ledger.add_pending(action, amount, denom, market_address)
        try:
            result = await bundler.execute_batch(signer, sender, batch)
        except BroadcastTimeout as e:
            self.ledger.mark_timed_out(tx_id, str(e), e.tx_hash)
            logger.warning("Transaction %s timed out; waiting for the indexer", tx_id)
            raise
        except BroadcastRejected as e:
            self.ledger.mark_failed(tx_id, e.raw_log)
            logger.error("Transaction %s rejected: %s", tx_id, e.raw_log)
            raise

        self.ledger.mark_completed(tx_id, result.tx_hash)
        logger.info("Transaction %s completed: %s", tx_id, result.tx_hash)
        return self.ledger.get(tx_id)
