"""Lending service — wires chain reads, prices, bundling and history together."""
from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

from ..chains.cosmwasm import CosmWasmClient
from ..config import AppConfig, MarketConfig
from ..errors import ChainQueryError
from ..indexer import IndexerClient
from ..interfaces.chain import ChainClient
from ..interfaces.indexer import TransactionIndexer
from ..interfaces.price_oracle import PriceOracle
from ..interfaces.signer import SigningClient
from ..models import (
    Action,
    IndexedTransaction,
    InstructionBatch,
    Market,
    PendingTransaction,
    Position,
    PriceQuote,
    RiskSnapshot,
    TimelineEntry,
)
from ..oracles import PriceCache, PythOracle
from ..risk.calculator import get_risk_snapshot
from .bundler import PriceUpdateBundler, get_relevant_denoms
from .transactions import TransactionLedger, TransactionReconciler

logger = logging.getLogger(__name__)


def market_from_config(cfg: MarketConfig) -> Market:
    return Market(
        address=cfg.address,
        collateral_denom=cfg.collateral_denom,
        debt_denom=cfg.debt_denom,
        liquidation_threshold=cfg.liquidation_threshold,
        loan_to_value=cfg.loan_to_value,
        market_id=cfg.market_id,
    )


class LendingService:
    """Entry point for the display layer and the CLI."""

    def __init__(
        self,
        config: AppConfig,
        chain: ChainClient | None = None,
        oracle: PriceOracle | None = None,
        indexer: TransactionIndexer | None = None,
        cache: PriceCache | None = None,
        ledger: TransactionLedger | None = None,
    ) -> None:
        self._config = config
        self._chain: ChainClient = chain or CosmWasmClient(config.chain)
        self._oracle: PriceOracle = oracle or PythOracle(config.pyth)
        if indexer is None and config.indexer.graphql_url:
            indexer = IndexerClient(config.indexer)
        self.cache = cache or PriceCache()
        self.ledger = ledger or TransactionLedger(
            clock=self.cache.now_ms,
            max_entries=config.transactions.max_local_entries,
        )
        self.bundler = PriceUpdateBundler(
            self._oracle,
            self.cache,
            config.pyth,
            config.transactions,
            allow_multi_instruction=config.chain.supports_multi_instruction,
        )
        self.reconciler = TransactionReconciler(self.ledger, indexer, config.transactions)

    # ------------------------------------------------------------------
    # Pure operations
    # ------------------------------------------------------------------

    def get_risk_snapshot(
        self, position: Position, market: Market, prices: Mapping[str, Any]
    ) -> RiskSnapshot:
        return get_risk_snapshot(position, market, prices, self._config.risk.dust_threshold)

    async def prepare_transaction(
        self,
        action: Action,
        market: Market,
        amount: Any,
        sender: str,
        borrower: str | None = None,
    ) -> InstructionBatch:
        return await self.bundler.prepare_transaction(action, market, amount, sender, borrower)

    def get_transaction_timeline(
        self,
        local: Sequence[PendingTransaction],
        indexed: Sequence[IndexedTransaction],
        limit: int | None = None,
    ) -> tuple[TimelineEntry, ...]:
        return self.reconciler.get_transaction_timeline(local, indexed, limit)

    # ------------------------------------------------------------------
    # I/O helpers
    # ------------------------------------------------------------------

    def configured_market(self, name: str) -> Market:
        try:
            return market_from_config(self._config.markets[name])
        except KeyError:
            known = ", ".join(sorted(self._config.markets)) or "none"
            raise KeyError(f"Unknown market '{name}' (configured: {known})") from None

    async def load_market(self, name: str) -> Market:
        """Configured market, with parameters and totals read from chain when reachable."""
        configured = self.configured_market(name)
        try:
            on_chain = await self._chain.get_market(configured.address)
        except ChainQueryError as e:
            logger.warning("Using configured parameters for %s: %s", name, e)
            return configured

        return Market(
            address=configured.address,
            collateral_denom=on_chain.collateral_denom or configured.collateral_denom,
            debt_denom=on_chain.debt_denom or configured.debt_denom,
            liquidation_threshold=on_chain.liquidation_threshold or configured.liquidation_threshold,
            loan_to_value=on_chain.loan_to_value or configured.loan_to_value,
            total_supplied=on_chain.total_supplied,
            total_borrowed=on_chain.total_borrowed,
            utilization=on_chain.utilization,
            market_id=configured.market_id,
        )

    async def refresh_prices(self, denoms: Sequence[str]) -> dict[str, PriceQuote]:
        """Fetch quotes for ``denoms`` and store them in the cache."""
        quotes = await self._oracle.fetch_quotes(list(denoms))
        self.cache.put_many(quotes.values())
        return quotes

    async def load_snapshot(self, market: Market, user: str) -> tuple[Position, RiskSnapshot]:
        """Read the position and both prices fresh, then compute risk.

        Cached prices are not used here since the figures may gate a
        transaction.
        """
        position = await self._chain.get_user_position(market.address, user)
        quotes = await self.refresh_prices(get_relevant_denoms(Action.BORROW, market))
        return position, self.get_risk_snapshot(position, market, quotes)

    async def load_history(
        self, user: str, limit: int | None = None
    ) -> tuple[TimelineEntry, ...]:
        await self.reconciler.refresh(user)
        return self.reconciler.timeline(limit)

    async def submit(
        self,
        signer: SigningClient,
        sender: str,
        batch: InstructionBatch,
        action: Action,
        amount: str,
        denom: str,
        market: Market,
    ) -> PendingTransaction | None:
        return await self.reconciler.submit(
            self.bundler, signer, sender, batch, action, amount, denom, market.address
        )
