"""Price-update bundling — prepends fresh Pyth updates to price-sensitive actions.

The bundler is a best-effort freshness optimization. If the price network
is unreachable the user's instruction goes out unmodified and the market
contract decides whether the price it holds is recent enough.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Sequence

from ..config import PythConfig, TransactionsConfig
from ..errors import (
    BroadcastRejected,
    BroadcastTimeout,
    InvalidAmount,
    StaleOrMissingPrice,
    StoneError,
)
from ..interfaces.price_oracle import PriceOracle
from ..interfaces.signer import SigningClient
from ..models import (
    Action,
    BroadcastResult,
    Coin,
    Instruction,
    InstructionBatch,
    Market,
    PriceUpdate,
)
from ..oracles.cache import PriceCache
from ..oracles.feeds import FeedRegistry
from ..utils.format import parse_amount

logger = logging.getLogger(__name__)

# Actions whose safety check on-chain reads a price.
_PRICE_SENSITIVE = frozenset({Action.BORROW, Action.WITHDRAW_COLLATERAL, Action.LIQUIDATE})


def get_relevant_denoms(action: Action, market: Market) -> tuple[str, ...]:
    """Denoms whose price matters for ``action`` in ``market`` (collateral first)."""
    if action in (Action.SUPPLY, Action.WITHDRAW):
        return (market.debt_denom,)
    if action in (Action.SUPPLY_COLLATERAL, Action.WITHDRAW_COLLATERAL):
        return (market.collateral_denom,)
    return (market.collateral_denom, market.debt_denom)


def should_attempt_price_updates(action: Action) -> bool:
    return action in _PRICE_SENSITIVE


def build_market_instruction(
    action: Action,
    market: Market,
    amount: str,
    borrower: str | None = None,
) -> Instruction:
    """Execute message for the market contract, with funds where the action sends tokens."""
    if action is Action.SUPPLY:
        return Instruction(market.address, {"supply": {}}, (Coin(market.debt_denom, amount),))
    if action is Action.WITHDRAW:
        return Instruction(market.address, {"withdraw": {"amount": amount}})
    if action is Action.SUPPLY_COLLATERAL:
        return Instruction(
            market.address,
            {"supply_collateral": {}},
            (Coin(market.collateral_denom, amount),),
        )
    if action is Action.WITHDRAW_COLLATERAL:
        return Instruction(market.address, {"withdraw_collateral": {"amount": amount}})
    if action is Action.BORROW:
        return Instruction(market.address, {"borrow": {"amount": amount}})
    if action is Action.REPAY:
        msg: dict[str, Any] = {}
        if borrower:
            msg["on_behalf_of"] = borrower
        return Instruction(market.address, {"repay": msg}, (Coin(market.debt_denom, amount),))
    if action is Action.LIQUIDATE:
        if not borrower:
            raise ValueError("liquidate requires a borrower address")
        return Instruction(
            market.address,
            {"liquidate": {"borrower": borrower}},
            (Coin(market.debt_denom, amount),),
        )
    raise ValueError(f"Unsupported action: {action}")


def validate_amount(amount: Any) -> str:
    """Micro amount as a plain integer string; raises InvalidAmount unless > 0."""
    parsed = parse_amount(amount)
    if parsed is None or parsed <= 0 or parsed != parsed.to_integral_value():
        raise InvalidAmount(amount)
    return str(int(parsed))


class PriceUpdateBundler:
    """Builds instruction batches and broadcasts them with or without price updates."""

    def __init__(
        self,
        oracle: PriceOracle,
        cache: PriceCache,
        config: PythConfig,
        transactions: TransactionsConfig | None = None,
        allow_multi_instruction: bool = True,
    ) -> None:
        self._oracle = oracle
        self._cache = cache
        self._config = config
        self._feeds = FeedRegistry(config.feeds)
        self._broadcast_timeout_ms = (transactions or TransactionsConfig()).broadcast_timeout_ms
        self._allow_multi_instruction = allow_multi_instruction

    @property
    def enabled(self) -> bool:
        return self._config.mode == "live" and self._feeds.has_feeds(self._config.feeds)

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def _update_instruction(self, update: PriceUpdate) -> Instruction:
        return Instruction(
            contract=self._config.contract_address,
            msg={"update_price_feeds": {"data": list(update.data)}},
            funds=(Coin(self._config.update_fee_denom, self._config.update_fee_amount),),
        )

    async def build_pyth_update_messages(
        self,
        denoms: Sequence[str],
        freshness_budget_ms: int | None = None,
    ) -> list[Instruction]:
        """One ``update_price_feeds`` instruction per denom that actually needs it.

        Denoms with a cached quote inside the freshness budget are skipped.
        Returns an empty list when nothing needs refreshing or updates are
        disabled.
        """
        if not self.enabled:
            return []

        budget = (
            self._config.freshness_budget_ms
            if freshness_budget_ms is None
            else freshness_budget_ms
        )
        needed: list[str] = []
        for denom in dict.fromkeys(denoms):
            if not self._feeds.feed_id(denom):
                logger.debug("No price feed for %s, skipping update", denom)
                continue
            if self._cache.fresh(denom, budget) is not None:
                logger.debug("Cached price for %s is fresh, skipping update", denom)
                continue
            needed.append(denom)

        if not needed:
            return []

        results = await asyncio.gather(
            *(self._oracle.fetch_update(denom) for denom in needed),
            return_exceptions=True,
        )

        instructions: list[Instruction] = []
        for denom, result in zip(needed, results):
            if isinstance(result, StaleOrMissingPrice):
                logger.warning("Skipping price update for %s: %s", denom, result.reason)
                continue
            if isinstance(result, Exception):
                logger.warning("Skipping price update for %s: %s", denom, result)
                continue
            if isinstance(result, BaseException):
                raise result
            if result.quote is not None:
                self._cache.put(result.quote)
            instructions.append(self._update_instruction(result))

        logger.info("Prepared %d/%d price updates", len(instructions), len(needed))
        return instructions

    async def prepare_transaction(
        self,
        action: Action,
        market: Market,
        amount: Any,
        sender: str,
        borrower: str | None = None,
    ) -> InstructionBatch:
        """Validate ``amount`` (micro units) and build the batch for ``action``."""
        micro = validate_amount(amount)
        instruction = build_market_instruction(action, market, micro, borrower)

        updates: tuple[Instruction, ...] = ()
        if should_attempt_price_updates(action):
            updates = tuple(
                await self.build_pyth_update_messages(get_relevant_denoms(action, market))
            )

        logger.debug(
            "Prepared %s for %s on %s (%d price updates)",
            action.value, sender, market.address, len(updates),
        )
        return InstructionBatch(instruction=instruction, updates=updates)

    # ------------------------------------------------------------------
    # Broadcasting
    # ------------------------------------------------------------------

    async def _broadcast(
        self, call: Awaitable[BroadcastResult], timeout_ms: int
    ) -> BroadcastResult:
        try:
            result = await asyncio.wait_for(call, timeout=timeout_ms / 1000)
        except asyncio.TimeoutError as e:
            raise BroadcastTimeout(timeout_ms) from e
        except StoneError:
            raise
        except Exception as e:
            raise BroadcastRejected(str(e)) from e

        if result.code != 0:
            raise BroadcastRejected(result.raw_log, code=result.code, tx_hash=result.tx_hash)
        return result

    async def execute_with_price_update(
        self,
        signer: SigningClient,
        sender: str,
        updates: Sequence[Instruction],
        instructions: Sequence[Instruction],
        timeout_ms: int | None = None,
    ) -> BroadcastResult:
        """Broadcast updates and user instructions.

        Atomic when both the chain config and the signer allow several
        instructions in one transaction; otherwise
        updates go first, one by one, and only a rejection of the user's own
        instruction is reported.
        """
        if timeout_ms is None:
            timeout_ms = self._broadcast_timeout_ms

        if self._allow_multi_instruction and signer.supports_multi_instruction:
            combined = list(updates) + list(instructions)
            return await self._broadcast(signer.execute_multiple(sender, combined), timeout_ms)

        for update in updates:
            try:
                await self._broadcast(signer.execute(sender, update), timeout_ms)
            except StoneError as e:
                logger.warning("Price update transaction failed, continuing: %s", e)

        result: BroadcastResult | None = None
        for instruction in instructions:
            result = await self._broadcast(signer.execute(sender, instruction), timeout_ms)
        if result is None:
            raise ValueError("No instruction to execute")
        return result

    async def execute_single_with_price_update(
        self,
        signer: SigningClient,
        sender: str,
        instruction: Instruction,
        timeout_ms: int | None = None,
    ) -> BroadcastResult:
        """The user instruction alone, unmodified."""
        if timeout_ms is None:
            timeout_ms = self._broadcast_timeout_ms
        return await self._broadcast(signer.execute(sender, instruction), timeout_ms)

    async def execute_batch(
        self,
        signer: SigningClient,
        sender: str,
        batch: InstructionBatch,
        timeout_ms: int | None = None,
    ) -> BroadcastResult:
        if batch.needs_price_update:
            return await self.execute_with_price_update(
                signer, sender, batch.updates, [batch.instruction], timeout_ms
            )
        return await self.execute_single_with_price_update(
            signer, sender, batch.instruction, timeout_ms
        )
