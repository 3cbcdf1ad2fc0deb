"""Data models — all frozen (immutable).

Token amounts are carried as decimal strings of micro units; prices and
ratios as ``Decimal``.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any


class Action(str, Enum):
    """User action kinds; values match the market contract's execute messages."""

    SUPPLY = "supply"
    WITHDRAW = "withdraw"
    SUPPLY_COLLATERAL = "supply_collateral"
    WITHDRAW_COLLATERAL = "withdraw_collateral"
    BORROW = "borrow"
    REPAY = "repay"
    LIQUIDATE = "liquidate"

    @classmethod
    def from_indexer(cls, value: str) -> Action:
        """Parse the indexer's enum spelling, e.g. ``SUPPLY_COLLATERAL``."""
        return cls(value.strip().lower())


class TxStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    # Outcome unknown until the indexer confirms or the grace period ends.
    TIMED_OUT = "timed_out"

    @property
    def display(self) -> str:
        if self is TxStatus.TIMED_OUT:
            return TxStatus.FAILED.value
        return self.value


class PositionType(str, Enum):
    NONE = "none"
    SUPPLY = "supply"
    BORROW = "borrow"
    BOTH = "both"


class HealthStatus(str, Enum):
    SAFE = "Safe"
    MODERATE = "Moderate"
    AT_RISK = "AtRisk"
    DANGER = "Danger"
    LIQUIDATABLE = "Liquidatable"
    NO_POSITION = "NoPosition"

    @property
    def label(self) -> str:
        return _HEALTH_LABELS[self]


_HEALTH_LABELS = {
    HealthStatus.SAFE: "Healthy",
    HealthStatus.MODERATE: "Moderate",
    HealthStatus.AT_RISK: "At Risk",
    HealthStatus.DANGER: "Danger",
    HealthStatus.LIQUIDATABLE: "Liquidatable",
    HealthStatus.NO_POSITION: "No Position",
}


@dataclass(frozen=True)
class Market:
    """A lending pool, identified by its collateral/debt denom pair."""

    address: str
    collateral_denom: str
    debt_denom: str
    liquidation_threshold: Decimal
    loan_to_value: Decimal
    total_supplied: str = "0"
    total_borrowed: str = "0"
    utilization: Decimal = Decimal(0)
    market_id: str = ""

    @property
    def denoms(self) -> tuple[str, str]:
        return (self.collateral_denom, self.debt_denom)


@dataclass(frozen=True)
class Position:
    """A user's holdings in one market, in micro units."""

    collateral_amount: str = "0"
    supply_amount: str = "0"
    debt_amount: str = "0"


@dataclass(frozen=True)
class PriceQuote:
    """Price of one denom in USD, with its confidence and publish time (seconds)."""

    denom: str
    price: Decimal
    confidence: Decimal
    publish_time: int
    feed_id: str = ""

    def age_ms(self, now_ms: int) -> int:
        return max(0, now_ms - self.publish_time * 1000)

    def is_fresh(self, now_ms: int, budget_ms: int) -> bool:
        return self.age_ms(now_ms) <= budget_ms


@dataclass(frozen=True)
class Coin:
    denom: str
    amount: str


@dataclass(frozen=True)
class Instruction:
    """A single contract execute instruction."""

    contract: str
    msg: dict[str, Any]
    funds: tuple[Coin, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "contract": self.contract,
            "msg": self.msg,
            "funds": [{"denom": c.denom, "amount": c.amount} for c in self.funds],
        }


@dataclass(frozen=True)
class InstructionBatch:
    """Price updates (possibly none) followed by the user's instruction."""

    instruction: Instruction
    updates: tuple[Instruction, ...] = ()

    @property
    def needs_price_update(self) -> bool:
        return bool(self.updates)

    @property
    def instructions(self) -> tuple[Instruction, ...]:
        return self.updates + (self.instruction,)


@dataclass(frozen=True)
class BroadcastResult:
    tx_hash: str
    height: int = 0
    code: int = 0
    raw_log: str = ""


@dataclass(frozen=True)
class PendingTransaction:
    """A locally originated, optimistically tracked transaction."""

    id: str
    action: Action
    amount: str
    denom: str
    market_address: str
    status: TxStatus
    timestamp_ms: int
    tx_hash: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class IndexedTransaction:
    """Canonical record of a transaction processed by the indexer."""

    id: str
    tx_hash: str
    action: Action
    amount: str
    denom: str
    market_address: str
    block_height: int
    timestamp_ms: int


@dataclass(frozen=True)
class TimelineEntry:
    """One row of the merged transaction history."""

    id: str
    action: Action
    amount: str
    denom: str
    status: str
    timestamp_ms: int
    tx_hash: str | None = None
    error: str | None = None
    source: str = "local"


@dataclass(frozen=True)
class PriceUpdate:
    """Signed price update for one denom as returned by the feed network."""

    denom: str
    feed_id: str
    data: tuple[str, ...]
    quote: PriceQuote | None = None


@dataclass(frozen=True)
class RiskFigure:
    """A risk number that is either unknown, infinite, or a finite value.

    "No price" (unknown), "no debt" (infinite) and a real number stay
    distinct all the way to the display layer.
    """

    kind: str
    value: Decimal | None = None

    UNKNOWN = "unknown"
    INFINITE = "infinite"
    VALUE = "value"

    @classmethod
    def unknown(cls) -> RiskFigure:
        return cls(cls.UNKNOWN)

    @classmethod
    def infinite(cls) -> RiskFigure:
        return cls(cls.INFINITE)

    @classmethod
    def of(cls, value: Decimal | int | str) -> RiskFigure:
        return cls(cls.VALUE, Decimal(value))

    @property
    def is_unknown(self) -> bool:
        return self.kind == self.UNKNOWN

    @property
    def is_infinite(self) -> bool:
        return self.kind == self.INFINITE

    @property
    def is_value(self) -> bool:
        return self.kind == self.VALUE

    def as_float(self) -> float | None:
        if self.is_infinite:
            return float("inf")
        if self.value is None:
            return None
        return float(self.value)

    def to_json(self) -> str | None:
        """JSON-safe form: ``None``, ``"∞"`` or the decimal string."""
        if self.is_unknown:
            return None
        return str(self)

    def __str__(self) -> str:
        if self.is_infinite:
            return "∞"
        if self.value is None:
            return "-"
        return str(self.value)


@dataclass(frozen=True)
class RiskSnapshot:
    """Risk figures for one position, ready for display."""

    ltv: RiskFigure
    health_factor: RiskFigure
    liquidation_price: RiskFigure
    status: HealthStatus
    position_type: PositionType = PositionType.NONE

    def to_dict(self) -> dict[str, Any]:
        return {
            "ltv": self.ltv.to_json(),
            "health_factor": self.health_factor.to_json(),
            "liquidation_price": self.liquidation_price.to_json(),
            "status": self.status.value,
            "status_label": self.status.label,
            "position_type": self.position_type.value,
        }
