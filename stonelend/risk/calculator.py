"""Position risk math — pure functions, no I/O.

LTV is expressed as a percentage; health factor and liquidation threshold
as ratios. Every figure is a ``RiskFigure`` so that "unknown" (a missing
price), "infinite" (no debt) and an actual number never collapse into
one another.
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from ..models import (
    HealthStatus,
    Market,
    Position,
    PositionType,
    PriceQuote,
    RiskFigure,
    RiskSnapshot,
)
from ..utils.format import parse_amount

DUST_THRESHOLD = 100

_HUNDRED = Decimal(100)

# (lower bound inclusive, status), checked top-down.
_HEALTH_BANDS = (
    (Decimal("2.0"), HealthStatus.SAFE),
    (Decimal("1.5"), HealthStatus.MODERATE),
    (Decimal("1.2"), HealthStatus.AT_RISK),
    (Decimal("1.0"), HealthStatus.DANGER),
)


def _positive(value: Any) -> Decimal | None:
    """Decimal for a strictly positive finite input, else None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, PriceQuote):
        value = value.price
    try:
        parsed = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not parsed.is_finite() or parsed <= 0:
        return None
    return parsed


def resolve_price(denom: str, prices: Mapping[str, Any]) -> Decimal | None:
    """Price for ``denom`` from a mapping of quotes or plain numbers."""
    return _positive(prices.get(denom))


# ---------------------------------------------------------------------------
# LTV / health factor
# ---------------------------------------------------------------------------


def compute_ltv(
    debt_amount: Any,
    collateral_amount: Any,
    debt_price: Any,
    collateral_price: Any,
) -> RiskFigure:
    """Loan-to-value as a percentage.

    ltv = (debt × debt_price) / (collateral × collateral_price) × 100

    Unknown when either price is unavailable or there is no collateral.
    """
    d_price = _positive(debt_price)
    c_price = _positive(collateral_price)
    if d_price is None or c_price is None:
        return RiskFigure.unknown()

    collateral = parse_amount(collateral_amount)
    debt = parse_amount(debt_amount)
    if collateral is None or collateral == 0 or debt is None:
        return RiskFigure.unknown()

    return RiskFigure.of(debt * d_price / (collateral * c_price) * _HUNDRED)


def compute_health_factor(ltv: RiskFigure | None, liquidation_threshold: Any) -> RiskFigure:
    """Health factor = liquidation_threshold / (ltv / 100).

    A zero LTV (no debt) is infinite whatever the threshold; an unknown LTV
    or threshold gives an unknown health factor.
    """
    if ltv is None or ltv.is_unknown:
        return RiskFigure.unknown()
    if ltv.is_infinite:
        return RiskFigure.of(0)
    if ltv.value == 0:
        return RiskFigure.infinite()

    threshold = _positive(liquidation_threshold)
    if threshold is None:
        return RiskFigure.unknown()
    return RiskFigure.of(threshold / (ltv.value / _HUNDRED))


def classify_health(health_factor: RiskFigure | None) -> HealthStatus:
    """Band a health factor; below 1.0 the position is liquidatable on-chain.

    Unknown and infinite (debt-free) health factors both map to NoPosition.
    """
    if health_factor is None or not health_factor.is_value:
        return HealthStatus.NO_POSITION
    for lower_bound, status in _HEALTH_BANDS:
        if health_factor.value >= lower_bound:
            return status
    return HealthStatus.LIQUIDATABLE


def compute_liquidation_price(
    debt_amount: Any,
    collateral_amount: Any,
    debt_price: Any,
    liquidation_threshold: Any,
) -> RiskFigure:
    """Collateral price at which the position becomes liquidatable.

    liquidation_price = (debt × debt_price) / (collateral × threshold)
    """
    debt = parse_amount(debt_amount)
    collateral = parse_amount(collateral_amount)
    d_price = _positive(debt_price)
    threshold = _positive(liquidation_threshold)
    if not debt or not collateral or d_price is None or threshold is None:
        return RiskFigure.unknown()
    return RiskFigure.of(debt * d_price / (collateral * threshold))


def liquidation_price_drop_percent(
    collateral: Any,
    debt_value: Any,
    current_price: Any,
    liquidation_threshold: Any,
) -> Decimal | None:
    """Percentage drop of the collateral price that makes the position liquidatable.

    Returns a negative number (e.g. ``-25`` for a 25% drop), ``0`` when the
    position is already liquidatable and None without collateral or debt.
    """
    collateral_amount = _positive(collateral)
    debt = _positive(debt_value)
    price = _positive(current_price)
    threshold = _positive(liquidation_threshold)
    if collateral_amount is None or debt is None or price is None or threshold is None:
        return None

    current_ltv = debt / (collateral_amount * price)
    if current_ltv >= threshold:
        return Decimal(0)

    liquidation_price = debt / (collateral_amount * threshold)
    return (liquidation_price / price - 1) * _HUNDRED


# ---------------------------------------------------------------------------
# Position classification
# ---------------------------------------------------------------------------


def _above_dust(amount: Any, dust_threshold: int) -> bool:
    parsed = parse_amount(amount)
    return parsed is not None and parsed > dust_threshold


def get_position_type(position: Position | None, dust_threshold: int = DUST_THRESHOLD) -> PositionType:
    """Derive the position type, treating balances at or below dust as zero.

    - none: nothing above dust
    - supply: supply only
    - borrow: collateral and/or debt, no supply
    - both: supply and (collateral or debt)
    """
    if position is None:
        return PositionType.NONE

    is_borrower = _above_dust(position.collateral_amount, dust_threshold) or _above_dust(
        position.debt_amount, dust_threshold
    )
    is_supplier = _above_dust(position.supply_amount, dust_threshold)

    if is_borrower and is_supplier:
        return PositionType.BOTH
    if is_borrower:
        return PositionType.BORROW
    if is_supplier:
        return PositionType.SUPPLY
    return PositionType.NONE


def has_active_debt(position: Position | None, dust_threshold: int = DUST_THRESHOLD) -> bool:
    """True when debt is above dust; supply actions are blocked while it is."""
    if position is None:
        return False
    return _above_dust(position.debt_amount, dust_threshold)


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


def get_risk_snapshot(
    position: Position,
    market: Market,
    prices: Mapping[str, Any],
    dust_threshold: int = DUST_THRESHOLD,
) -> RiskSnapshot:
    """Risk figures for a position given current prices for both denoms."""
    debt_price = resolve_price(market.debt_denom, prices)
    collateral_price = resolve_price(market.collateral_denom, prices)

    ltv = compute_ltv(
        position.debt_amount, position.collateral_amount, debt_price, collateral_price
    )

    debt = parse_amount(position.debt_amount)
    if debt == 0:
        # Debt-free positions cannot be liquidated, even without prices.
        health_factor = RiskFigure.infinite()
    else:
        health_factor = compute_health_factor(ltv, market.liquidation_threshold)

    liquidation_price = compute_liquidation_price(
        position.debt_amount,
        position.collateral_amount,
        debt_price,
        market.liquidation_threshold,
    )

    return RiskSnapshot(
        ltv=ltv,
        health_factor=health_factor,
        liquidation_price=liquidation_price,
        status=classify_health(health_factor),
        position_type=get_position_type(position, dust_threshold),
    )
