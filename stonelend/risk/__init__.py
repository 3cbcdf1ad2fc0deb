"""Position risk calculator."""
from .calculator import (
    classify_health,
    compute_health_factor,
    compute_liquidation_price,
    compute_ltv,
    get_position_type,
    get_risk_snapshot,
)

__all__ = [
    "classify_health",
    "compute_health_factor",
    "compute_liquidation_price",
    "compute_ltv",
    "get_position_type",
    "get_risk_snapshot",
]
