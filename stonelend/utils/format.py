"""Fixed-point amount conversion and display formatting — pure, no I/O.

Amounts cross every boundary as decimal strings of micro units. All
arithmetic here is ``decimal.Decimal``; never native floats.
"""
from __future__ import annotations

import time
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Any

from ..models import RiskFigure

DEFAULT_DECIMALS = 6

# Enough digits for any Uint256 amount.
_PRECISION = 80

_COMPACT_SUFFIXES = (
    (Decimal(10) ** 12, "T"),
    (Decimal(10) ** 9, "B"),
    (Decimal(10) ** 6, "M"),
    (Decimal(10) ** 3, "K"),
)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_amount(value: Any) -> Decimal | None:
    """Parse a non-negative finite amount; ``None`` on anything else."""
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite() or amount < 0:
        return None
    return amount


def parse_decimal(value: Any) -> Decimal:
    """Parse a contract ``Decimal`` string (e.g. ``"0.85"``), ``0`` on bad input."""
    if value is None or value == "":
        return Decimal(0)
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return Decimal(0)
    if not parsed.is_finite():
        return Decimal(0)
    return parsed


def _plain(value: Decimal) -> str:
    """Render without exponent and without trailing fractional zeros."""
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


# ---------------------------------------------------------------------------
# Micro <-> display
# ---------------------------------------------------------------------------


def to_display(amount: Any, decimals: int = DEFAULT_DECIMALS) -> str:
    """Convert a micro-unit amount to a display amount.

    Examples:
        "1500000" → "1.5"
        "1" → "0.000001"
    """
    micro = parse_amount(amount)
    if micro is None:
        return "0"
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return _plain(micro.scaleb(-decimals))


def to_micro(display: Any, decimals: int = DEFAULT_DECIMALS) -> str:
    """Convert a display amount to micro units, flooring toward zero.

    Sub-micro fractions are dropped, never rounded up, so a transfer is
    never over-credited.
    """
    base = parse_amount(display)
    if base is None:
        return "0"
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        micro = base.scaleb(decimals).quantize(Decimal(1), rounding=ROUND_DOWN)
    return _plain(micro)


# ---------------------------------------------------------------------------
# Display helpers
# ---------------------------------------------------------------------------


def _to_decimal(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return parsed if parsed.is_finite() else None


def _round(value: Decimal, places: int) -> Decimal:
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def format_usd(value: Any, decimals: int = 2) -> str:
    """Format as USD, e.g. ``1234.5`` → ``$1,234.50``."""
    num = _to_decimal(value)
    if num is None:
        return "$" + format(Decimal(0), f",.{decimals}f")
    sign = "-" if num < 0 else ""
    return f"{sign}${format(_round(abs(num), decimals), f',.{decimals}f')}"


def format_percentage(value: Any, decimals: int = 2) -> str:
    num = _to_decimal(value)
    if num is None:
        num = Decimal(0)
    return f"{format(_round(num, decimals), f'.{decimals}f')}%"


def format_compact(value: Any, decimals: int = 2) -> str:
    """Compact notation with K/M/B/T suffixes, rounded at the shown precision.

    A value that rounds up to 1000 of one suffix moves to the next one
    (``999_999`` → ``1.00M``, not ``1000.00K``).
    """
    num = _to_decimal(value)
    if num is None:
        num = Decimal(0)
    sign = "-" if num < 0 else ""
    magnitude = abs(num)

    suffix = ""
    scaled = _round(magnitude, decimals)
    for threshold, candidate in reversed(_COMPACT_SUFFIXES):
        if magnitude < threshold:
            break
        scaled = _round(magnitude / threshold, decimals)
        suffix = candidate

    if scaled >= 1000 and suffix != "T":
        thresholds = [t for t, _ in reversed(_COMPACT_SUFFIXES)]
        names = [s for _, s in reversed(_COMPACT_SUFFIXES)]
        index = names.index(suffix) + 1 if suffix else 0
        scaled = _round(magnitude / thresholds[index], decimals)
        suffix = names[index]

    return f"{sign}{format(scaled, f'.{decimals}f')}{suffix}"


def format_display_amount(value: Any, decimals: int = 2) -> str:
    """Grouped amount, switching to compact notation from one million."""
    num = _to_decimal(value)
    if num is None:
        return format(Decimal(0), f".{decimals}f")
    if abs(num) >= Decimal(10) ** 6:
        return format_compact(num, decimals)
    return format(_round(num, decimals), f",.{decimals}f")


def format_relative_time(timestamp: int | float, now: int | float | None = None) -> str:
    """Relative time for a unix timestamp in seconds, e.g. ``"2 mins ago"``."""
    if now is None:
        now = time.time()
    diff = int(now) - int(timestamp)

    if diff < 60:
        return "just now"
    if diff < 3600:
        mins = diff // 60
        return f"{mins} min{'s' if mins > 1 else ''} ago"
    if diff < 86400:
        hours = diff // 3600
        return f"{hours} hour{'s' if hours > 1 else ''} ago"
    days = diff // 86400
    return f"{days} day{'s' if days > 1 else ''} ago"


def shorten_address(address: str, prefix_length: int = 6, suffix_length: int = 4) -> str:
    """Shorten an address for display, e.g. ``neutron1abc...wxyz``."""
    if not address:
        return ""
    if len(address) <= prefix_length + suffix_length + 3:
        return address
    return f"{address[:prefix_length]}...{address[-suffix_length:]}"


def format_denom(denom: str) -> str:
    """Display symbol for a chain denom.

    Examples:
        "uatom" → "ATOM"
        "ibc/27394FB092D2ECCD56123C74F36E4C1F926001CEADA9CA97EA622B25F41E5EB2" → "IBC/2739...5EB2"
        "factory/neutron1.../ustone" → "USTONE"
    """
    if not denom:
        return ""
    if denom.startswith("ibc/"):
        hash_part = denom[4:]
        if len(hash_part) > 8:
            return f"IBC/{hash_part[:4]}...{hash_part[-4:]}"
        return denom.upper()
    if denom.startswith("factory/"):
        return denom.split("/")[-1].upper()
    if denom.startswith("u") and len(denom) > 1:
        return denom[1:].upper()
    return denom.upper()


def format_health_factor(health_factor: RiskFigure, decimals: int = 2) -> str:
    """Render a health factor: ``∞`` for no debt, ``-`` if unknown."""
    if health_factor.is_infinite:
        return "∞"
    if health_factor.is_unknown:
        return "-"
    return format(_round(health_factor.value, decimals), f".{decimals}f")


def format_price_with_confidence(price: Decimal, confidence: Decimal, decimals: int = 4) -> str:
    """E.g. ``$10.0000 (9.9900 - 10.0100)``."""
    fmt = f".{decimals}f"
    lower = format(_round(price - confidence, decimals), fmt)
    upper = format(_round(price + confidence, decimals), fmt)
    return f"${format(_round(price, decimals), fmt)} ({lower} - {upper})"
