"""Fixed-point money helpers (2 fractional digits, commercial rounding)."""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    """
    Coerce a value to a 2-place Decimal.

    Floats are routed through str() so 0.1 becomes Decimal("0.10"),
    not its binary expansion.
    """
    if value is None:
        return ZERO
    if isinstance(value, bool):
        raise ValueError("money value cannot be a boolean")
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError):
        raise ValueError(f"invalid money value: {value!r}")


def money_str(value) -> str:
    """Serialize money for JSON payloads ("12.50")."""
    return str(to_money(value))
