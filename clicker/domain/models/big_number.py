"""
Arbitrary-magnitude numeric values for scores, costs and effects.

All game quantities are `decimal.Decimal` evaluated under `BIG_CONTEXT`,
which keeps 50 significant digits and an exponent range far beyond any
reachable score. Native floats never enter arithmetic: float inputs (for
example multipliers parsed from YAML) are converted through their shortest
repr, so `1.15` becomes `Decimal("1.15")` rather than its binary expansion.

`UNBOUNDED` (positive infinity) doubles as the "no cap" marker and as the
unaffordable sentinel returned for exhausted one-time curves.
"""

from __future__ import annotations

from decimal import Context, Decimal, InvalidOperation, ROUND_HALF_EVEN, localcontext
from typing import Any, Iterable

BIG_CONTEXT = Context(
    prec=50,
    rounding=ROUND_HALF_EVEN,
    Emax=999_999_999,
    Emin=-999_999_999,
    traps=[InvalidOperation],
)

ZERO = Decimal(0)
ONE = Decimal(1)
HUNDRED = Decimal(100)
UNBOUNDED = Decimal("Infinity")


def to_big(value: Any) -> Decimal:
    """
    Convert a value to a `Decimal` under the shared context.

    Raises:
        ValueError: when the value is not numeric or is NaN
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValueError(f"Not a numeric value: {value!r}")
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(repr(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip().replace(",", ""))
        except InvalidOperation as exc:
            raise ValueError(f"Not a numeric value: {value!r}") from exc
    else:
        raise ValueError(f"Not a numeric value: {value!r}")

    if result.is_nan():
        raise ValueError("NaN is not a valid game quantity")
    return result


def big_sum(values: Iterable[Decimal]) -> Decimal:
    with localcontext(BIG_CONTEXT):
        total = ZERO
        for value in values:
            total += value
        return total


def format_big(value: Decimal) -> str:
    """Compact display form: plain up to 1e15, scientific above."""
    if not value.is_finite():
        return "∞" if value > 0 else "-∞"
    if abs(value) >= Decimal("1e15"):
        return f"{value:.3e}"
    quantized = value.quantize(Decimal("0.01"), context=BIG_CONTEXT)
    return f"{quantized.normalize(BIG_CONTEXT):f}"


def to_text(value: Decimal) -> str:
    """
    Canonical wire form: trailing fractional zeros dropped, plain notation
    while the integer part fits the working precision.

    `Decimal("49.933750")` and `Decimal("49.93375")` both render as
    `"49.93375"`; `Decimal("1E+2")` renders as `"100"`.
    """
    if not value.is_finite():
        return str(value)
    normalized = value.normalize(BIG_CONTEXT)
    if normalized.as_tuple().exponent > 0 and normalized.adjusted() < BIG_CONTEXT.prec:
        normalized = normalized.quantize(ONE, context=BIG_CONTEXT)
    return str(normalized)
