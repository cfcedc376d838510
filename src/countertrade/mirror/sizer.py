# src/countertrade/mirror/sizer.py
from __future__ import annotations

from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal, InvalidOperation

from countertrade.errors import DivisionByZero, SizingError
from countertrade.mirror.models import InstrumentConstraints

_ONE = Decimal(1)


def _require_amount(name: str, value: Decimal) -> None:
    if not isinstance(value, Decimal):
        raise SizingError(f"{name} must be a Decimal, got {type(value).__name__}")
    if not value.is_finite():
        raise SizingError(f"{name} must be finite, got {value}")
    if value < 0:
        raise SizingError(f"{name} must be >= 0, got {value}")


def round_to_step(value: Decimal, step: Decimal) -> Decimal:
    """
    Nearest multiple of step, ties rounded away from zero (ROUND_HALF_UP).
    """
    return (value / step).quantize(_ONE, rounding=ROUND_HALF_UP) * step


def clamp(value: Decimal, lower: Decimal, upper: Decimal) -> Decimal:
    return max(lower, min(upper, value))


def repair_min_notional(
    quantity: Decimal,
    *,
    reference_price: Decimal,
    min_notional_value: Decimal,
    qty_step: Decimal,
) -> Decimal:
    """
    Bump quantity to the first step whose notional reaches min_notional_value.

    Always rounds up: an order below the minimum notional is rejected.
    """
    if quantity * reference_price >= min_notional_value:
        return quantity
    steps = (min_notional_value / reference_price / qty_step).to_integral_value(rounding=ROUND_CEILING)
    return steps * qty_step


def size(
    *,
    primary_equity: Decimal,
    counter_equity: Decimal,
    original_notional: Decimal,
    reference_price: Decimal,
    constraints: InstrumentConstraints,
    is_market_order: bool,
) -> Decimal:
    """
    Counter-order quantity, scaled by the margin fraction the original trade
    used on the primary account.

    Steps, each clamping the previous result:
      1. fraction = original_notional / primary_equity
      2. counter_notional = counter_equity * fraction
      3. raw = counter_notional / reference_price
      4. round to the nearest qty_step
      5. clamp into [min_order_qty, max_order_qty]
      6. Market orders: cap at max_mkt_order_qty
      7. raise to min_notional_value (rounding up) if below it
      8. clamp into [min_order_qty, max_order_qty] again

    Raises DivisionByZero when primary_equity or reference_price is zero and
    SizingError for any other unusable input. A result below min_order_qty is
    not possible here, but a result the account cannot afford is: the
    exchange rejects those.
    """
    _require_amount("primary_equity", primary_equity)
    _require_amount("counter_equity", counter_equity)
    _require_amount("original_notional", original_notional)
    _require_amount("reference_price", reference_price)

    if primary_equity == 0:
        raise DivisionByZero("primary account equity is zero")
    if reference_price == 0:
        raise DivisionByZero("reference price is zero")

    c = constraints
    try:
        fraction = original_notional / primary_equity
        counter_notional = counter_equity * fraction
        raw_qty = counter_notional / reference_price

        qty = round_to_step(raw_qty, c.qty_step)
        qty = clamp(qty, c.min_order_qty, c.max_order_qty)

        if is_market_order:
            qty = min(qty, c.max_mkt_order_qty)

        qty = repair_min_notional(
            qty,
            reference_price=reference_price,
            min_notional_value=c.min_notional_value,
            qty_step=c.qty_step,
        )

        return clamp(qty, c.min_order_qty, c.max_order_qty)
    except InvalidOperation as e:
        raise SizingError(f"decimal arithmetic failed while sizing: {e!r}") from e


def decimal_places(step: Decimal) -> int:
    """
    Fractional digits implied by a step: -floor(log10(step)), never negative.

    0.001 -> 3, 0.5 -> 1, 1 -> 0, 10 -> 0
    """
    if not step.is_finite() or step <= 0:
        raise ValueError(f"step must be finite and > 0, got {step}")
    return max(0, -step.adjusted())


def format_quantity(quantity: Decimal, step: Decimal) -> str:
    places = decimal_places(step)
    q = quantity.quantize(_ONE.scaleb(-places), rounding=ROUND_HALF_UP)
    return f"{q:f}"
