from __future__ import annotations

from decimal import Decimal

from countertrade.mirror.classifier import counter_link_id
from countertrade.mirror.models import CounterOrderRequest, OrderEvent, OrderSide
from countertrade.mirror.sizer import format_quantity

_OPPOSITE: dict[str, OrderSide] = {"Buy": "Sell", "Sell": "Buy"}


def invert_side(side: OrderSide) -> OrderSide:
    try:
        return _OPPOSITE[side]
    except KeyError:
        raise ValueError(f"unknown order side: {side!r}") from None


def transform(event: OrderEvent, quantity: Decimal, *, qty_step: Decimal | None = None) -> CounterOrderRequest:
    """
    Derive the counter-order for event.

    The counter-position carries the inverted directional risk, so the
    original stop-loss becomes its take-profit and vice versa. Counter-orders
    always open or extend a position (never reduce-only).

    qty_step, when given, fixes the number of decimals the quantity is
    rendered with.
    """
    qty = format_quantity(quantity, qty_step) if qty_step is not None else f"{quantity:f}"

    return CounterOrderRequest(
        symbol=event.symbol,
        side=invert_side(event.side),
        order_type=event.order_type,
        qty=qty,
        price=event.price if event.order_type == "Limit" else None,
        take_profit=event.stop_loss,
        stop_loss=event.take_profit,
        time_in_force=event.time_in_force,
        position_idx=event.position_idx,
        link_id=counter_link_id(event.order_id),
        reduce_only=False,
        close_on_trigger=False,
    )
