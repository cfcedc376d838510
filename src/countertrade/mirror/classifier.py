from __future__ import annotations

from countertrade.mirror.models import OrderEvent

# Every counter-order carries this link-id prefix; orders tagged with it are
# never mirrored.
COUNTER_LINK_PREFIX = "counter_"

MIRRORED_STATUSES: frozenset[str] = frozenset({"New", "Filled", "PartiallyFilled", "Created"})


def should_mirror(event: OrderEvent) -> bool:
    """
    True when an order update warrants a counter-order.

    - status is one of New / Filled / PartiallyFilled / Created
    - the order was placed by the user (not a TP/SL trigger, liquidation, ...)
    - it is not one of our own counter-orders
    """
    return (
        event.status in MIRRORED_STATUSES
        and event.creation_origin == "user"
        and not event.link_id.startswith(COUNTER_LINK_PREFIX)
    )


def counter_link_id(order_id: str) -> str:
    return f"{COUNTER_LINK_PREFIX}{order_id}"
