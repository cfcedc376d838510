# src/countertrade/core/events/mirror.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import ClassVar

from countertrade.core.events.base import Event


@dataclass(frozen=True, slots=True)
class OrderDetected(Event):
    """
    A primary-account order passed the classifier and will be mirrored.
    """
    event_type: ClassVar[str] = "mirror.order_detected"

    order_id: str
    symbol: str
    side: str
    order_type: str
    status: str

    qty: Decimal
    price: Decimal | None
    cum_exec_value: Decimal


@dataclass(frozen=True, slots=True)
class CounterOrderPlaced(Event):
    """
    The exchange accepted the counter-order (retCode == 0).
    """
    event_type: ClassVar[str] = "mirror.counter_placed"

    order_id: str
    counter_link_id: str
    symbol: str
    side: str
    qty: str
    price: str | None


@dataclass(frozen=True, slots=True)
class CounterOrderRejected(Event):
    """
    The exchange answered with a non-zero retCode.
    """
    event_type: ClassVar[str] = "mirror.counter_rejected"

    order_id: str
    counter_link_id: str
    symbol: str

    ret_code: int
    ret_msg: str
    insufficient_balance: bool


@dataclass(frozen=True, slots=True)
class MirrorAborted(Event):
    """
    Mirroring stopped before (or during) submission.

    stage is one of: primary_balance, counter_balance, instrument,
    reference_price, sizing, submit.
    """
    event_type: ClassVar[str] = "mirror.aborted"

    order_id: str
    symbol: str
    stage: str
    reason: str
