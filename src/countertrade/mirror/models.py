# src/countertrade/mirror/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Literal, Mapping

OrderSide = Literal["Buy", "Sell"]
OrderType = Literal["Market", "Limit"]
CreationOrigin = Literal["user", "system"]

MirrorStatus = Literal["placed", "insufficient_balance", "rejected", "submit_failed", "aborted"]
AbortStage = Literal["primary_balance", "counter_balance", "instrument", "reference_price", "sizing"]


@dataclass(frozen=True, slots=True)
class OrderEvent:
    """
    Snapshot of a primary-account order at one point of its lifecycle.

    price is only set for Limit orders. take_profit / stop_loss are None
    when the order carries no TP/SL.
    """
    order_id: str
    link_id: str
    symbol: str

    side: OrderSide
    order_type: OrderType
    status: str
    creation_origin: CreationOrigin

    qty: Decimal
    price: Decimal | None
    cum_exec_value: Decimal

    take_profit: Decimal | None = None
    stop_loss: Decimal | None = None

    time_in_force: str = "GTC"
    position_idx: int = 0


@dataclass(frozen=True, slots=True)
class AccountBalance:
    wallet_balance: Decimal
    available_to_withdraw: Decimal
    equity: Decimal


@dataclass(frozen=True, slots=True)
class InstrumentConstraints:
    """
    Per-symbol lot size limits.

    Invariant: 0 < min_order_qty <= max_mkt_order_qty <= max_order_qty, qty_step > 0.
    """
    min_order_qty: Decimal
    max_order_qty: Decimal
    max_mkt_order_qty: Decimal
    qty_step: Decimal
    min_notional_value: Decimal = Decimal("0")

    def validate(self) -> None:
        if not all(v.is_finite() for v in (
            self.min_order_qty,
            self.max_order_qty,
            self.max_mkt_order_qty,
            self.qty_step,
            self.min_notional_value,
        )):
            raise ValueError("instrument constraints must be finite")
        if self.qty_step <= 0:
            raise ValueError("qty_step must be > 0")
        if self.min_order_qty <= 0:
            raise ValueError("min_order_qty must be > 0")
        if not (self.min_order_qty <= self.max_mkt_order_qty <= self.max_order_qty):
            raise ValueError(
                "expected min_order_qty <= max_mkt_order_qty <= max_order_qty, got "
                f"{self.min_order_qty} / {self.max_mkt_order_qty} / {self.max_order_qty}"
            )
        if self.min_notional_value < 0:
            raise ValueError("min_notional_value must be >= 0")


@dataclass(frozen=True, slots=True)
class CounterOrderRequest:
    """
    The fully derived order submitted on the counter account.

    qty is already formatted at the instrument's step precision.
    """
    symbol: str
    side: OrderSide
    order_type: OrderType
    qty: str
    price: Decimal | None
    take_profit: Decimal | None
    stop_loss: Decimal | None
    time_in_force: str
    position_idx: int
    link_id: str
    reduce_only: bool = False
    close_on_trigger: bool = False


@dataclass(frozen=True, slots=True)
class SubmitResult:
    ret_code: int
    ret_msg: str
    result: Mapping[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.ret_code == 0


@dataclass(frozen=True, slots=True)
class MirrorOutcome:
    """
    What happened to one qualifying event.

    request is set once the counter-order was derived; ret_code / ret_msg
    once the exchange answered; stage / reason for aborts and transport failures.
    """
    status: MirrorStatus
    order_id: str
    symbol: str

    request: CounterOrderRequest | None = None
    ret_code: int | None = None
    ret_msg: str | None = None

    stage: str | None = None
    reason: str | None = None
