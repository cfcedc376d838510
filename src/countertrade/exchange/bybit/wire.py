"""
Bybit v5 payload models.

Bybit encodes every amount as a decimal string and uses "" (or "0") for
absent prices, TP and SL. These models parse those strings straight into
Decimal and map the blanks to None.
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from countertrade.core.config.settings import BYBIT_INSUFFICIENT_BALANCE
from countertrade.mirror.models import (
    AccountBalance,
    CounterOrderRequest,
    InstrumentConstraints,
    OrderEvent,
)

USER_CREATE_TYPE = "CreateByUser"

__all__ = [
    "BYBIT_INSUFFICIENT_BALANCE",
    "LotSizeFilter",
    "TickerInfo",
    "WalletCoin",
    "WsOrder",
    "order_params",
]


def _blank_or_zero_is_none(v: Any) -> Any:
    if v is None:
        return None
    if isinstance(v, str):
        s = v.strip()
        if not s:
            return None
        try:
            if Decimal(s) == 0:
                return None
        except InvalidOperation:
            return v
        return s
    return v


def _blank_is_zero(v: Any) -> Any:
    if v is None or (isinstance(v, str) and not v.strip()):
        return "0"
    return v


class _Wire(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class WsOrder(_Wire):
    """
    One entry of the private "order" topic.
    """

    order_id: str = Field(alias="orderId")
    order_link_id: str = Field(default="", alias="orderLinkId")
    symbol: str
    side: Literal["Buy", "Sell"]
    order_type: Literal["Market", "Limit"] = Field(alias="orderType")
    order_status: str = Field(alias="orderStatus")
    create_type: str = Field(default="", alias="createType")

    qty: Decimal
    price: Decimal | None = None
    cum_exec_value: Decimal = Field(default=Decimal("0"), alias="cumExecValue")

    take_profit: Decimal | None = Field(default=None, alias="takeProfit")
    stop_loss: Decimal | None = Field(default=None, alias="stopLoss")

    time_in_force: str = Field(default="GTC", alias="timeInForce")
    position_idx: int = Field(default=0, alias="positionIdx")

    @field_validator("price", "take_profit", "stop_loss", mode="before")
    @classmethod
    def optional_amount(cls, v: Any) -> Any:
        return _blank_or_zero_is_none(v)

    @field_validator("qty", "cum_exec_value", mode="before")
    @classmethod
    def amount(cls, v: Any) -> Any:
        return _blank_is_zero(v)

    def to_event(self) -> OrderEvent:
        return OrderEvent(
            order_id=self.order_id,
            link_id=self.order_link_id,
            symbol=self.symbol,
            side=self.side,
            order_type=self.order_type,
            status=self.order_status,
            creation_origin="user" if self.create_type == USER_CREATE_TYPE else "system",
            qty=self.qty,
            # Market orders carry a protection price on Bybit, not a limit price
            price=self.price if self.order_type == "Limit" else None,
            cum_exec_value=self.cum_exec_value,
            take_profit=self.take_profit,
            stop_loss=self.stop_loss,
            time_in_force=self.time_in_force,
            position_idx=self.position_idx,
        )


class WalletCoin(_Wire):
    coin: str
    wallet_balance: Decimal = Field(default=Decimal("0"), alias="walletBalance")
    available_to_withdraw: Decimal = Field(default=Decimal("0"), alias="availableToWithdraw")
    equity: Decimal = Field(default=Decimal("0"), alias="equity")

    @field_validator("wallet_balance", "available_to_withdraw", "equity", mode="before")
    @classmethod
    def amount(cls, v: Any) -> Any:
        return _blank_is_zero(v)

    def to_balance(self) -> AccountBalance:
        return AccountBalance(
            wallet_balance=self.wallet_balance,
            available_to_withdraw=self.available_to_withdraw,
            equity=self.equity,
        )


class LotSizeFilter(_Wire):
    max_order_qty: Decimal = Field(alias="maxOrderQty")
    min_order_qty: Decimal = Field(alias="minOrderQty")
    qty_step: Decimal = Field(alias="qtyStep")
    max_mkt_order_qty: Decimal | None = Field(default=None, alias="maxMktOrderQty")
    min_notional_value: Decimal = Field(default=Decimal("0"), alias="minNotionalValue")

    @field_validator("max_mkt_order_qty", mode="before")
    @classmethod
    def optional_amount(cls, v: Any) -> Any:
        return _blank_or_zero_is_none(v)

    @field_validator("min_notional_value", mode="before")
    @classmethod
    def amount(cls, v: Any) -> Any:
        return _blank_is_zero(v)

    def to_constraints(self) -> InstrumentConstraints:
        c = InstrumentConstraints(
            min_order_qty=self.min_order_qty,
            max_order_qty=self.max_order_qty,
            # older instruments have no separate market cap
            max_mkt_order_qty=self.max_mkt_order_qty if self.max_mkt_order_qty is not None else self.max_order_qty,
            qty_step=self.qty_step,
            min_notional_value=self.min_notional_value,
        )
        c.validate()
        return c


class TickerInfo(_Wire):
    symbol: str
    mark_price: Decimal | None = Field(default=None, alias="markPrice")
    last_price: Decimal | None = Field(default=None, alias="lastPrice")

    @field_validator("mark_price", "last_price", mode="before")
    @classmethod
    def optional_amount(cls, v: Any) -> Any:
        return _blank_or_zero_is_none(v)

    @property
    def reference_price(self) -> Decimal | None:
        return self.mark_price if self.mark_price is not None else self.last_price


def order_params(request: CounterOrderRequest, *, category: str = "linear") -> dict[str, Any]:
    """
    /v5/order/create body for a counter-order.
    """
    params: dict[str, Any] = {
        "category": category,
        "symbol": request.symbol,
        "side": request.side,
        "orderType": request.order_type,
        "qty": request.qty,
        "timeInForce": request.time_in_force,
        "positionIdx": request.position_idx,
        "reduceOnly": request.reduce_only,
        "closeOnTrigger": request.close_on_trigger,
        "orderLinkId": request.link_id,
    }
    if request.price is not None:
        params["price"] = f"{request.price:f}"
    if request.take_profit is not None:
        params["takeProfit"] = f"{request.take_profit:f}"
    if request.stop_loss is not None:
        params["stopLoss"] = f"{request.stop_loss:f}"
    if request.take_profit is not None or request.stop_loss is not None:
        params["tpslMode"] = "Partial"
    return params
