from __future__ import annotations

import pytest
from pydantic import ValidationError

from countertrade.exchange.bybit.wire import LotSizeFilter, TickerInfo, WalletCoin, WsOrder, order_params
from countertrade.mirror.transformer import transform
from support import WS_LIMIT_ORDER, D, order_event


def test_ws_limit_order_to_event() -> None:
    e = WsOrder.model_validate(WS_LIMIT_ORDER).to_event()

    assert e.order_id == "5cf98598-39a7-459e-97bf-76ca765ee020"
    assert e.side == "Buy"
    assert e.order_type == "Limit"
    assert e.creation_origin == "user"
    assert e.qty == D("0.010")
    assert e.price == D("72500.5")
    assert e.cum_exec_value == D("0")
    assert e.take_profit == D("80000")
    assert e.stop_loss is None


def test_ws_market_order_drops_price_and_zero_tp_sl() -> None:
    raw = dict(
        WS_LIMIT_ORDER,
        orderType="Market",
        orderStatus="Filled",
        price="71000",
        cumExecValue="712.3",
        takeProfit="0",
        stopLoss="0",
    )
    e = WsOrder.model_validate(raw).to_event()

    assert e.price is None
    assert e.cum_exec_value == D("712.3")
    assert e.take_profit is None
    assert e.stop_loss is None


@pytest.mark.parametrize("create_type", ["CreateByStopOrder", "CreateByLiq", "CreateByClosing", ""])
def test_non_user_create_types_are_system(create_type: str) -> None:
    e = WsOrder.model_validate(dict(WS_LIMIT_ORDER, createType=create_type)).to_event()
    assert e.creation_origin == "system"


def test_ws_order_requires_side() -> None:
    with pytest.raises(ValidationError):
        WsOrder.model_validate(dict(WS_LIMIT_ORDER, side="None"))


def test_wallet_coin() -> None:
    b = WalletCoin.model_validate(
        {"coin": "USDT", "walletBalance": "1200.5", "availableToWithdraw": "", "equity": "1210.25"}
    ).to_balance()
    assert b.wallet_balance == D("1200.5")
    assert b.available_to_withdraw == D("0")
    assert b.equity == D("1210.25")


def test_lot_size_filter() -> None:
    c = LotSizeFilter.model_validate(
        {
            "maxOrderQty": "1190.000",
            "minOrderQty": "0.001",
            "qtyStep": "0.001",
            "postOnlyMaxOrderQty": "1190.000",
            "maxMktOrderQty": "119.000",
            "minNotionalValue": "5",
        }
    ).to_constraints()
    assert c.max_mkt_order_qty == D("119")
    assert c.qty_step == D("0.001")
    assert c.min_notional_value == D("5")


def test_lot_size_filter_without_market_cap_uses_max_qty() -> None:
    c = LotSizeFilter.model_validate({"maxOrderQty": "100", "minOrderQty": "1", "qtyStep": "1"}).to_constraints()
    assert c.max_mkt_order_qty == D("100")
    assert c.min_notional_value == D("0")


def test_lot_size_filter_rejects_inconsistent_limits() -> None:
    with pytest.raises(ValueError):
        LotSizeFilter.model_validate({"maxOrderQty": "1", "minOrderQty": "5", "qtyStep": "1"}).to_constraints()


def test_ticker_prefers_mark_price() -> None:
    assert TickerInfo.model_validate({"symbol": "X", "markPrice": "10.5", "lastPrice": "10.4"}).reference_price == D("10.5")
    assert TickerInfo.model_validate({"symbol": "X", "markPrice": "", "lastPrice": "10.4"}).reference_price == D("10.4")
    assert TickerInfo.model_validate({"symbol": "X"}).reference_price is None


def test_order_params_for_limit_counter_order() -> None:
    req = transform(order_event(take_profit=D("110"), stop_loss=D("95")), D("0.5"), qty_step=D("0.1"))
    p = order_params(req)

    assert p == {
        "category": "linear",
        "symbol": "BTCUSDT",
        "side": "Sell",
        "orderType": "Limit",
        "qty": "0.5",
        "price": "100",
        "takeProfit": "95",
        "stopLoss": "110",
        "tpslMode": "Partial",
        "timeInForce": "GTC",
        "positionIdx": 0,
        "reduceOnly": False,
        "closeOnTrigger": False,
        "orderLinkId": "counter_abc123",
    }


def test_order_params_for_bare_market_order() -> None:
    req = transform(order_event(order_type="Market", price=None, take_profit=None, stop_loss=None), D("2"))
    p = order_params(req)

    assert "price" not in p
    assert "takeProfit" not in p
    assert "stopLoss" not in p
    assert "tpslMode" not in p
    assert p["orderType"] == "Market"
    assert p["side"] == "Sell"
