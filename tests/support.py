"""
In-memory collaborators and builders shared by the unit and integration tests.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any

from countertrade.core.engine.state import ServiceState
from countertrade.core.events.base import Event
from countertrade.core.events.bus import EventBus
from countertrade.mirror.models import (
    AccountBalance,
    CounterOrderRequest,
    InstrumentConstraints,
    OrderEvent,
    SubmitResult,
)
from countertrade.mirror.orchestrator import MirrorOrchestrator
from countertrade.storage.jsonl import JOURNALED_EVENTS


def D(x: str | int) -> Decimal:
    return Decimal(str(x))


def balance(equity: str | int) -> AccountBalance:
    return AccountBalance(wallet_balance=D(equity), available_to_withdraw=D(equity), equity=D(equity))


def order_event(**overrides: Any) -> OrderEvent:
    fields: dict[str, Any] = dict(
        order_id="abc123",
        link_id="",
        symbol="BTCUSDT",
        side="Buy",
        order_type="Limit",
        status="New",
        creation_origin="user",
        qty=D("5"),
        price=D("100"),
        cum_exec_value=D("500"),
        take_profit=D("110"),
        stop_loss=D("95"),
    )
    fields.update(overrides)
    return OrderEvent(**fields)


class FakeBalances:
    """
    account -> AccountBalance | None | Exception
    """

    def __init__(self, by_account: dict[str, Any]) -> None:
        self.by_account = by_account
        self.calls: list[tuple[str, str]] = []

    async def get_balance(self, account: str, coin: str) -> AccountBalance | None:
        self.calls.append((account, coin))
        v = self.by_account.get(account)
        if isinstance(v, Exception):
            raise v
        return v


class FakeInstruments:
    def __init__(self, constraints: Any) -> None:
        self.constraints = constraints
        self.calls: list[str] = []

    async def get_instrument_constraints(self, symbol: str) -> InstrumentConstraints | None:
        self.calls.append(symbol)
        if isinstance(self.constraints, Exception):
            raise self.constraints
        return self.constraints


class FakePrices:
    def __init__(self, price: Decimal | None = None) -> None:
        self.price = price
        self.calls: list[str] = []

    async def get_reference_price(self, symbol: str) -> Decimal | None:
        self.calls.append(symbol)
        return self.price


class FakeOrders:
    def __init__(self, result: SubmitResult | Exception | None = None) -> None:
        self.result = result if result is not None else SubmitResult(ret_code=0, ret_msg="OK", result={"orderId": "x"})
        self.requests: list[CounterOrderRequest] = []

    async def submit_order(self, request: CounterOrderRequest) -> SubmitResult:
        self.requests.append(request)
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


class RecordingNotifier:
    def __init__(self, *, fail: bool = False) -> None:
        self.messages: list[str] = []
        self.fail = fail

    async def notify(self, text: str) -> bool:
        if self.fail:
            raise RuntimeError("telegram down")
        self.messages.append(text)
        return True


class Collector:
    """
    Records every journaled event type published on the bus.
    """

    def __init__(self) -> None:
        self.events: list[Event] = []

    def subscriptions(self):
        return [(cls.event_type, self._on_event) for cls in JOURNALED_EVENTS]

    def _on_event(self, e: Event) -> None:
        self.events.append(e)

    def types(self) -> list[str]:
        return [e.event_type for e in self.events]


class Harness:
    def __init__(
        self,
        *,
        balances: dict[str, Any] | None = None,
        constraints: Any = None,
        price: Decimal | None = None,
        result: SubmitResult | Exception | None = None,
        notifier_fails: bool = False,
    ) -> None:
        self.bus = EventBus()
        self.state = ServiceState(service_id="test", is_running=True)
        self.collector = Collector()
        self.bus.attach([self.collector])

        self.balances = FakeBalances(
            balances if balances is not None else {"trading": balance(10000), "counter": balance(1000)}
        )
        self.instruments = FakeInstruments(
            constraints
            if constraints is not None
            else InstrumentConstraints(
                min_order_qty=D("0.1"),
                max_order_qty=D("100"),
                max_mkt_order_qty=D("50"),
                qty_step=D("0.1"),
            )
        )
        self.prices = FakePrices(price)
        self.orders = FakeOrders(result)
        self.notifier = RecordingNotifier(fail=notifier_fails)

        self.orchestrator = MirrorOrchestrator(
            balances=self.balances,
            instruments=self.instruments,
            prices=self.prices,
            orders=self.orders,
            notifier=self.notifier,
            bus=self.bus,
            state=self.state,
        )


# A private-stream "order" entry as Bybit sends it
WS_LIMIT_ORDER: dict[str, Any] = {
    "category": "linear",
    "symbol": "BTCUSDT",
    "orderId": "5cf98598-39a7-459e-97bf-76ca765ee020",
    "orderLinkId": "",
    "side": "Buy",
    "orderType": "Limit",
    "orderStatus": "New",
    "createType": "CreateByUser",
    "price": "72500.5",
    "qty": "0.010",
    "cumExecValue": "0",
    "takeProfit": "80000",
    "stopLoss": "",
    "timeInForce": "GTC",
    "positionIdx": 0,
    "reduceOnly": False,
}


class FakeResponse:
    """
    What aiohttp's request context manager yields; raises `error` on enter when set.
    """

    def __init__(self, status: int = 200, text: str = "", *, error: Exception | None = None) -> None:
        self.status = status
        self._text = text
        self._error = error

    async def text(self) -> str:
        return self._text

    async def __aenter__(self) -> "FakeResponse":
        if self._error is not None:
            raise self._error
        return self

    async def __aexit__(self, *exc: Any) -> bool:
        return False


class FakeSession:
    """
    Replays canned responses in order and records every request.
    """

    def __init__(self, *responses: FakeResponse) -> None:
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    def request(self, method: str, url: str, *, data: str | None = None, headers: dict[str, str] | None = None) -> FakeResponse:
        self.calls.append({"method": method, "url": url, "data": data, "headers": headers or {}})
        return self.responses.pop(0)

    def post(self, url: str, *, json: Any = None) -> FakeResponse:
        self.calls.append({"method": "POST", "url": url, "json": json})
        return self.responses.pop(0)
