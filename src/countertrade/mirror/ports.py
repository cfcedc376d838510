from __future__ import annotations

from decimal import Decimal
from typing import Protocol

from countertrade.core.config.settings import AccountName
from countertrade.mirror.models import AccountBalance, CounterOrderRequest, InstrumentConstraints, SubmitResult


class BalanceSource(Protocol):
    """
    Equity snapshot for one sub-account. None when the coin is not found
    or the exchange could not be queried.
    """

    async def get_balance(self, account: AccountName, coin: str) -> AccountBalance | None:
        ...


class InstrumentSource(Protocol):
    async def get_instrument_constraints(self, symbol: str) -> InstrumentConstraints | None:
        ...


class PriceSource(Protocol):
    """
    Mark/last price used to size Market orders, which carry no limit price.
    """

    async def get_reference_price(self, symbol: str) -> Decimal | None:
        ...


class OrderSink(Protocol):
    async def submit_order(self, request: CounterOrderRequest) -> SubmitResult:
        ...


class Notifier(Protocol):
    """
    Best-effort operator notification. Returns False on delivery failure.
    """

    async def notify(self, text: str) -> bool:
        ...
