# src/countertrade/mirror/orchestrator.py
from __future__ import annotations

from decimal import Decimal
from typing import Any

import structlog

from countertrade.core.config.settings import BYBIT_INSUFFICIENT_BALANCE, AccountName
from countertrade.core.engine.state import ServiceState
from countertrade.core.events.base import Event
from countertrade.core.events.bus import EventBus
from countertrade.core.events.mirror import CounterOrderPlaced, CounterOrderRejected, MirrorAborted, OrderDetected
from countertrade.errors import SizingError
from countertrade.mirror import sizer
from countertrade.mirror.models import (
    AbortStage,
    AccountBalance,
    CounterOrderRequest,
    MirrorOutcome,
    OrderEvent,
)
from countertrade.mirror.ports import BalanceSource, InstrumentSource, Notifier, OrderSink, PriceSource
from countertrade.mirror.transformer import transform

log = structlog.get_logger()


def _or(value: Decimal | None, fallback: str) -> str:
    return fallback if value is None else f"{value:f}"


def describe_original(event: OrderEvent) -> str:
    return (
        "Original Order:\n"
        f"{event.side} {event.symbol}\n"
        f"Size: {event.qty:f}\n"
        f"Entry: {_or(event.price, 'Market')}\n"
        f"TP: {_or(event.take_profit, 'None')}\n"
        f"SL: {_or(event.stop_loss, 'None')}"
    )


def describe_counter(request: CounterOrderRequest) -> str:
    return (
        "Counter Order:\n"
        f"{request.side} {request.symbol}\n"
        f"Size: {request.qty}\n"
        f"Entry: {_or(request.price, 'Market')}\n"
        f"TP: {_or(request.take_profit, 'None')}\n"
        f"SL: {_or(request.stop_loss, 'None')}"
    )


class MirrorOrchestrator:
    """
    Turns one qualifying primary-account order into one counter-order.

    Sequence:
      primary balance -> counter balance -> instrument constraints
      -> reference price -> size -> transform -> submit -> interpret

    Nothing expected escapes on_qualifying_event: fetch failures, sizing
    errors, exchange rejections and transport errors all end the operation
    for this event and are reported through the returned MirrorOutcome, the
    log, the journal (EventBus) and the notifier.
    """

    def __init__(
        self,
        *,
        balances: BalanceSource,
        instruments: InstrumentSource,
        prices: PriceSource,
        orders: OrderSink,
        notifier: Notifier,
        bus: EventBus,
        state: ServiceState,
        coin: str = "USDT",
        insufficient_balance_code: int = BYBIT_INSUFFICIENT_BALANCE,
    ) -> None:
        self._balances = balances
        self._instruments = instruments
        self._prices = prices
        self._orders = orders
        self._notifier = notifier
        self._bus = bus
        self._state = state
        self._coin = coin
        self._insufficient_balance_code = insufficient_balance_code

    async def on_qualifying_event(self, event: OrderEvent) -> MirrorOutcome:
        with structlog.contextvars.bound_contextvars(order_id=event.order_id, symbol=event.symbol):
            return await self._mirror(event)

    # ---------------- Sequence ----------------

    async def _mirror(self, event: OrderEvent) -> MirrorOutcome:
        log.info(
            "mirror.order_detected",
            side=event.side,
            order_type=event.order_type,
            status=event.status,
            qty=event.qty,
            price=event.price,
            cum_exec_value=event.cum_exec_value,
            take_profit=event.take_profit,
            stop_loss=event.stop_loss,
        )
        self._publish(
            OrderDetected,
            order_id=event.order_id,
            symbol=event.symbol,
            side=event.side,
            order_type=event.order_type,
            status=event.status,
            qty=event.qty,
            price=event.price,
            cum_exec_value=event.cum_exec_value,
        )
        await self._notify(describe_original(event))

        primary = await self._fetch_balance("trading")
        if primary is None:
            return await self._abort(event, "primary_balance", "trading account balance unavailable")

        counter = await self._fetch_balance("counter")
        if counter is None:
            return await self._abort(event, "counter_balance", "counter-trading account balance unavailable")

        try:
            constraints = await self._instruments.get_instrument_constraints(event.symbol)
        except Exception as e:
            log.error("mirror.instrument_fetch_failed", error_type=type(e).__name__, error=str(e))
            constraints = None
        if constraints is None:
            return await self._abort(event, "instrument", f"instrument info unavailable for {event.symbol}")

        reference_price = await self._reference_price(event)
        if reference_price is None:
            return await self._abort(event, "reference_price", f"no reference price for {event.symbol}")

        try:
            quantity = sizer.size(
                primary_equity=primary.equity,
                counter_equity=counter.equity,
                original_notional=event.cum_exec_value,
                reference_price=reference_price,
                constraints=constraints,
                is_market_order=event.order_type == "Market",
            )
        except SizingError as e:
            return await self._abort(event, "sizing", f"{type(e).__name__}: {e}")

        request = transform(event, quantity, qty_step=constraints.qty_step)

        log.info(
            "mirror.sized",
            primary_equity=primary.equity,
            counter_equity=counter.equity,
            original_notional=event.cum_exec_value,
            reference_price=reference_price,
            qty_step=constraints.qty_step,
            quantity=request.qty,
        )
        log.info(
            "mirror.placing_counter_order",
            side=request.side,
            order_type=request.order_type,
            qty=request.qty,
            price=request.price,
            take_profit=request.take_profit,
            stop_loss=request.stop_loss,
            link_id=request.link_id,
        )
        await self._notify(describe_counter(request))

        return await self._submit(event, request)

    async def _submit(self, event: OrderEvent, request: CounterOrderRequest) -> MirrorOutcome:
        try:
            result = await self._orders.submit_order(request)
        except Exception as e:
            log.error(
                "mirror.submit_failed",
                link_id=request.link_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            self._publish(
                MirrorAborted,
                order_id=event.order_id,
                symbol=event.symbol,
                stage="submit",
                reason=f"{type(e).__name__}: {e}",
            )
            await self._notify(f"Error placing order: {request.symbol} {request.side}")
            return MirrorOutcome(
                status="submit_failed",
                order_id=event.order_id,
                symbol=event.symbol,
                request=request,
                stage="submit",
                reason=f"{type(e).__name__}: {e}",
            )

        if result.ok:
            self._state.events_mirrored += 1
            log.info(
                "mirror.counter_placed",
                link_id=request.link_id,
                ret_code=result.ret_code,
                ret_msg=result.ret_msg,
                result=dict(result.result),
            )
            self._publish(
                CounterOrderPlaced,
                order_id=event.order_id,
                counter_link_id=request.link_id,
                symbol=request.symbol,
                side=request.side,
                qty=request.qty,
                price=None if request.price is None else f"{request.price:f}",
            )
            await self._notify(f"Order placed: {request.symbol} {request.side}")
            return MirrorOutcome(
                status="placed",
                order_id=event.order_id,
                symbol=event.symbol,
                request=request,
                ret_code=result.ret_code,
                ret_msg=result.ret_msg,
            )

        insufficient = result.ret_code == self._insufficient_balance_code
        self._publish(
            CounterOrderRejected,
            order_id=event.order_id,
            counter_link_id=request.link_id,
            symbol=request.symbol,
            ret_code=result.ret_code,
            ret_msg=result.ret_msg,
            insufficient_balance=insufficient,
        )

        if insufficient:
            log.warning(
                "mirror.insufficient_balance",
                link_id=request.link_id,
                qty=request.qty,
                ret_code=result.ret_code,
                ret_msg=result.ret_msg,
            )
            await self._notify(f"Insufficient balance in countertrade account: {request.symbol} {request.side} {request.qty}")
            status = "insufficient_balance"
        else:
            log.warning(
                "mirror.counter_rejected",
                link_id=request.link_id,
                ret_code=result.ret_code,
                ret_msg=result.ret_msg,
            )
            await self._notify(
                f"Order rejected: {request.symbol} {request.side} (retCode {result.ret_code}: {result.ret_msg})"
            )
            status = "rejected"

        return MirrorOutcome(
            status=status,
            order_id=event.order_id,
            symbol=event.symbol,
            request=request,
            ret_code=result.ret_code,
            ret_msg=result.ret_msg,
        )

    # ---------------- Helpers ----------------

    async def _fetch_balance(self, account: AccountName) -> AccountBalance | None:
        try:
            return await self._balances.get_balance(account, self._coin)
        except Exception as e:
            log.error(
                "mirror.balance_fetch_failed",
                account=account,
                error_type=type(e).__name__,
                error=str(e),
            )
            return None

    async def _reference_price(self, event: OrderEvent) -> Decimal | None:
        if event.price is not None and event.price > 0:
            return event.price

        # Market orders carry no limit price: size against the mark price
        try:
            price = await self._prices.get_reference_price(event.symbol)
        except Exception as e:
            log.error("mirror.price_fetch_failed", error_type=type(e).__name__, error=str(e))
            return None
        if price is not None and price <= 0:
            log.error("mirror.price_invalid", price=price)
            return None
        return price

    async def _abort(self, event: OrderEvent, stage: AbortStage, reason: str) -> MirrorOutcome:
        log.error("mirror.aborted", stage=stage, reason=reason)
        self._publish(MirrorAborted, order_id=event.order_id, symbol=event.symbol, stage=stage, reason=reason)
        await self._notify(f"Mirroring aborted: {event.side} {event.symbol} ({reason})")
        return MirrorOutcome(
            status="aborted",
            order_id=event.order_id,
            symbol=event.symbol,
            stage=stage,
            reason=reason,
        )

    async def _notify(self, text: str) -> None:
        try:
            delivered = await self._notifier.notify(text)
        except Exception as e:
            log.error("mirror.notify_failed", error_type=type(e).__name__, error=str(e))
            return
        if not delivered:
            log.debug("mirror.notify_not_delivered")

    def _publish(self, event_cls: type[Event], **fields: Any) -> None:
        event = event_cls.create(sequence=self._state.next_sequence(), **fields)
        # journal failures never interrupt mirroring
        for f in self._bus.publish(event):
            log.error(
                "mirror.journal_failed",
                event_type=f.event_type,
                handler=f.handler,
                error_type=type(f.error).__name__,
                error=str(f.error),
            )
