from __future__ import annotations

import asyncio
from typing import Sequence, TypeAlias

import structlog

from countertrade.core.engine.lifecycle import ServiceLifecycle
from countertrade.core.engine.state import ServiceState
from countertrade.core.events.bus import EventBus
from countertrade.mirror.classifier import should_mirror
from countertrade.mirror.models import MirrorOutcome, OrderEvent
from countertrade.mirror.orchestrator import MirrorOrchestrator

log = structlog.get_logger()

# Inbound channel: batches of order updates; None closes the channel.
OrderChannel: TypeAlias = "asyncio.Queue[Sequence[OrderEvent] | None]"


class MirrorService:
    """
    Single-threaded dispatch loop.

    Consumes OrderEvent batches from the channel and processes every event of
    a batch in order, awaiting each mirroring operation before the next, so at
    most one operation is in flight. A failure while processing one event is
    logged and never stops the loop.
    """

    def __init__(
        self,
        *,
        bus: EventBus,
        state: ServiceState,
        orchestrator: MirrorOrchestrator,
        channel: OrderChannel | None = None,
    ) -> None:
        self._bus = bus
        self._state = state
        self._lifecycle = ServiceLifecycle(bus=bus, state=state)
        self._orchestrator = orchestrator
        self._channel: OrderChannel = channel if channel is not None else asyncio.Queue()

    @property
    def channel(self) -> OrderChannel:
        return self._channel

    @property
    def state(self) -> ServiceState:
        return self._state

    def stop(self) -> None:
        """
        Close the channel. Batches already queued are still processed.
        """
        self._channel.put_nowait(None)

    async def run(self) -> None:
        self._lifecycle.start()
        try:
            while True:
                batch = await self._channel.get()
                if batch is None:
                    break
                await self.process_batch(batch)
        finally:
            self._lifecycle.stop()

    async def process_batch(self, batch: Sequence[OrderEvent]) -> list[MirrorOutcome]:
        outcomes: list[MirrorOutcome] = []
        for event in batch:
            outcome = await self.process_event(event)
            if outcome is not None:
                outcomes.append(outcome)
        return outcomes

    async def process_event(self, event: OrderEvent) -> MirrorOutcome | None:
        self._state.events_seen += 1

        if not should_mirror(event):
            log.debug(
                "service.event_ignored",
                order_id=event.order_id,
                link_id=event.link_id,
                status=event.status,
                creation_origin=event.creation_origin,
            )
            return None

        try:
            outcome = await self._orchestrator.on_qualifying_event(event)
        except Exception:
            log.exception("service.event_failed", order_id=event.order_id, symbol=event.symbol)
            return None

        log.info(
            "service.event_processed",
            order_id=event.order_id,
            symbol=event.symbol,
            status=outcome.status,
        )
        return outcome
