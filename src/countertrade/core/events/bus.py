from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Iterable, Protocol, Sequence, TypeAlias

import structlog

from countertrade.core.events.base import Event

log = structlog.get_logger()

EventHandler: TypeAlias = Callable[[Event], None]


class EventComponent(Protocol):
    """
    Anything that listens on the bus (journal, test collectors).
    """

    def subscriptions(self) -> Sequence[tuple[str, EventHandler]]:
        ...


@dataclass(frozen=True, slots=True)
class HandlerFailure:
    event_type: str
    handler: str
    error: Exception


def _handler_name(handler: EventHandler) -> str:
    owner = getattr(handler, "__self__", None)
    name = getattr(handler, "__name__", "handler")
    return f"{type(owner).__name__}.{name}" if owner is not None else name


class EventBus:
    """
    Synchronous side channel for service and mirroring events.

    Listeners only observe: a handler that raises is logged and skipped, the
    remaining handlers still receive the event, and publish() hands the
    failures back to the publisher instead of raising into the mirroring path.
    """

    def __init__(self) -> None:
        self._handlers: defaultdict[str, list[EventHandler]] = defaultdict(list)

    def attach(self, components: Iterable[EventComponent]) -> None:
        """
        Subscribe every (event_type, handler) a component declares, in order.

        The same handler wired twice for one event type is a wiring bug.
        """
        for component in components:
            cname = type(component).__name__
            for event_type, handler in component.subscriptions():
                if not event_type:
                    raise ValueError(f"{cname} produced empty event_type")
                if handler in self._handlers[event_type]:
                    raise RuntimeError(f"duplicate subscription: component={cname} event_type={event_type}")
                self._handlers[event_type].append(handler)
                log.debug("bus.attached", component=cname, event_type=event_type)

    def publish(self, event: Event) -> tuple[HandlerFailure, ...]:
        failures: list[HandlerFailure] = []
        for handler in self._handlers.get(event.event_type, ()):
            try:
                handler(event)
            except Exception as e:
                failure = HandlerFailure(event_type=event.event_type, handler=_handler_name(handler), error=e)
                log.error(
                    "bus.handler_failed",
                    event_type=failure.event_type,
                    handler=failure.handler,
                    sequence=event.sequence,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                failures.append(failure)
        return tuple(failures)

    def listeners(self, event_type: str) -> int:
        return len(self._handlers.get(event_type, ()))
