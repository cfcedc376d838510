from __future__ import annotations

import structlog

from countertrade import __version__
from countertrade.core.engine.state import ServiceState
from countertrade.core.events.bus import EventBus
from countertrade.core.events.system import ServiceStarted, ServiceStopped
from countertrade.core.logging.setup import bind_context

log = structlog.get_logger()


class ServiceLifecycle:
    """
    Explicit start/stop controller for the mirror service.

    Transitions are audited via ServiceStarted / ServiceStopped events.
    """

    def __init__(self, *, bus: EventBus, state: ServiceState) -> None:
        self._bus = bus
        self._state = state

    @property
    def state(self) -> ServiceState:
        return self._state

    def start(self) -> None:
        if self._state.is_running:
            raise RuntimeError("service already running")

        bind_context(service_id=self._state.service_id)

        self._state.sequence = 0
        self._state.events_seen = 0
        self._state.events_mirrored = 0

        # sequence allocation requires the running flag
        self._state.is_running = True

        self._bus.publish(
            ServiceStarted.create(
                service_id=self._state.service_id,
                version=__version__,
                sequence=self._state.next_sequence(),
            )
        )

        log.info("service.started", service_id=self._state.service_id, version=__version__)

    def stop(self) -> None:
        if not self._state.is_running:
            raise RuntimeError("service not running")

        seq = self._state.next_sequence()
        self._state.is_running = False

        self._bus.publish(
            ServiceStopped.create(
                service_id=self._state.service_id,
                sequence=seq,
            )
        )

        log.info(
            "service.stopped",
            service_id=self._state.service_id,
            events_seen=self._state.events_seen,
            events_mirrored=self._state.events_mirrored,
        )
