from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from countertrade.core.events.base import Event


@dataclass(frozen=True, slots=True)
class ServiceStarted(Event):
    """
    Emitted when the mirror service starts consuming order events.
    """

    event_type: ClassVar[str] = "service.started"

    service_id: str
    version: str


@dataclass(frozen=True, slots=True)
class ServiceStopped(Event):
    """
    Emitted when the mirror service stops.
    """

    event_type: ClassVar[str] = "service.stopped"

    service_id: str
