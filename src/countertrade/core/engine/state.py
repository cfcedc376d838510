from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class ServiceState:
    """
    Process-local state of the mirror service.

    - sequence: monotonic counter used to order journal events
    - events_seen / events_mirrored: counters for shutdown diagnostics

    Guardrail: next_sequence is only valid while the service is running,
    so nothing can be journalled after stop.
    """

    service_id: str
    sequence: int = 0
    events_seen: int = 0
    events_mirrored: int = 0
    is_running: bool = False

    def next_sequence(self) -> int:
        if not self.is_running:
            raise RuntimeError("cannot advance sequence when service is not running")
        self.sequence += 1
        return self.sequence
