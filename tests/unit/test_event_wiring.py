from __future__ import annotations

import pytest
from structlog.testing import capture_logs

from countertrade.core.engine.state import ServiceState
from countertrade.core.events.base import Event
from countertrade.core.events.bus import EventBus
from countertrade.core.events.mirror import MirrorAborted


class Recorder:
    def __init__(self) -> None:
        self.seen: list[Event] = []

    def subscriptions(self):
        return [("mirror.aborted", self._on_aborted)]

    def _on_aborted(self, e: Event) -> None:
        self.seen.append(e)


class FullDisk:
    def subscriptions(self):
        return [("mirror.aborted", self._on_aborted)]

    def _on_aborted(self, e: Event) -> None:
        raise OSError("No space left on device")


class Twice:
    def __init__(self) -> None:
        self.handler = lambda e: None

    def subscriptions(self):
        return [("mirror.aborted", self.handler), ("mirror.aborted", self.handler)]


def _aborted() -> MirrorAborted:
    return MirrorAborted.create(sequence=1, order_id="o1", symbol="BTCUSDT", stage="sizing", reason="x")


def test_attached_components_receive_events_in_order() -> None:
    bus = EventBus()
    a, b = Recorder(), Recorder()
    bus.attach([a, b])

    e = _aborted()
    assert bus.publish(e) == ()

    assert a.seen == [e]
    assert b.seen == [e]
    assert bus.listeners("mirror.aborted") == 2
    assert bus.listeners("mirror.counter_placed") == 0


def test_failing_listener_is_reported_and_skipped() -> None:
    bus = EventBus()
    after = Recorder()
    bus.attach([FullDisk(), after])

    with capture_logs() as logs:
        failures = bus.publish(_aborted())

    (failure,) = failures
    assert failure.event_type == "mirror.aborted"
    assert failure.handler == "FullDisk._on_aborted"
    assert isinstance(failure.error, OSError)
    # later listeners still see the event
    assert len(after.seen) == 1
    assert any(e["event"] == "bus.handler_failed" and e["log_level"] == "error" for e in logs)


def test_duplicate_handlers_are_rejected() -> None:
    with pytest.raises(RuntimeError):
        EventBus().attach([Twice()])


def test_sequence_requires_running_service() -> None:
    state = ServiceState(service_id="s")
    with pytest.raises(RuntimeError):
        state.next_sequence()

    state.is_running = True
    assert [state.next_sequence(), state.next_sequence()] == [1, 2]
