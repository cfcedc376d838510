# src/countertrade/storage/jsonl.py
from __future__ import annotations

import json
import os
from dataclasses import asdict
from pathlib import Path
from typing import IO, Any, Callable, Mapping, Sequence

from countertrade.core.events.base import Event
from countertrade.core.events.mirror import CounterOrderPlaced, CounterOrderRejected, MirrorAborted, OrderDetected
from countertrade.core.events.system import ServiceStarted, ServiceStopped

JOURNALED_EVENTS: tuple[type[Event], ...] = (
    ServiceStarted,
    ServiceStopped,
    OrderDetected,
    CounterOrderPlaced,
    CounterOrderRejected,
    MirrorAborted,
)


class JsonlEventStore:
    """
    Append-only JSONL event store.

    - One event per line (JSON dict), in publish order.
    - Decimal, UUID and datetime values are written as strings.
    - fsync on demand for crash safety.
    """

    def __init__(self, *, path: Path, fsync: bool = True) -> None:
        self._path = path
        self._fsync = fsync
        self._fh: IO[str] | None = None

        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._path

    def open(self) -> None:
        if self._fh is not None:
            return
        self._fh = self._path.open("a", encoding="utf-8", buffering=1)

    def close(self) -> None:
        if self._fh is None:
            return
        try:
            self._fh.flush()
            if self._fsync:
                os.fsync(self._fh.fileno())
        finally:
            self._fh.close()
            self._fh = None

    def append(self, event: Event) -> None:
        self.open()
        assert self._fh is not None

        line = json.dumps(event_to_dict(event), sort_keys=True, separators=(",", ":"), default=str)
        self._fh.write(line + "\n")
        self._fh.flush()
        if self._fsync:
            os.fsync(self._fh.fileno())

    def iter_events(self) -> list[Mapping[str, Any]]:
        """
        Read all journaled events as dicts.
        """
        if not self._path.exists():
            return []
        out: list[Mapping[str, Any]] = []
        with self._path.open("r", encoding="utf-8") as fh:
            for line in fh:
                s = line.strip()
                if not s:
                    continue
                out.append(json.loads(s))
        return out


class EventJournal:
    """
    EventBus component: persists service and mirroring events to a JsonlEventStore.
    """

    def __init__(self, store: JsonlEventStore) -> None:
        self._store = store

    @property
    def store(self) -> JsonlEventStore:
        return self._store

    def subscriptions(self) -> Sequence[tuple[str, Callable[[Event], None]]]:
        return [(cls.event_type, self._on_event) for cls in JOURNALED_EVENTS]

    def _on_event(self, event: Event) -> None:
        self._store.append(event)


def event_to_dict(event: Event) -> dict[str, Any]:
    d = asdict(event)
    # event_type is a ClassVar, so asdict leaves it out
    d["event_type"] = event.event_type
    return d
