"""In-process telemetry for session activity.

Engine modules call :func:`emit` with one of the session event names; any
number of listeners (a status line, a log exporter, tests) can subscribe.
Nothing is sent off the machine.
"""

from __future__ import annotations

import logging
import time
from collections import Counter, deque
from threading import Lock
from typing import Any, Callable, Iterable, Mapping

LOGGER = logging.getLogger(__name__)

CONTEXT_CLIPPED = "context_clipped"
TRANSCRIPT_RESTORED = "transcript_restored"
EXCHANGE_FAILED = "exchange_failed"
SESSION_EVENTS: tuple[str, ...] = (CONTEXT_CLIPPED, TRANSCRIPT_RESTORED, EXCHANGE_FAILED)

Listener = Callable[[dict[str, Any]], None]

_EVENT_LISTENERS: dict[str, list[Listener]] = {}


def register_event_listener(event_name: str, callback: Listener) -> None:
    """Register a callback invoked whenever :func:`emit` fires *event_name*."""

    if not event_name or callback is None:
        return
    listeners = _EVENT_LISTENERS.setdefault(event_name, [])
    if callback not in listeners:
        listeners.append(callback)


def unregister_event_listener(event_name: str, callback: Listener) -> None:
    listeners = _EVENT_LISTENERS.get(event_name)
    if not listeners or callback not in listeners:
        return
    listeners.remove(callback)
    if not listeners:
        del _EVENT_LISTENERS[event_name]


def emit(event_name: str, payload: Mapping[str, Any] | None = None) -> None:
    """Deliver ``{"event": event_name, **payload}`` to every listener of *event_name*.

    A listener that raises is logged at DEBUG and skipped; the emitting
    session code never sees the failure.
    """

    if not event_name:
        return
    event_payload: dict[str, Any] = {"event": event_name, **(payload or {})}
    for callback in list(_EVENT_LISTENERS.get(event_name, ())):
        try:
            callback(dict(event_payload))
        except Exception:  # pragma: no cover - listeners must not break emitters
            LOGGER.debug("Telemetry listener %s failed for %s", callback, event_name, exc_info=True)
    LOGGER.debug("Telemetry %s: %s", event_name, event_payload)


class EventRecorder:
    """Bounded buffer of emitted events.

    Use it as a listener directly, or as a context manager that subscribes
    to ``names`` (all session events by default) for the duration of the
    block. Each recorded payload gains a ``recorded_at`` epoch timestamp.
    """

    def __init__(self, capacity: int = 200, *, names: Iterable[str] = SESSION_EVENTS) -> None:
        self._capacity = max(10, capacity)
        self._names = tuple(names)
        self._buffer: deque[dict[str, Any]] = deque(maxlen=self._capacity)
        self._lock = Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __call__(self, payload: Mapping[str, Any]) -> None:
        entry = dict(payload)
        entry.setdefault("recorded_at", time.time())
        with self._lock:
            self._buffer.append(entry)

    def __enter__(self) -> EventRecorder:
        self.attach()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.detach()

    def attach(self) -> None:
        for name in self._names:
            register_event_listener(name, self)

    def detach(self) -> None:
        for name in self._names:
            unregister_event_listener(name, self)

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffer)

    def tail(self, limit: int | None = None, *, event: str | None = None) -> list[dict[str, Any]]:
        """Return the newest recorded payloads, optionally only those named *event*."""

        with self._lock:
            events = list(self._buffer)
        if event is not None:
            events = [item for item in events if item.get("event") == event]
        if limit is None or limit >= len(events):
            return events
        return events[-limit:]

    def counts(self) -> Counter[str]:
        """Return how many payloads were recorded per event name."""

        with self._lock:
            return Counter(str(item.get("event")) for item in self._buffer)

    def clear(self) -> None:
        with self._lock:
            self._buffer.clear()


__all__ = [
    "CONTEXT_CLIPPED",
    "EXCHANGE_FAILED",
    "EventRecorder",
    "Listener",
    "SESSION_EVENTS",
    "TRANSCRIPT_RESTORED",
    "emit",
    "register_event_listener",
    "unregister_event_listener",
]
