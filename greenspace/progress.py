"""Session-keyed progress channel.

Each analysis publishes under its session id. Consumers either `subscribe`
(a queue they drain at their own pace) or register a callback with
`add_listener`. Delivery never crosses sessions and a failing listener
never blocks the others or the publisher.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from django.utils import timezone

from .exceptions import ChannelDeliveryFailure
from .metrics import greenspace_progress_delivery_failures_total

logger = logging.getLogger(__name__)

ANALYSIS_STARTED = "analysis-started"
ANALYSIS_COMPLETED = "analysis-completed"
ANALYSIS_ERROR = "analysis-error"
TERMINAL_EVENT_TYPES = frozenset({ANALYSIS_COMPLETED, ANALYSIS_ERROR})

Listener = Callable[["ProgressEvent"], None]


@dataclass(frozen=True)
class ProgressEvent:
    session_id: str
    type: str
    payload: dict[str, Any]
    timestamp: datetime = field(default_factory=timezone.now)

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_EVENT_TYPES

    def as_message(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "session_id": self.session_id,
            "data": {**self.payload, "timestamp": self.timestamp.isoformat()},
        }


class Subscription:
    """One consumer's view of a session's events, in publish order."""

    def __init__(self, channel: ProgressChannel, session_id: str) -> None:
        self.channel = channel
        self.session_id = session_id
        self._queue: queue.Queue[ProgressEvent] = queue.Queue()
        self.closed = False

    def deliver(self, event: ProgressEvent) -> None:
        self._queue.put_nowait(event)

    def get(self, timeout: float | None = None) -> ProgressEvent | None:
        """Next event, or None when nothing arrived within `timeout`."""

        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def __iter__(self) -> Iterator[ProgressEvent]:
        while True:
            event = self._queue.get()
            yield event
            if event.is_terminal:
                return

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.channel.remove_listener(self.session_id, self.deliver)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class ProgressChannel:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: dict[str, list[Listener]] = {}

    def add_listener(self, session_id: str, listener: Listener) -> None:
        with self._lock:
            self._listeners.setdefault(session_id, []).append(listener)

    def remove_listener(self, session_id: str, listener: Listener) -> None:
        with self._lock:
            listeners = self._listeners.get(session_id)
            if not listeners:
                return
            try:
                listeners.remove(listener)
            except ValueError:
                return
            if not listeners:
                del self._listeners[session_id]

    def subscribe(self, session_id: str) -> Subscription:
        subscription = Subscription(self, session_id)
        self.add_listener(session_id, subscription.deliver)
        return subscription

    def listener_count(self, session_id: str) -> int:
        with self._lock:
            return len(self._listeners.get(session_id, ()))

    def publish(
        self, session_id: str, event_type: str, payload: dict[str, Any]
    ) -> ProgressEvent:
        event = ProgressEvent(session_id, event_type, dict(payload))
        with self._lock:
            if event.is_terminal:
                listeners = self._listeners.pop(session_id, [])
            else:
                listeners = list(self._listeners.get(session_id, ()))

        for listener in listeners:
            try:
                listener(event)
            except Exception as exc:
                failure = ChannelDeliveryFailure(session_id, event_type, exc)
                greenspace_progress_delivery_failures_total.labels(
                    event_type=event_type
                ).inc()
                logger.warning(
                    "greenspace.progress.delivery_failed %s", failure
                )
        return event

    def reporter(
        self, session_id: str
    ) -> Callable[[str, dict[str, Any]], None]:
        """Bind a session id, giving the analyzer's `progress` callable."""

        def report(event_type: str, payload: dict[str, Any]) -> None:
            self.publish(session_id, event_type, payload)

        return report
