#!/usr/bin/env python3
# CUI // SP-PROPIN
"""Progress event channel for pipeline runs.

Components announce what they are doing as ProgressEvents; a presentation
layer (CLI, dashboard, audit sink) subscribes with a callback. The channel
is one-way: subscribers cannot influence the run, and a failing subscriber
is logged and skipped. Every event is mirrored to the "rfxcore.events"
logger at the matching level.

    with ProgressChannel() as channel:
        channel.subscribe(print)
        channel.emit(Component.MAIN, "Reading RFP", EventLevel.THINKING)
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List
from uuid import uuid4

logger = logging.getLogger("rfxcore.events")


class EventLevel(Enum):
    INFO = "info"
    THINKING = "thinking"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class Component(Enum):
    MAIN = "Main Agent"
    TECHNICAL = "Technical Agent"
    PRICING = "Pricing Agent"
    RISK = "Risk Agent"
    COMPLIANCE = "Compliance Agent"
    STRATEGY = "Strategy Agent"
    RESPONSE = "Response Agent"


_LOG_LEVELS = {
    EventLevel.INFO: logging.INFO,
    EventLevel.THINKING: logging.DEBUG,
    EventLevel.SUCCESS: logging.INFO,
    EventLevel.WARNING: logging.WARNING,
    EventLevel.ERROR: logging.ERROR,
}


@dataclass(frozen=True)
class ProgressEvent:
    """One progress message from a pipeline component."""
    component: Component
    message: str
    level: EventLevel = EventLevel.INFO
    event_id: str = field(default_factory=lambda: uuid4().hex[:12])
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "timestamp": self.timestamp,
            "component": self.component.value,
            "message": self.message,
            "level": self.level.value,
        }


Subscriber = Callable[[ProgressEvent], Any]


class ProgressChannel:
    """Fan-out of progress events to subscribers, scoped to one run."""

    def __init__(self):
        self._subscribers: List[Subscriber] = []
        self._events: List[ProgressEvent] = []
        self._close_hooks: List[Callable[[], Any]] = []
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def events(self) -> List[ProgressEvent]:
        """Events emitted since the channel was last opened."""
        return list(self._events)

    def subscribe(self, callback: Subscriber):
        self._subscribers.append(callback)

    def on_close(self, callback: Callable[[], Any]):
        """Register a callback run each time an open channel is closed."""
        self._close_hooks.append(callback)

    def open(self):
        self._events = []
        self._open = True

    def close(self):
        if not self._open:
            return
        self._open = False
        for callback in list(self._close_hooks):
            try:
                callback()
            except Exception:
                logger.exception("Progress channel close hook %r failed", callback)

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def emit(self, component: Component, message: str,
             level: EventLevel = EventLevel.INFO) -> ProgressEvent:
        """Record and deliver an event.

        Raises:
            RuntimeError: the channel is not open.
        """
        if not self._open:
            raise RuntimeError("Cannot emit on a closed progress channel")

        event = ProgressEvent(component=component, message=message, level=level)
        self._events.append(event)
        logger.log(_LOG_LEVELS[level], "[%s] %s", component.value, message)

        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception("Progress subscriber %r failed on event %s",
                                 callback, event.event_id)
        return event
