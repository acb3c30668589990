"""
Lifecycle events published by the model session and the request server.

Publishers do not know who is listening; any number of subscribers (console
notifications, logging, a control UI) can attach to an EventBus.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from threading import Lock

logger = logging.getLogger("llamadock")


class EventType(str, Enum):
    """Kinds of lifecycle events"""

    SERVER_STARTED = "server_started"
    SERVER_STOPPED = "server_stopped"
    REQUEST_RECEIVED = "request_received"
    MODEL_LOADING = "model_loading"
    MODEL_LOADED = "model_loaded"
    GENERATING = "generating"
    GENERATION_COMPLETE = "generation_complete"
    MODEL_RELEASED = "model_released"
    ERROR = "error"


@dataclass(frozen=True)
class Event:
    """A single lifecycle event."""

    type: EventType
    subject: str | None = None  # configuration name, request path, port...
    message: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Subscriber = Callable[[Event], None]


class EventBus:
    """Thread-safe fan-out of events to subscribers."""

    def __init__(self):
        self._lock = Lock()
        self._subscribers: list[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register a subscriber.

        Returns:
            A function that removes the subscription when called
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, event_type: EventType, subject: str | None = None, message: str = "") -> Event:
        """Deliver an event to every subscriber; a failing subscriber never affects the publisher."""
        event = Event(type=event_type, subject=subject, message=message)

        with self._lock:
            subscribers = list(self._subscribers)

        for callback in subscribers:
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Event subscriber failed on {event_type.value}: {e}", exc_info=True)

        return event
