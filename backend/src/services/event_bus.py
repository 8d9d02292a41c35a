"""
In-process event bus for resource usage lifecycle events.

The usage service emits events after a session is started or ended; the MQTT
and webhook notification queues subscribe to them. One EventBus instance is
created by the application and passed to its producers and consumers.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

USAGE_STARTED = "usage.started"
USAGE_ENDED = "usage.ended"


@dataclass
class UsageEvent:
    """
    Payload of a usage lifecycle event.

    Attributes:
        event_type: USAGE_STARTED or USAGE_ENDED
        resource_id: Resource the session belongs to
        user_id: User who started the session
        start_time: Session start time
        end_time: Session end time (None for USAGE_STARTED)
    """

    event_type: str
    resource_id: int
    user_id: int
    start_time: datetime
    end_time: Optional[datetime] = None

    @property
    def occurred_at(self) -> datetime:
        """Time the event refers to: end time for ended sessions, start time otherwise."""
        return self.end_time if self.end_time is not None else self.start_time


EventHandler = Callable[[UsageEvent], None]


class EventBus:
    """
    Synchronous publish/subscribe channel keyed by event type.

    Handlers run in subscription order on the emitting thread. A handler that
    raises is logged and skipped; the emitter never sees the error.
    """

    def __init__(self) -> None:
        self._handlers: Dict[str, List[EventHandler]] = {}

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """Register handler for event_type. Registering the same handler twice is a no-op."""
        handlers = self._handlers.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)

    def unsubscribe(self, event_type: str, handler: EventHandler) -> None:
        """Remove a previously registered handler."""
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)
        if not handlers:
            self._handlers.pop(event_type, None)

    def emit(self, event_type: str, event: UsageEvent) -> int:
        """
        Deliver event to every handler subscribed to event_type.

        Args:
            event_type: Event name (e.g. USAGE_STARTED)
            event: Event payload

        Returns:
            Number of handlers that completed without raising
        """
        delivered = 0
        for handler in list(self._handlers.get(event_type, [])):
            try:
                handler(event)
                delivered += 1
            except Exception as e:
                logger.exception(
                    f"Handler {getattr(handler, '__qualname__', handler)} failed for "
                    f"{event_type} (resource {event.resource_id}): {e}"
                )
        if not self._handlers.get(event_type):
            logger.debug(f"No subscribers for {event_type}")
        return delivered
