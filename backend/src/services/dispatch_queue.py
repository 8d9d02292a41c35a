"""
Retrying in-memory delivery queue shared by the MQTT and webhook publishers.

Usage events are turned into delivery items, grouped by resource. A periodic
tick() attempts every item whose retry delay has elapsed. Delivered items are
removed; failed items are retried until they reach max_attempts and are then
dropped with an error log. Delivery is at-least-once: an endpoint may see the
same notification more than once, and there is no ordering between items.

The queue lives in process memory only. Items pending at shutdown are lost,
and every API process keeps its own queue.
"""

import asyncio
import logging
from contextlib import AbstractContextManager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from core.database import get_db_context
from services.event_bus import EventBus, UsageEvent, USAGE_STARTED, USAGE_ENDED
from utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractContextManager[Session]]


@dataclass
class DeliveryItem:
    """
    One pending notification.

    Attributes:
        resource_id: Resource the notification is about
        payload: Rendered message body
        max_attempts: Attempts allowed before the item is dropped (0 when
            retries are disabled, which still allows a single attempt)
        retry_delay_ms: Minimum time between attempts
        attempts: Failed attempts so far
        last_attempt: Time of the last failed attempt (None means due now)
    """

    resource_id: int
    payload: str
    max_attempts: int
    retry_delay_ms: int
    attempts: int = 0
    last_attempt: Optional[datetime] = None

    def is_due(self, now: datetime) -> bool:
        """True if the item has never been attempted or its retry delay has elapsed."""
        if self.last_attempt is None:
            return True
        return now - self.last_attempt >= timedelta(milliseconds=self.retry_delay_ms)

    def describe(self) -> str:
        """Short description of the target, used in log messages."""
        return f"resource {self.resource_id}"


class DispatchQueue:
    """
    Base class for notification queues keyed by resource id.

    Subclasses implement build_items() to turn a usage event into delivery
    items and deliver() to perform one delivery attempt (raising on failure).
    """

    name = "dispatch"

    def __init__(
        self,
        session_factory: SessionFactory = get_db_context,
        clock: Callable[[], datetime] = utc_now
    ):
        """
        Initialize the queue.

        Args:
            session_factory: Context manager factory yielding a DB session,
                used when reacting to usage events
            clock: Returns the current time; replaced in tests
        """
        self._session_factory = session_factory
        self._clock = clock
        self._queue: Dict[int, List[DeliveryItem]] = {}
        self._tick_lock = asyncio.Lock()

    # ===== Event subscription =====

    def register(self, event_bus: EventBus) -> None:
        """Subscribe to usage.started and usage.ended on the given bus."""
        event_bus.subscribe(USAGE_STARTED, self.handle_usage_event)
        event_bus.subscribe(USAGE_ENDED, self.handle_usage_event)

    def handle_usage_event(self, event: UsageEvent) -> None:
        """Build delivery items for an event and enqueue them."""
        with self._session_factory() as db:
            items = self.build_items(db, event)

        for item in items:
            self.enqueue(item)

        if items:
            logger.info(
                f"[{self.name}] Queued {len(items)} notification(s) for {event.event_type} "
                f"on resource {event.resource_id}"
            )

    def build_items(self, db: Session, event: UsageEvent) -> List[DeliveryItem]:
        """Turn a usage event into delivery items. Implemented by subclasses."""
        raise NotImplementedError

    async def deliver(self, item: DeliveryItem) -> None:
        """Attempt one delivery, raising on failure. Implemented by subclasses."""
        raise NotImplementedError

    # ===== Queue state =====

    def enqueue(self, item: DeliveryItem) -> None:
        """Add an item to its resource's queue."""
        self._queue.setdefault(item.resource_id, []).append(item)

    def pending_count(self) -> int:
        """Total number of queued items across all resources."""
        return sum(len(items) for items in self._queue.values())

    def pending_for(self, resource_id: int) -> List[DeliveryItem]:
        """Copy of the items queued for a resource."""
        return list(self._queue.get(resource_id, []))

    def clear(self) -> None:
        """Drop every queued item."""
        self._queue.clear()

    # ===== Processing =====

    async def tick(self) -> None:
        """
        Process every queued item once.

        Items whose retry delay has not elapsed are skipped. Successful items
        are removed; failed items are retried until max_attempts is reached,
        then dropped. Concurrent calls are serialized so one tick finishes
        before the next begins.
        """
        async with self._tick_lock:
            for resource_id in list(self._queue.keys()):
                snapshot = list(self._queue.get(resource_id, []))
                remaining: List[DeliveryItem] = []
                for item in snapshot:
                    if not item.is_due(self._clock()):
                        remaining.append(item)
                        continue

                    if await self._attempt(item):
                        continue

                    if item.attempts < item.max_attempts:
                        remaining.append(item)
                    else:
                        logger.error(
                            f"[{self.name}] Dropping notification for {item.describe()} "
                            f"after {item.attempts} attempt(s)"
                        )

                # Items enqueued while this resource was being processed
                processed = {id(item) for item in snapshot}
                remaining.extend(
                    item for item in self._queue.get(resource_id, []) if id(item) not in processed
                )
                if remaining:
                    self._queue[resource_id] = remaining
                else:
                    self._queue.pop(resource_id, None)

    async def _attempt(self, item: DeliveryItem) -> bool:
        try:
            await self.deliver(item)
            logger.debug(f"[{self.name}] Delivered notification for {item.describe()}")
            return True
        except Exception as e:
            item.attempts += 1
            item.last_attempt = self._clock()
            logger.warning(
                f"[{self.name}] Delivery failed for {item.describe()} "
                f"(attempt {item.attempts}/{max(item.max_attempts, 1)}): {e}"
            )
            return False
