"""
Notification queue scheduler.

Ticks the MQTT and webhook dispatch queues at fixed intervals so queued
notifications are delivered and failed ones retried.
"""

import logging
from typing import List, Optional, Tuple

from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore
from apscheduler.triggers.interval import IntervalTrigger  # type: ignore

from core.constants import NOTIFICATION_SCHEDULER_MAX_INSTANCES
from services.dispatch_queue import DispatchQueue

logger = logging.getLogger(__name__)


class NotificationQueueScheduler:
    """
    Scheduler for processing notification queues.

    Each registered queue gets its own interval job. A job never overlaps
    with itself, so one tick of a queue finishes before the next begins.
    """

    def __init__(self, queues: Optional[List[Tuple[DispatchQueue, int]]] = None):
        """
        Initialize the scheduler.

        Args:
            queues: (queue, interval in milliseconds) pairs to process
        """
        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self._queues: List[Tuple[DispatchQueue, int]] = list(queues or [])
        self._is_started = False

    def add_queue(self, queue: DispatchQueue, interval_ms: int) -> None:
        """Register a queue; must be called before start_scheduler()."""
        if self._is_started:
            raise RuntimeError("Cannot add queues to a running scheduler")
        self._queues.append((queue, interval_ms))

    @property
    def is_running(self) -> bool:
        return self._is_started

    async def start_scheduler(self) -> None:
        """
        Start the background jobs.

        This should be called during application startup.
        """
        if self._is_started:
            logger.warning("Notification queue scheduler is already started")
            return

        for queue, interval_ms in self._queues:
            self.scheduler.add_job(  # type: ignore
                self._process_queue,
                IntervalTrigger(seconds=interval_ms / 1000.0),
                args=[queue],
                id=f"process_{queue.name}_queue",
                name=f"Process {queue.name} notification queue",
                max_instances=NOTIFICATION_SCHEDULER_MAX_INSTANCES,  # Prevent overlapping runs
                coalesce=True,
                replace_existing=True
            )

        self.scheduler.start()
        self._is_started = True
        logger.info(
            "Notification queue scheduler started: "
            + ", ".join(f"{queue.name} every {interval_ms}ms" for queue, interval_ms in self._queues)
        )

    async def stop_scheduler(self) -> None:
        """
        Stop the background jobs.

        This should be called during application shutdown. Items still queued
        are discarded.
        """
        if self._is_started:
            self.scheduler.shutdown(wait=True)
            self._is_started = False
            logger.info("Notification queue scheduler stopped")

    async def _process_queue(self, queue: DispatchQueue) -> None:
        """Run one tick of a queue."""
        try:
            await queue.tick()
        except Exception as e:
            logger.exception(f"Error processing {queue.name} notification queue: {e}")
