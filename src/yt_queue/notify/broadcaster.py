"""Per-job event subscribers and progress throttling."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from yt_queue.models import JobEvent, Progress

if TYPE_CHECKING:
    from collections.abc import Callable

    Subscriber = Callable[[JobEvent], None]

logger = logging.getLogger(__name__)

# Minimum seconds between two progress events of the same job
PROGRESS_INTERVAL = 0.5


class Broadcaster:
    """Delivers job events to the subscribers of each job.

    Subscribers are plain callables. A subscriber that raises is logged
    and skipped; delivery to the others continues.
    """

    def __init__(self) -> None:
        # dict as an insertion-ordered set
        self._subscribers: dict[str, dict[Subscriber, None]] = {}

    def subscribe(self, job_id: str, subscriber: Subscriber) -> None:
        """Register a subscriber for a job's events."""
        self._subscribers.setdefault(job_id, {})[subscriber] = None

    def unsubscribe(self, job_id: str, subscriber: Subscriber) -> None:
        """Remove a subscriber from a job; unknown pairs are ignored."""
        subscribers = self._subscribers.get(job_id)
        if subscribers is None:
            return
        subscribers.pop(subscriber, None)
        if not subscribers:
            del self._subscribers[job_id]

    def unsubscribe_all(self, subscriber: Subscriber) -> None:
        """Remove a subscriber from every job, e.g. when a client leaves."""
        for job_id in list(self._subscribers):
            self.unsubscribe(job_id, subscriber)

    def subscriber_count(self, job_id: str) -> int:
        return len(self._subscribers.get(job_id, ()))

    def clear(self) -> None:
        """Drop all subscriptions."""
        self._subscribers.clear()

    def publish(self, event: JobEvent) -> None:
        """Deliver an event to every subscriber of its job."""
        subscribers = self._subscribers.get(event.job_id)
        if not subscribers:
            return
        for subscriber in list(subscribers):
            try:
                subscriber(event)
            except Exception:
                logger.exception(
                    "Failed to deliver %s event for %s", event.event, event.job_id
                )


class ProgressAggregator:
    """Rate-limits progress events per job before broadcasting them.

    Lifecycle events (started and the terminal ones) are never throttled.

    Attributes:
        broadcaster: Where events are delivered.
        interval: Minimum seconds between progress events of one job.
    """

    def __init__(
        self,
        broadcaster: Broadcaster,
        interval: float = PROGRESS_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.broadcaster = broadcaster
        self.interval = interval
        self._clock = clock
        self._last_sent: dict[str, float] = {}

    def started(self, job_id: str) -> None:
        """Announce that a job's download has begun."""
        self._last_sent.pop(job_id, None)
        self.broadcaster.publish(JobEvent(job_id=job_id, event="started"))

    def notify(self, job_id: str, progress: Progress) -> bool:
        """Send a progress event unless one went out too recently.

        Returns:
            True if the event was delivered, False if it was throttled.
        """
        now = self._clock()
        last = self._last_sent.get(job_id)
        if last is not None and now - last < self.interval:
            return False
        self._last_sent[job_id] = now
        self.broadcaster.publish(
            JobEvent(job_id=job_id, event="progress", progress=progress)
        )
        return True

    def finish(self, event: JobEvent) -> None:
        """Deliver a terminal event immediately and forget the job."""
        self._last_sent.pop(event.job_id, None)
        self.broadcaster.publish(event)

    def reset(self) -> None:
        self._last_sent.clear()
