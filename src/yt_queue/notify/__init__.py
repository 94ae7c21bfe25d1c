"""Notification feature - subscribers and throttled progress events."""

from yt_queue.notify.broadcaster import (
    PROGRESS_INTERVAL,
    Broadcaster,
    ProgressAggregator,
)

__all__ = [
    "PROGRESS_INTERVAL",
    "Broadcaster",
    "ProgressAggregator",
]
