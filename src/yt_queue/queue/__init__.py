"""Queue feature - job table and concurrency-bounded scheduling."""

from yt_queue.queue.scheduler import DownloadQueue, Runner

__all__ = [
    "DownloadQueue",
    "Runner",
]
