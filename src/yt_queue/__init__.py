"""A download queue that runs yt-dlp jobs a few at a time."""

from yt_queue.core import DownloadError, InvalidRequestError, QueueError
from yt_queue.models import DownloadRequest, Job, JobEvent, JobStatus

__version__ = "0.1.0"
__metadata__ = {
    "name": "yt-queue",
    "version": __version__,
    "author": "pyyupsk",
    "license": "MIT",
    "python": ">=3.12",
    "repository": "github.com/pyyupsk/yt-queue",
}
__all__ = [
    "DownloadError",
    "DownloadRequest",
    "InvalidRequestError",
    "Job",
    "JobEvent",
    "JobStatus",
    "QueueError",
    "__metadata__",
    "__version__",
]
