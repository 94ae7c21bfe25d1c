"""Core utilities - errors and output path handling."""

from yt_queue.core.errors import (
    DownloadCancelledError,
    DownloadError,
    InvalidRequestError,
    InvalidTransitionError,
    QueueError,
    SnapshotError,
    format_error,
)
from yt_queue.core.filename import (
    DEFAULT_FILENAME_TEMPLATE,
    build_output_path,
    filename_template,
    validate_subfolder,
)

__all__ = [
    "DEFAULT_FILENAME_TEMPLATE",
    "DownloadCancelledError",
    "DownloadError",
    "InvalidRequestError",
    "InvalidTransitionError",
    "QueueError",
    "SnapshotError",
    "build_output_path",
    "filename_template",
    "format_error",
    "validate_subfolder",
]
