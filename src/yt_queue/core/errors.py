"""Custom exceptions and error formatting for yt-queue."""

from __future__ import annotations


class QueueError(Exception):
    """Base exception for all yt-queue errors."""


class DownloadError(QueueError):
    """Raised when the download tool fails for a job or a playlist item."""

    def __init__(self, url: str, message: str, exit_code: int | None = None) -> None:
        """Initialize DownloadError.

        Args:
            url: The URL that failed to download.
            message: Description of the error.
            exit_code: Exit code of the download tool, if it ran.
        """
        self.url = url
        self.message = message
        self.exit_code = exit_code
        super().__init__(f"Failed to download {url}: {message}")


class DownloadCancelledError(QueueError):
    """Raised when a running download is stopped by an explicit cancel."""

    def __init__(self, job_id: str) -> None:
        """Initialize DownloadCancelledError.

        Args:
            job_id: The job whose download was cancelled.
        """
        self.job_id = job_id
        super().__init__(f"Download {job_id} was cancelled")


class InvalidTransitionError(QueueError):
    """Raised when a job status change would break the state machine."""

    def __init__(self, job_id: str, current: str, target: str) -> None:
        self.job_id = job_id
        self.current = current
        self.target = target
        super().__init__(f"Job {job_id} cannot move from {current} to {target}")


class InvalidRequestError(QueueError):
    """Raised when a download request is rejected at submission."""


class SnapshotError(QueueError):
    """Raised when a persisted snapshot cannot be decoded."""

    def __init__(self, path: str, message: str) -> None:
        self.path = path
        self.message = message
        super().__init__(f"Invalid snapshot {path}: {message}")


def format_error(error: Exception) -> str:
    """Format error for user display with actionable suggestion.

    Args:
        error: The exception to format.

    Returns:
        Human-readable error message with suggestion.
    """
    if isinstance(error, DownloadError):
        if "private" in error.message.lower():
            return f"Cannot access video: {error.message}. The video may be private or age-restricted."
        if "unavailable" in error.message.lower():
            return f"Video unavailable: {error.message}. Check if the URL is correct."
        if "not found" in error.message.lower() and error.exit_code is None:
            return f"{error.message}. Install yt-dlp or set YT_DLP_PATH."
        return f"Download failed: {error.message}"

    if isinstance(error, DownloadCancelledError):
        return str(error)

    if isinstance(error, InvalidRequestError):
        return f"Invalid request: {error}"

    if isinstance(error, SnapshotError):
        return f"Queue state unreadable: {error.message}"

    if isinstance(error, PermissionError):
        return f"Permission denied: {error}. Check file permissions."

    if isinstance(error, OSError):
        if "No space left" in str(error):
            return "Insufficient disk space. Free up space and retry."
        return f"System error: {error}"

    return f"Unexpected error: {error}"
