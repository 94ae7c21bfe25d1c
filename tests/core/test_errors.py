"""Unit tests for error formatting."""

from __future__ import annotations

from yt_queue.core import (
    DownloadCancelledError,
    DownloadError,
    InvalidRequestError,
    InvalidTransitionError,
    QueueError,
    SnapshotError,
    format_error,
)


class TestDownloadError:
    """Tests for DownloadError exception."""

    def test_message_format(self) -> None:
        """Test error message contains URL and message."""
        error = DownloadError("https://example.com/video", "Connection refused")
        assert "https://example.com/video" in str(error)
        assert "Connection refused" in str(error)

    def test_attributes(self) -> None:
        """Test error attributes are set correctly."""
        error = DownloadError("https://test.com", "Test message", exit_code=2)
        assert error.url == "https://test.com"
        assert error.message == "Test message"
        assert error.exit_code == 2

    def test_exit_code_defaults_to_none(self) -> None:
        error = DownloadError("https://test.com", "spawn failed")
        assert error.exit_code is None


class TestQueueErrors:
    """Tests for the remaining queue exceptions."""

    def test_all_derive_from_queue_error(self) -> None:
        """Test every error can be caught as QueueError."""
        errors = [
            DownloadError("u", "m"),
            DownloadCancelledError("dl_1_a"),
            InvalidTransitionError("dl_1_a", "completed", "downloading"),
            InvalidRequestError("bad"),
            SnapshotError("state.json", "broken"),
        ]
        for error in errors:
            assert isinstance(error, QueueError)

    def test_cancelled_error_names_job(self) -> None:
        error = DownloadCancelledError("dl_1_abc")
        assert error.job_id == "dl_1_abc"
        assert "dl_1_abc" in str(error)

    def test_transition_error_message(self) -> None:
        """Test transition error names both states."""
        error = InvalidTransitionError("dl_1_abc", "completed", "downloading")
        assert "completed" in str(error)
        assert "downloading" in str(error)
        assert error.current == "completed"
        assert error.target == "downloading"

    def test_snapshot_error_attributes(self) -> None:
        error = SnapshotError("/tmp/state.json", "invalid JSON")
        assert error.path == "/tmp/state.json"
        assert "invalid JSON" in str(error)


class TestFormatError:
    """Tests for format_error() function."""

    def test_download_error_private(self) -> None:
        """Test formatting of private video error."""
        error = DownloadError("url", "Video is private")
        result = format_error(error)
        assert "private" in result.lower()

    def test_download_error_unavailable(self) -> None:
        """Test formatting of unavailable video error."""
        error = DownloadError("url", "Video unavailable")
        result = format_error(error)
        assert "unavailable" in result.lower()
        assert "URL" in result

    def test_download_error_tool_missing(self) -> None:
        """Test missing yt-dlp suggests installing it."""
        error = DownloadError("url", "yt-dlp not found: yt-dlp")
        result = format_error(error)
        assert "YT_DLP_PATH" in result

    def test_download_error_generic(self) -> None:
        """Test formatting of generic download error."""
        error = DownloadError("url", "yt-dlp failed with exit code 1", exit_code=1)
        result = format_error(error)
        assert result == "Download failed: yt-dlp failed with exit code 1"

    def test_invalid_request(self) -> None:
        result = format_error(InvalidRequestError("Missing 'url' in request"))
        assert result.startswith("Invalid request")

    def test_snapshot_error(self) -> None:
        result = format_error(SnapshotError("state.json", "invalid JSON"))
        assert "invalid JSON" in result

    def test_permission_error(self) -> None:
        """Test formatting of permission error."""
        error = PermissionError("Access denied")
        result = format_error(error)
        assert "permission" in result.lower()

    def test_disk_space_error(self) -> None:
        """Test formatting of disk space error."""
        error = OSError("No space left on device")
        result = format_error(error)
        assert "disk space" in result.lower()

    def test_generic_exception(self) -> None:
        """Test formatting of generic exception."""
        error = ValueError("Something went wrong")
        result = format_error(error)
        assert "unexpected" in result.lower()
