"""Unit tests for the job model."""

from __future__ import annotations

import re

import pytest

from yt_queue.core import InvalidRequestError, InvalidTransitionError
from yt_queue.models import (
    DownloadRequest,
    Job,
    JobEvent,
    JobKind,
    JobStatus,
    Progress,
    generate_job_id,
)


def make_job(**kwargs: object) -> Job:
    defaults: dict[str, object] = {
        "url": "https://youtube.com/watch?v=test",
        "output_path": "/tmp/downloads/%(title)s.%(ext)s",
    }
    defaults.update(kwargs)
    return Job(**defaults)  # type: ignore[arg-type]


class TestJobId:
    """Tests for generate_job_id() function."""

    def test_format(self) -> None:
        """Test id has the dl_<ms>_<random> shape."""
        assert re.fullmatch(r"dl_\d{13}_[0-9a-f]{9}", generate_job_id())

    def test_unique(self) -> None:
        ids = {generate_job_id() for _ in range(200)}
        assert len(ids) == 200


class TestJobStatus:
    """Tests for JobStatus enum."""

    def test_terminal_statuses(self) -> None:
        assert JobStatus.COMPLETED.is_terminal
        assert JobStatus.FAILED.is_terminal
        assert JobStatus.CANCELLED.is_terminal
        assert not JobStatus.PENDING.is_terminal
        assert not JobStatus.DOWNLOADING.is_terminal


class TestJobTransitions:
    """Tests for the job state machine."""

    def test_initial_state(self) -> None:
        job = make_job()
        assert job.status is JobStatus.PENDING
        assert job.progress.percent == 0
        assert job.files == []
        assert job.completed_at is None

    def test_successful_lifecycle(self) -> None:
        """Test pending -> downloading -> completed."""
        job = make_job()
        job.mark_downloading()
        assert job.status is JobStatus.DOWNLOADING

        job.mark_completed(["a.mp4", "b.mp4"])
        assert job.status is JobStatus.COMPLETED
        assert job.files == ["a.mp4", "b.mp4"]
        assert job.progress.percent == 100
        assert job.completed_at is not None

    def test_failed(self) -> None:
        job = make_job()
        job.mark_downloading()
        job.mark_failed("yt-dlp failed with exit code 1")
        assert job.status is JobStatus.FAILED
        assert job.error == "yt-dlp failed with exit code 1"
        assert job.completed_at is not None

    def test_cancel_pending(self) -> None:
        job = make_job()
        job.mark_cancelled()
        assert job.status is JobStatus.CANCELLED

    def test_cancel_downloading(self) -> None:
        job = make_job()
        job.mark_downloading()
        job.mark_cancelled()
        assert job.status is JobStatus.CANCELLED

    def test_pending_cannot_complete(self) -> None:
        """Test a job must download before it completes."""
        job = make_job()
        with pytest.raises(InvalidTransitionError):
            job.mark_completed([])

    @pytest.mark.parametrize("final", ["completed", "failed", "cancelled"])
    def test_terminal_states_are_final(self, final: str) -> None:
        """Test no transition leaves a terminal state."""
        job = make_job()
        job.mark_downloading()
        if final == "completed":
            job.mark_completed([])
        elif final == "failed":
            job.mark_failed("boom")
        else:
            job.mark_cancelled()

        with pytest.raises(InvalidTransitionError):
            job.mark_downloading()
        with pytest.raises(InvalidTransitionError):
            job.mark_cancelled()
        assert job.status.value == final

    def test_reset_interrupted(self) -> None:
        """Test only downloading jobs go back to pending."""
        job = make_job()
        job.mark_downloading()
        job.reset_interrupted()
        assert job.status is JobStatus.PENDING

        done = make_job()
        done.mark_downloading()
        done.mark_completed([])
        done.reset_interrupted()
        assert done.status is JobStatus.COMPLETED

    def test_per_item_formats(self) -> None:
        assert not make_job().per_item_formats
        assert not make_job(playlist_items=[1, 2]).per_item_formats
        assert make_job(playlist_item_formats={2: "137"}).per_item_formats


class TestJobSerialization:
    """Tests for Job.to_dict() and Job.from_dict()."""

    def test_item_format_keys_stored_as_strings(self) -> None:
        job = make_job(
            kind=JobKind.PLAYLIST,
            playlist_items=[1, 3],
            playlist_item_formats={3: "137"},
        )
        data = job.to_dict()
        assert data["playlist_item_formats"] == {"3": "137"}
        assert data["kind"] == "playlist"
        assert data["status"] == "pending"

    def test_restore_keeps_fields(self) -> None:
        """Test a finished job survives serialization."""
        job = make_job(title="A title", subfolder="music", format_id="137")
        job.mark_downloading()
        job.progress = Progress(percent=42.0, speed="1.00MiB/s", eta="00:10")
        job.mark_completed(["A title.mp4"])

        restored = Job.from_dict(job.to_dict())
        assert restored.id == job.id
        assert restored.status is JobStatus.COMPLETED
        assert restored.title == "A title"
        assert restored.subfolder == "music"
        assert restored.files == ["A title.mp4"]
        assert restored.progress.percent == 100
        assert restored.progress.speed == "1.00MiB/s"
        assert restored.created_at == job.created_at
        assert restored.completed_at == job.completed_at

    def test_missing_required_field(self) -> None:
        data = make_job().to_dict()
        del data["url"]
        with pytest.raises(KeyError):
            Job.from_dict(data)

    def test_invalid_status(self) -> None:
        data = make_job().to_dict()
        data["status"] = "paused"
        with pytest.raises(ValueError):
            Job.from_dict(data)


class TestProgress:
    """Tests for Progress dataclass."""

    def test_merge_returns_copy(self) -> None:
        """Test merge leaves the original untouched."""
        original = Progress(percent=10.0, speed="1.00MiB/s")
        merged = original.merge({"percent": 20.0, "eta": "00:05"})
        assert original.percent == 10.0
        assert original.eta is None
        assert merged.percent == 20.0
        assert merged.speed == "1.00MiB/s"
        assert merged.eta == "00:05"

    def test_from_dict_ignores_unknown_keys(self) -> None:
        progress = Progress.from_dict({"percent": 5, "unknown": 1})
        assert progress.percent == 5.0


class TestDownloadRequest:
    """Tests for DownloadRequest validation."""

    def test_missing_url_rejected(self) -> None:
        with pytest.raises(InvalidRequestError):
            DownloadRequest(url="")
        with pytest.raises(InvalidRequestError):
            DownloadRequest(url="   ")

    def test_invalid_item_rejected(self) -> None:
        with pytest.raises(InvalidRequestError):
            DownloadRequest(url="https://x", playlist_items=[0, 1])

    def test_non_numeric_item_rejected(self) -> None:
        with pytest.raises(InvalidRequestError, match="Invalid playlist item"):
            DownloadRequest.from_dict({"url": "https://x", "playlistItems": ["a"]})

    @pytest.mark.parametrize("key", ["0", "-2", "x"])
    def test_invalid_item_format_key_rejected(self, key: str) -> None:
        """Test per-item format keys must be playlist indices."""
        with pytest.raises(InvalidRequestError):
            DownloadRequest.from_dict(
                {"url": "https://x", "playlistItemFormats": {key: "18"}}
            )

    def test_non_list_items_rejected(self) -> None:
        with pytest.raises(InvalidRequestError):
            DownloadRequest.from_dict({"url": "https://x", "playlistItems": 3})

    def test_camel_case_payload(self) -> None:
        """Test web client payload keys are accepted."""
        request = DownloadRequest.from_dict(
            {
                "url": "https://youtube.com/playlist?list=PL1",
                "formatId": "22",
                "playlistItems": [1, 3],
                "playlistItemFormats": {"3": "137"},
            }
        )
        assert request.format_id == "22"
        assert request.playlist_items == [1, 3]
        assert request.playlist_item_formats == {3: "137"}

    def test_snake_case_payload(self) -> None:
        request = DownloadRequest.from_dict(
            {"url": "https://x", "format_id": "18", "subfolder": "music"}
        )
        assert request.format_id == "18"
        assert request.subfolder == "music"
        assert request.playlist_items is None


class TestJobEvent:
    """Tests for JobEvent payloads."""

    def test_progress_payload(self) -> None:
        event = JobEvent(job_id="dl_1_a", event="progress", progress=Progress(percent=5))
        payload = event.to_dict()
        assert payload["type"] == "progress"
        assert payload["progress"]["percent"] == 5
        assert not event.is_terminal

    def test_completed_payload(self) -> None:
        event = JobEvent(job_id="dl_1_a", event="completed", files=("a.mp4",))
        assert event.to_dict() == {"type": "completed", "job_id": "dl_1_a", "files": ["a.mp4"]}
        assert event.is_terminal

    def test_error_payload(self) -> None:
        event = JobEvent(job_id="dl_1_a", event="error", message="boom")
        assert event.to_dict()["message"] == "boom"
        assert event.is_terminal
