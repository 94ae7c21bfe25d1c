"""Download job model: status machine, progress, requests and events."""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from yt_queue.core.errors import InvalidRequestError, InvalidTransitionError


class JobStatus(Enum):
    """Status of a download job."""

    PENDING = "pending"
    DOWNLOADING = "downloading"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """Check if no further transitions are allowed from this status."""
        return self in TERMINAL_STATUSES


class JobKind(Enum):
    """What a job's URL points at."""

    VIDEO = "video"
    PLAYLIST = "playlist"


TERMINAL_STATUSES = frozenset(
    {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
)

ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.DOWNLOADING, JobStatus.CANCELLED}),
    JobStatus.DOWNLOADING: TERMINAL_STATUSES,
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}


def generate_job_id() -> str:
    """Generate a new job id of the form ``dl_<epoch-ms>_<random>``."""
    return f"dl_{int(time.time() * 1000)}_{secrets.token_hex(5)[:9]}"


def _parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _format_time(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _item_index(value: Any) -> int:
    """Convert a 1-based playlist index from a request payload."""
    try:
        index = int(value)
    except (TypeError, ValueError):
        raise InvalidRequestError(f"Invalid playlist item {value!r}") from None
    if index < 1:
        raise InvalidRequestError(f"Playlist items must be >= 1, got {index}")
    return index


@dataclass
class Progress:
    """Point-in-time progress of a running job.

    Attributes:
        percent: Completion percentage (0-100).
        speed: Smoothed transfer speed, e.g. "1.23MiB/s".
        eta: Time remaining exactly as reported by yt-dlp.
        current_item: 1-based index of the item being downloaded.
        total_items: Number of items in a multi-item job.
        current_file: Base name of the file being written.
    """

    percent: float = 0.0
    speed: str | None = None
    eta: str | None = None
    current_item: int | None = None
    total_items: int | None = None
    current_file: str | None = None

    def merge(self, update: dict[str, Any]) -> Progress:
        """Return a copy with the given fields overridden."""
        values = self.to_dict()
        values.update(update)
        return Progress.from_dict(values)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-ready dictionary."""
        return {
            "percent": self.percent,
            "speed": self.speed,
            "eta": self.eta,
            "current_item": self.current_item,
            "total_items": self.total_items,
            "current_file": self.current_file,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Progress:
        """Build a Progress from a dictionary, ignoring unknown keys."""
        return cls(
            percent=float(data.get("percent") or 0.0),
            speed=data.get("speed"),
            eta=data.get("eta"),
            current_item=data.get("current_item"),
            total_items=data.get("total_items"),
            current_file=data.get("current_file"),
        )


@dataclass
class DownloadRequest:
    """A client's request to download a URL.

    Attributes:
        url: Video or playlist URL.
        format_id: yt-dlp format id or selector.
        subfolder: Folder below the download directory.
        filename: yt-dlp filename template.
        playlist_items: Ordered 1-based playlist indices to download.
        playlist_item_formats: Format per playlist index.
    """

    url: str
    format_id: str | None = None
    subfolder: str | None = None
    filename: str | None = None
    playlist_items: list[int] | None = None
    playlist_item_formats: dict[int, str] | None = None

    def __post_init__(self) -> None:
        """Validate request fields after initialization."""
        self.url = (self.url or "").strip()
        if not self.url:
            raise InvalidRequestError("Missing 'url' in request")
        if self.playlist_items is not None:
            if not isinstance(self.playlist_items, (list, tuple)):
                raise InvalidRequestError("Playlist items must be a list")
            self.playlist_items = [_item_index(i) for i in self.playlist_items]
        if self.playlist_item_formats is not None:
            if not isinstance(self.playlist_item_formats, dict):
                raise InvalidRequestError("Playlist item formats must be a mapping")
            self.playlist_item_formats = {
                _item_index(k): str(v) for k, v in self.playlist_item_formats.items()
            }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DownloadRequest:
        """Build a request from a client payload.

        Accepts snake_case keys as well as the camelCase keys sent by
        web clients (``playlistItems``, ``playlistItemFormats``).
        """
        return cls(
            url=data.get("url", ""),
            format_id=data.get("format_id") or data.get("formatId"),
            subfolder=data.get("subfolder"),
            filename=data.get("filename"),
            playlist_items=data.get("playlist_items", data.get("playlistItems")),
            playlist_item_formats=data.get(
                "playlist_item_formats", data.get("playlistItemFormats")
            ),
        )


@dataclass
class Job:
    """One queued download, a single video or a subset of a playlist."""

    url: str
    output_path: str
    kind: JobKind = JobKind.VIDEO
    id: str = field(default_factory=generate_job_id)
    title: str | None = None
    subfolder: str | None = None
    format_id: str | None = None
    playlist_items: list[int] | None = None
    playlist_item_formats: dict[int, str] | None = None

    # Runtime state
    status: JobStatus = JobStatus.PENDING
    progress: Progress = field(default_factory=Progress)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None
    error: str | None = None
    files: list[str] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def per_item_formats(self) -> bool:
        """Check if playlist items need one download each."""
        return bool(self.playlist_item_formats)

    def _transition(self, target: JobStatus) -> None:
        if target not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(self.id, self.status.value, target.value)
        self.status = target

    def mark_downloading(self) -> None:
        """Mark job as started."""
        self._transition(JobStatus.DOWNLOADING)

    def mark_completed(self, files: list[str]) -> None:
        """Mark job as successfully completed."""
        self._transition(JobStatus.COMPLETED)
        self.files = list(files)
        self.completed_at = datetime.now(UTC)
        self.progress = self.progress.merge({"percent": 100.0})
        self.error = None

    def mark_failed(self, error: str) -> None:
        """Mark job as failed."""
        self._transition(JobStatus.FAILED)
        self.error = error
        self.completed_at = datetime.now(UTC)

    def mark_cancelled(self) -> None:
        """Mark job as cancelled."""
        self._transition(JobStatus.CANCELLED)
        self.completed_at = datetime.now(UTC)

    def reset_interrupted(self) -> None:
        """Return a job interrupted by a restart to the pending state.

        Only valid for jobs restored from a snapshot; no process can own
        them any more.
        """
        if self.status is JobStatus.DOWNLOADING:
            self.status = JobStatus.PENDING

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-ready dictionary."""
        return {
            "id": self.id,
            "url": self.url,
            "title": self.title,
            "kind": self.kind.value,
            "status": self.status.value,
            "progress": self.progress.to_dict(),
            "output_path": self.output_path,
            "subfolder": self.subfolder,
            "format_id": self.format_id,
            "playlist_items": self.playlist_items,
            "playlist_item_formats": (
                {str(k): v for k, v in self.playlist_item_formats.items()}
                if self.playlist_item_formats is not None
                else None
            ),
            "created_at": _format_time(self.created_at),
            "completed_at": _format_time(self.completed_at),
            "error": self.error,
            "files": list(self.files),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Job:
        """Rebuild a job from its serialized form.

        Raises:
            KeyError: If a required field is missing.
            ValueError: If a field has an invalid value.
        """
        item_formats = data.get("playlist_item_formats")
        return cls(
            id=data["id"],
            url=data["url"],
            output_path=data["output_path"],
            kind=JobKind(data.get("kind", JobKind.VIDEO.value)),
            title=data.get("title"),
            subfolder=data.get("subfolder"),
            format_id=data.get("format_id"),
            playlist_items=data.get("playlist_items"),
            playlist_item_formats=(
                {int(k): v for k, v in item_formats.items()}
                if item_formats is not None
                else None
            ),
            status=JobStatus(data["status"]),
            progress=Progress.from_dict(data.get("progress") or {}),
            created_at=_parse_time(data.get("created_at")) or datetime.now(UTC),
            completed_at=_parse_time(data.get("completed_at")),
            error=data.get("error"),
            files=list(data.get("files") or []),
        )


EventType = Literal["started", "progress", "completed", "error", "cancelled"]


@dataclass(frozen=True)
class JobEvent:
    """Lifecycle event delivered to subscribers of a job.

    Attributes:
        job_id: The job the event is about.
        event: Type of lifecycle event.
        progress: Progress snapshot (for "progress" events).
        files: Produced file names (for "completed" events).
        message: Error message (for "error" events).
    """

    job_id: str
    event: EventType

    # Only for "progress" events
    progress: Progress | None = None

    # Only for "completed" events
    files: tuple[str, ...] = ()

    # Only for "error" events
    message: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.event in ("completed", "error", "cancelled")

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-ready payload for transports."""
        payload: dict[str, Any] = {"type": self.event, "job_id": self.job_id}
        if self.event == "progress" and self.progress is not None:
            payload["progress"] = self.progress.to_dict()
        elif self.event == "completed":
            payload["files"] = list(self.files)
        elif self.event == "error":
            payload["message"] = self.message
        return payload
