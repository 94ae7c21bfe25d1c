"""Crash-safe snapshot of the job table and pending queue."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import aiofiles
import aiofiles.os

from yt_queue.core.errors import SnapshotError
from yt_queue.models import Job, JobStatus
from yt_queue.storage.debounce import DeferredTask

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

# Seconds of inactivity before a scheduled save is written
SAVE_DELAY = 1.0


@dataclass
class Snapshot:
    """Persisted state: all jobs and the pending queue order."""

    jobs: list[Job] = field(default_factory=list)
    queue: list[str] = field(default_factory=list)


def encode_snapshot(jobs: Iterable[Job], queue: Iterable[str]) -> str:
    """Serialize jobs and queue to the snapshot document."""
    state = {
        "jobs": [job.to_dict() for job in jobs],
        "queue": list(queue),
    }
    return json.dumps(state, indent=2)


def decode_snapshot(data: str, path: str = "<snapshot>") -> Snapshot:
    """Parse a snapshot document.

    Raises:
        SnapshotError: If the document is not valid JSON or not a snapshot.
    """
    try:
        state: Any = json.loads(data)
    except json.JSONDecodeError as e:
        raise SnapshotError(path, f"invalid JSON: {e}") from e

    if not isinstance(state, dict):
        raise SnapshotError(path, "top level is not an object")

    raw_jobs = state.get("jobs", [])
    raw_queue = state.get("queue", [])
    if not isinstance(raw_jobs, list) or not isinstance(raw_queue, list):
        raise SnapshotError(path, "'jobs' and 'queue' must be lists")

    try:
        jobs = [Job.from_dict(raw) for raw in raw_jobs]
    except (KeyError, ValueError, TypeError, AttributeError) as e:
        raise SnapshotError(path, f"invalid job record: {e!r}") from e

    return Snapshot(jobs=jobs, queue=[str(job_id) for job_id in raw_queue])


def restore_snapshot(snapshot: Snapshot) -> Snapshot:
    """Prepare a loaded snapshot for a fresh process.

    Jobs left downloading by the previous process go back to pending.
    The queue keeps its saved order for pending jobs only; pending jobs
    missing from it are appended in creation order, so every pending job
    appears exactly once.
    """
    jobs_by_id: dict[str, Job] = {}
    for job in snapshot.jobs:
        job.reset_interrupted()
        jobs_by_id[job.id] = job

    queue: list[str] = []
    seen: set[str] = set()
    for job_id in snapshot.queue:
        job = jobs_by_id.get(job_id)
        if job and job.status is JobStatus.PENDING and job_id not in seen:
            queue.append(job_id)
            seen.add(job_id)

    stragglers = sorted(
        (
            job
            for job in jobs_by_id.values()
            if job.status is JobStatus.PENDING and job.id not in seen
        ),
        key=lambda job: job.created_at,
    )
    queue.extend(job.id for job in stragglers)

    return Snapshot(jobs=list(jobs_by_id.values()), queue=queue)


class PersistenceManager:
    """Loads and writes the queue snapshot file.

    Writes are debounced: each ``schedule_save`` pushes the write back by
    ``delay`` seconds, and the document is written whole through a
    temporary file.

    Attributes:
        path: Location of the snapshot document.
    """

    def __init__(self, path: Path, delay: float = SAVE_DELAY) -> None:
        self.path = path
        self._pending: tuple[list[Job], list[str]] | None = None
        self._saver = DeferredTask(self._write_pending, delay)

    @property
    def save_pending(self) -> bool:
        """Check if a write is scheduled or in progress."""
        return self._saver.armed or self._saver.running

    async def load(self, *, backup_corrupt: bool = True) -> Snapshot:
        """Load and restore the snapshot.

        A missing, empty or unreadable file yields an empty snapshot. An
        unparsable file is copied to a timestamped backup first, unless
        ``backup_corrupt`` is False.
        """
        if not await aiofiles.os.path.exists(self.path):
            return Snapshot()

        try:
            async with aiofiles.open(self.path, encoding="utf-8") as f:
                data = await f.read()
        except (OSError, UnicodeDecodeError) as e:
            logger.error("Failed to read queue state %s: %s", self.path, e)
            return Snapshot()

        if not data.strip():
            logger.warning("State file is empty, skipping load")
            return Snapshot()

        try:
            snapshot = decode_snapshot(data, str(self.path))
        except SnapshotError as e:
            logger.error("%s", e)
            logger.error("State file content (first 500 chars): %s", data[:500])
            if backup_corrupt:
                await self._backup_corrupt(data)
            return Snapshot()

        restored = restore_snapshot(snapshot)
        logger.info("Restored %d jobs from state file", len(restored.jobs))
        return restored

    def schedule_save(self, jobs: Iterable[Job], queue: Iterable[str]) -> None:
        """Schedule a write of the given state after the quiet period."""
        self._pending = (list(jobs), list(queue))
        self._saver.arm()

    async def flush(self) -> None:
        """Write any scheduled state now and wait for it."""
        await self._saver.flush()

    def backup_path(self) -> Path:
        """Path for a corrupt snapshot copy, unique per millisecond."""
        return self.path.with_name(
            f"{self.path.name}.corrupt.{int(time.time() * 1000)}"
        )

    async def _backup_corrupt(self, data: str) -> Path | None:
        backup = self.backup_path()
        try:
            async with aiofiles.open(backup, "w", encoding="utf-8") as f:
                await f.write(data)
        except OSError as e:
            logger.error("Failed to back up corrupted state to %s: %s", backup, e)
            return None
        logger.warning("Corrupted state backed up to: %s", backup)
        return backup

    async def _write_pending(self) -> None:
        if self._pending is None:
            return
        jobs, queue = self._pending
        self._pending = None
        await self._write_snapshot(encode_snapshot(jobs, queue))

    async def _write_snapshot(self, document: str) -> None:
        temp_path = self.path.with_name(f"{self.path.name}.tmp")
        try:
            await aiofiles.os.makedirs(self.path.parent, exist_ok=True)
            async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
                await f.write(document)
            await aiofiles.os.replace(temp_path, self.path)
        except OSError as e:
            logger.error("Failed to save queue state: %s", e)
