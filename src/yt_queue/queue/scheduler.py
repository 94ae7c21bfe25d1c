"""Download queue: job table, FIFO admission and lifecycle handling."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import deque
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from yt_queue.config import QueueConfig
from yt_queue.core.errors import DownloadCancelledError, DownloadError
from yt_queue.core.filename import build_output_path
from yt_queue.download.metadata import MediaInfo, MetadataProbe
from yt_queue.download.runner import ProcessRunner
from yt_queue.models import (
    DownloadRequest,
    Job,
    JobEvent,
    JobKind,
    JobStatus,
    Progress,
    generate_job_id,
)
from yt_queue.notify.broadcaster import Broadcaster, ProgressAggregator
from yt_queue.storage.persistence import PersistenceManager

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from yt_queue.notify.broadcaster import Subscriber

logger = logging.getLogger(__name__)


class Runner(Protocol):
    """What the queue needs from a download runner."""

    async def execute(
        self, job: Job, on_progress: Callable[[Progress], None]
    ) -> list[str]: ...

    def cancel(self, job_id: str) -> bool: ...


class DownloadQueue:
    """Owns all jobs and admits at most ``max_concurrent`` of them at a time.

    Everything runs on one event loop. Each state change is fully applied
    before the next ``await``, so no locks are needed. Methods that change
    state must be called from the loop's thread.

    Attributes:
        config: Queue configuration.
        runner: Executes jobs and cancels running ones.
        probe: Optional metadata lookup run on submission.
        persistence: Debounced snapshot writer.
        broadcaster: Per-job event subscribers.
        aggregator: Throttles progress events into the broadcaster.
    """

    def __init__(
        self,
        config: QueueConfig | None = None,
        *,
        runner: Runner | None = None,
        probe: Callable[[str], Awaitable[MediaInfo]] | None = None,
        persistence: PersistenceManager | None = None,
        broadcaster: Broadcaster | None = None,
    ) -> None:
        self.config = config or QueueConfig.from_env()
        self.runner: Runner = runner or ProcessRunner(self.config.yt_dlp_path)
        if probe is None and self.config.prefetch_metadata:
            probe = MetadataProbe(self.config.yt_dlp_path)
        self.probe = probe
        self.persistence = persistence or PersistenceManager(
            self.config.state_file, self.config.save_delay
        )
        self.broadcaster = broadcaster or Broadcaster()
        self.aggregator = ProgressAggregator(
            self.broadcaster, self.config.progress_interval
        )

        self._jobs: dict[str, Job] = {}
        self._queue: deque[str] = deque()
        self._active: set[str] = set()
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._issued_ids: set[str] = set()
        self._idle = asyncio.Event()
        self._idle.set()
        self._closing = False

    # -- queries -----------------------------------------------------------

    @property
    def active_count(self) -> int:
        """Number of admitted jobs whose task has not finished yet."""
        return len(self._active)

    @property
    def pending_ids(self) -> list[str]:
        """Ids waiting for a slot, in admission order."""
        return list(self._queue)

    def get(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    def list_all(self) -> list[Job]:
        return list(self._jobs.values())

    def list_active(self) -> list[Job]:
        """Jobs that are waiting or downloading."""
        return [
            job
            for job in self._jobs.values()
            if job.status in (JobStatus.PENDING, JobStatus.DOWNLOADING)
        ]

    # -- subscriptions -----------------------------------------------------

    def subscribe(self, job_id: str, subscriber: Subscriber) -> None:
        self.broadcaster.subscribe(job_id, subscriber)

    def unsubscribe(self, job_id: str, subscriber: Subscriber) -> None:
        self.broadcaster.unsubscribe(job_id, subscriber)

    def unsubscribe_all(self, subscriber: Subscriber) -> None:
        self.broadcaster.unsubscribe_all(subscriber)

    # -- lifecycle ---------------------------------------------------------

    async def start(self) -> int:
        """Restore the persisted jobs and resume the queue.

        Returns:
            Number of jobs restored.
        """
        snapshot = await self.persistence.load()
        for job in snapshot.jobs:
            self._jobs[job.id] = job
            self._issued_ids.add(job.id)
        self._queue.extend(snapshot.queue)
        if snapshot.jobs:
            self._save()
        self._admit()
        return len(snapshot.jobs)

    async def wait_idle(self) -> None:
        """Wait until nothing is queued or running."""
        await self._idle.wait()

    async def close(self) -> None:
        """Write any scheduled snapshot now."""
        await self.persistence.flush()

    async def shutdown(self) -> None:
        """Stop running downloads and write the snapshot.

        Interrupted jobs keep their downloading status in the snapshot and
        are resumed as pending by the next ``start``.
        """
        self._closing = True
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.wait(tasks)
        self._save()
        await self.close()

    # -- operations --------------------------------------------------------

    async def submit(self, request: DownloadRequest) -> str:
        """Queue a download request.

        Args:
            request: What to download.

        Returns:
            The new job's id.

        Raises:
            InvalidRequestError: If the request is rejected.
        """
        output_path = build_output_path(
            self.config.download_dir, request.subfolder, request.filename
        )

        kind, title = JobKind.VIDEO, None
        if self.probe is not None:
            try:
                info = await self.probe(request.url)
                kind, title = info.kind, info.title
            except Exception as e:
                logger.info("Failed to fetch title, continuing without it: %s", e)
        if request.playlist_items or request.playlist_item_formats:
            kind = JobKind.PLAYLIST

        job = Job(
            id=self._new_id(),
            url=request.url,
            output_path=str(output_path),
            kind=kind,
            title=title,
            subfolder=request.subfolder,
            format_id=request.format_id,
            playlist_items=request.playlist_items,
            playlist_item_formats=request.playlist_item_formats,
        )
        self._jobs[job.id] = job
        self._queue.append(job.id)
        logger.info("Queued %s: %s", job.id, job.url)

        self._save()
        self._admit()
        return job.id

    def cancel(self, job_id: str) -> bool:
        """Cancel a pending or downloading job.

        A pending job is dropped from the queue before any process exists.
        A downloading job's process is signalled; its task reports the
        cancellation when the process exits.

        Returns:
            True if the job was cancelled, False if unknown or finished.
        """
        job = self._jobs.get(job_id)
        if job is None:
            return False

        if job.status is JobStatus.PENDING:
            with contextlib.suppress(ValueError):
                self._queue.remove(job_id)
        elif job.status is JobStatus.DOWNLOADING:
            if not self.runner.cancel(job_id):
                logger.debug("No process registered yet for %s", job_id)
        else:
            return False

        job.mark_cancelled()
        logger.info("Cancelled %s", job_id)
        self._save()
        self.aggregator.finish(JobEvent(job_id=job_id, event="cancelled"))
        self._update_idle()
        return True

    def clear_all(self) -> None:
        """Cancel running jobs and forget every job, queue entry and subscriber."""
        for job_id in list(self._active):
            self.cancel(job_id)

        self._jobs.clear()
        self._queue.clear()
        self.broadcaster.clear()
        self.aggregator.reset()
        logger.info("Cleared download queue")

        self._save()
        self._update_idle()

    # -- internals ---------------------------------------------------------

    def _new_id(self) -> str:
        job_id = generate_job_id()
        while job_id in self._issued_ids:
            job_id = generate_job_id()
        self._issued_ids.add(job_id)
        return job_id

    def _save(self) -> None:
        self.persistence.schedule_save(self._jobs.values(), self._queue)

    def _update_idle(self) -> None:
        if self._queue or self._active:
            self._idle.clear()
        else:
            self._idle.set()

    def _admit(self) -> None:
        """Start queued jobs while there are free slots."""
        while (
            not self._closing
            and self._queue
            and len(self._active) < self.config.max_concurrent
        ):
            job_id = self._queue.popleft()
            job = self._jobs.get(job_id)
            if job is None or job.status is not JobStatus.PENDING:
                continue
            self._start(job)
        self._update_idle()

    def _start(self, job: Job) -> None:
        job.mark_downloading()
        job.progress = Progress()
        self._active.add(job.id)
        self._save()
        self.aggregator.started(job.id)

        task = asyncio.create_task(self._run(job), name=f"download-{job.id}")
        self._tasks[job.id] = task
        task.add_done_callback(partial(self._on_task_done, job.id))

    def _on_task_done(self, job_id: str, task: asyncio.Task[None]) -> None:
        self._active.discard(job_id)
        if self._tasks.get(job_id) is task:
            del self._tasks[job_id]
        if task.cancelled():
            # Interrupted by shutdown, not finished: admit nothing new
            self._update_idle()
            return
        if task.exception() is not None:
            logger.error(
                "Download task for %s crashed", job_id, exc_info=task.exception()
            )
        self._admit()

    async def _run(self, job: Job) -> None:
        def on_progress(progress: Progress) -> None:
            if job.is_terminal:
                return
            job.progress = progress
            self.aggregator.notify(job.id, progress)

        try:
            await asyncio.to_thread(
                Path(job.output_path).parent.mkdir, parents=True, exist_ok=True
            )
            if job.is_terminal:
                return
            files = await self.runner.execute(job, on_progress)
        except DownloadCancelledError:
            self._finish_cancelled(job)
        except DownloadError as e:
            self._finish_failed(job, e.message)
        except OSError as e:
            self._finish_failed(job, f"OS error: {e}")
        except asyncio.CancelledError:
            logger.info("Download of %s interrupted", job.id)
            raise
        except Exception as e:
            logger.exception("Unexpected error during download for job %s", job.id)
            self._finish_failed(job, f"Unexpected error: {e}")
        else:
            self._finish_completed(job, files)

    def _finish_completed(self, job: Job, files: list[str]) -> None:
        if job.is_terminal:
            return
        job.mark_completed(files)
        logger.info("Completed %s (%d file(s))", job.id, len(files))
        self._save()
        self.aggregator.finish(
            JobEvent(job_id=job.id, event="completed", files=tuple(files))
        )

    def _finish_failed(self, job: Job, message: str) -> None:
        if job.is_terminal:
            return
        job.mark_failed(message)
        logger.warning("Failed %s: %s", job.id, message)
        self._save()
        self.aggregator.finish(JobEvent(job_id=job.id, event="error", message=message))

    def _finish_cancelled(self, job: Job) -> None:
        if job.is_terminal:
            return
        job.mark_cancelled()
        self._save()
        self.aggregator.finish(JobEvent(job_id=job.id, event="cancelled"))
