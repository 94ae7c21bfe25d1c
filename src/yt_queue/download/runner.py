"""yt-dlp process runner for queued jobs."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal
import sys
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from yt_queue.core.errors import DownloadCancelledError, DownloadError
from yt_queue.download.parser import ProgressParser
from yt_queue.models import Job, Progress

if TYPE_CHECKING:
    from collections.abc import Callable

    ProgressCallback = Callable[[Progress], None]

logger = logging.getLogger(__name__)

# Default selector when the request names no format
DEFAULT_FORMAT = "bestvideo[ext=mp4]+bestaudio[ext=m4a]/bestvideo+bestaudio/best"

# StreamReader line limit; yt-dlp can print very long lines
STREAM_LIMIT = 1024 * 1024

# Seconds to wait for a signalled process to exit when its task is cancelled
REAP_TIMEOUT = 5.0


def format_selector(format_id: str | None) -> str:
    """Turn a requested format into a yt-dlp ``-f`` selector.

    Purely numeric ids are usually video-only streams, so the best audio
    is merged in. Selectors with operators are passed through.

    Args:
        format_id: Format id or selector, or None.

    Returns:
        The selector string for ``-f``.
    """
    if not format_id:
        return DEFAULT_FORMAT
    if format_id.isdigit():
        return f"{format_id}+bestaudio/best"
    return format_id


def build_command(
    yt_dlp_path: str,
    url: str,
    output_path: str,
    format_id: str | None = None,
    playlist_items: list[int] | None = None,
) -> list[str]:
    """Build the yt-dlp command for one download."""
    cmd = [
        yt_dlp_path,
        "--no-warnings",
        "--newline",
        "--restrict-filenames",
        "-o",
        output_path,
        "-f",
        format_selector(format_id),
    ]
    if playlist_items:
        cmd.extend(["--playlist-items", ",".join(str(i) for i in playlist_items)])
    cmd.append(url)
    return cmd


@dataclass
class _OutputState:
    """Accumulated state of one process's output."""

    progress: Progress = field(default_factory=Progress)
    files: list[str] = field(default_factory=list)
    last_error: str | None = None


def _terminate(process: asyncio.subprocess.Process) -> None:
    """Ask a process (and the tools it spawned) to stop."""
    if process.returncode is not None:
        return
    with contextlib.suppress(ProcessLookupError, OSError):
        if sys.platform == "win32":
            process.terminate()
        else:
            os.killpg(process.pid, signal.SIGTERM)


class ProcessRunner:
    """Runs yt-dlp for jobs and tracks their processes for cancellation.

    A job is registered from the start of ``execute`` until it returns,
    including the gaps between per-item processes, so a cancel issued at
    any point is honoured.
    """

    def __init__(self, yt_dlp_path: str = "yt-dlp") -> None:
        self.yt_dlp_path = yt_dlp_path
        self._processes: dict[str, asyncio.subprocess.Process] = {}
        self._running: set[str] = set()
        self._cancel_requested: set[str] = set()

    def is_running(self, job_id: str) -> bool:
        """Check if a job is currently executing."""
        return job_id in self._running

    def cancel(self, job_id: str) -> bool:
        """Request cancellation of a running job.

        Args:
            job_id: The job to cancel.

        Returns:
            True if the job was running and has been signalled.
        """
        if job_id not in self._running:
            return False
        self._cancel_requested.add(job_id)
        process = self._processes.get(job_id)
        if process is not None:
            logger.info("Terminating yt-dlp for %s (PID: %s)", job_id, process.pid)
            _terminate(process)
        return True

    async def execute(self, job: Job, on_progress: ProgressCallback) -> list[str]:
        """Download a job and return the produced file names.

        Args:
            job: The job to download.
            on_progress: Called with the merged progress record.

        Returns:
            Base names of the files yt-dlp wrote.

        Raises:
            DownloadError: If yt-dlp could not run or exited non-zero.
            DownloadCancelledError: If the job was cancelled.
        """
        self._running.add(job.id)
        try:
            if job.per_item_formats:
                return await self._download_items(job, on_progress)
            return await self._download(
                job, job.format_id, job.playlist_items, on_progress
            )
        finally:
            self._running.discard(job.id)
            self._cancel_requested.discard(job.id)

    def _raise_if_cancelled(self, job_id: str) -> None:
        if job_id in self._cancel_requested:
            raise DownloadCancelledError(job_id)

    def _item_reporter(
        self, on_progress: ProgressCallback, done: int, total: int
    ) -> ProgressCallback:
        """Scale one item's progress into the job's overall progress."""
        base = done / total * 100

        def report(item_progress: Progress) -> None:
            on_progress(
                item_progress.merge(
                    {
                        "percent": base + item_progress.percent / total,
                        "current_item": done + 1,
                        "total_items": total,
                    }
                )
            )

        return report

    async def _download_items(
        self, job: Job, on_progress: ProgressCallback
    ) -> list[str]:
        """Download playlist items one by one, each with its own format.

        A failed item is logged and skipped; the remaining items still run
        and failed items keep counting toward the total. The job completes
        with whatever files were produced, possibly none.
        """
        formats = job.playlist_item_formats or {}
        items = job.playlist_items or sorted(formats)
        total = len(items)
        files: list[str] = []

        for done, index in enumerate(items):
            self._raise_if_cancelled(job.id)
            on_progress(
                Progress(
                    percent=done / total * 100,
                    current_item=done + 1,
                    total_items=total,
                )
            )
            try:
                files.extend(
                    await self._download(
                        job,
                        formats.get(index, job.format_id),
                        [index],
                        self._item_reporter(on_progress, done, total),
                    )
                )
            except DownloadError as e:
                logger.error(
                    "Failed to download item %d of %s: %s", index, job.id, e.message
                )

        return files

    async def _download(
        self,
        job: Job,
        format_id: str | None,
        playlist_items: list[int] | None,
        on_progress: ProgressCallback,
    ) -> list[str]:
        """Run one yt-dlp process and parse its output."""
        self._raise_if_cancelled(job.id)
        cmd = build_command(
            self.yt_dlp_path, job.url, job.output_path, format_id, playlist_items
        )
        logger.debug("[%s] %s", job.id, " ".join(cmd))

        kwargs: dict[str, object] = {}
        if sys.platform != "win32":
            kwargs["start_new_session"] = True

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STREAM_LIMIT,
                **kwargs,
            )
        except FileNotFoundError:
            raise DownloadError(
                job.url, f"yt-dlp not found: {self.yt_dlp_path}"
            ) from None
        except OSError as e:
            raise DownloadError(job.url, f"OS error: {e}") from e

        self._processes[job.id] = process
        if job.id in self._cancel_requested:
            _terminate(process)

        state = _OutputState()
        parser = ProgressParser()
        try:
            await asyncio.gather(
                self._consume(job.id, process.stdout, parser, state, on_progress),
                self._consume(job.id, process.stderr, parser, state, on_progress),
            )
            return_code = await process.wait()
        except asyncio.CancelledError:
            _terminate(process)
            with contextlib.suppress(asyncio.TimeoutError, asyncio.CancelledError):
                await asyncio.wait_for(process.wait(), REAP_TIMEOUT)
            raise
        finally:
            self._processes.pop(job.id, None)

        self._raise_if_cancelled(job.id)
        if return_code != 0:
            message = f"yt-dlp failed with exit code {return_code}"
            if state.last_error:
                message += f": {state.last_error}"
            raise DownloadError(job.url, message, exit_code=return_code)

        return state.files

    async def _consume(
        self,
        job_id: str,
        stream: asyncio.StreamReader | None,
        parser: ProgressParser,
        state: _OutputState,
        on_progress: ProgressCallback,
    ) -> None:
        """Read a process stream line by line, updating progress."""
        if stream is None:
            return

        while True:
            try:
                line_bytes = await stream.readline()
            except ValueError:
                logger.debug("[%s] skipped overlong output line", job_id)
                continue
            if not line_bytes:
                break

            line = line_bytes.decode("utf-8", "replace").strip()
            if not line:
                continue
            logger.debug("[%s] %s", job_id, line)

            if line.startswith("ERROR:"):
                state.last_error = line[6:].strip()

            result = parser.parse_line(line)
            if result.destination:
                state.files.append(result.destination)
            if result.update:
                state.progress = state.progress.merge(result.update)
            if result.emit:
                on_progress(state.progress)
