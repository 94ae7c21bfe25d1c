"""CLI implementation for yt-queue."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.logging import RichHandler
from rich.table import Table

from yt_queue import __version__
from yt_queue.config import QueueConfig
from yt_queue.core import DownloadError, InvalidRequestError, format_error
from yt_queue.download import MetadataProbe, recommend_format
from yt_queue.models import DownloadRequest, JobKind, JobStatus
from yt_queue.queue import DownloadQueue
from yt_queue.storage import PersistenceManager
from yt_queue.ui import (
    QueueProgressView,
    console,
    create_queue_progress,
    jobs_table,
    print_error,
    print_info,
    print_success,
    print_warning,
)

# Exit code used when the user interrupts with Ctrl-C
EXIT_INTERRUPTED = 130

# Playlist entries shown by the info command
MAX_LISTED_ENTRIES = 20

# Create Typer app
app = typer.Typer(
    name="yt-queue",
    help="Queue yt-dlp downloads and run a few of them at a time.",
    add_completion=False,
    no_args_is_help=True,
)

DownloadDirOption = Annotated[
    Path | None,
    typer.Option(
        "--output",
        "-o",
        help="Download directory (default: $DOWNLOAD_DIR or ~/Downloads/yt-dlp-web).",
        file_okay=False,
        dir_okay=True,
    ),
]

StateFileOption = Annotated[
    Path | None,
    typer.Option(
        "--state",
        help="Queue state file (default: $QUEUE_STATE_FILE or data/queue-state.json).",
        file_okay=True,
        dir_okay=False,
    ),
]

ConcurrencyOption = Annotated[
    int | None,
    typer.Option(
        "--jobs",
        "-j",
        help="Number of downloads to run at once (default: 3).",
        min=1,
        max=16,
    ),
]


def setup_logging(verbose: bool) -> None:
    """Route log records through Rich on the shared console."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[
            RichHandler(
                console=console,
                rich_tracebacks=True,
                show_path=verbose,
                markup=False,
            )
        ],
        force=True,
    )


def parse_items(value: str) -> list[int]:
    """Parse a comma separated list of 1-based playlist indices.

    Args:
        value: Text such as "1,3,5".

    Returns:
        The indices in the given order.

    Raises:
        typer.BadParameter: If an entry is not a positive integer.
    """
    items: list[int] = []
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        if not part.isdigit() or int(part) < 1:
            raise typer.BadParameter(f"Invalid playlist item '{part}'")
        items.append(int(part))
    if not items:
        raise typer.BadParameter("No playlist items given")
    return items


def parse_item_formats(values: list[str]) -> dict[int, str]:
    """Parse INDEX=FORMAT pairs.

    Args:
        values: Entries such as "3=137".

    Returns:
        Mapping of playlist index to format id.

    Raises:
        typer.BadParameter: If an entry is malformed.
    """
    formats: dict[int, str] = {}
    for value in values:
        index, sep, format_id = value.partition("=")
        index = index.strip()
        if not sep or not index.isdigit() or int(index) < 1 or not format_id.strip():
            raise typer.BadParameter(
                f"Invalid item format '{value}'. Expected INDEX=FORMAT, e.g. 3=137"
            )
        formats[int(index)] = format_id.strip()
    return formats


def load_config(
    download_dir: Path | None = None,
    state_file: Path | None = None,
    max_concurrent: int | None = None,
    prefetch_metadata: bool | None = None,
) -> QueueConfig:
    """Build configuration from the environment and command line.

    Raises:
        typer.Exit: With code 2 if the configuration is invalid.
    """
    try:
        return QueueConfig.from_env(
            download_dir=download_dir,
            state_file=state_file,
            max_concurrent=max_concurrent,
            prefetch_metadata=prefetch_metadata,
        )
    except ValueError as e:
        print_error(f"Invalid configuration: {e}")
        raise typer.Exit(code=2) from None


async def _drain(config: QueueConfig, requests: list[DownloadRequest]) -> int:
    queue = DownloadQueue(config)
    tracked: list[str] = []
    try:
        await _submit_and_wait(queue, requests, tracked)
    except asyncio.CancelledError:
        await queue.shutdown()
        raise
    await queue.close()

    jobs = [job for job_id in tracked if (job := queue.get(job_id)) is not None]
    completed = sum(1 for job in jobs if job.status is JobStatus.COMPLETED)
    failed = [job for job in jobs if job.status is JobStatus.FAILED]
    cancelled = sum(1 for job in jobs if job.status is JobStatus.CANCELLED)

    for job in failed:
        print_error(f"{job.title or job.url}: {job.error}")

    if not jobs:
        print_info("Nothing to download")
        return 0

    summary = f"Completed: {completed} succeeded, {len(failed)} failed"
    if cancelled:
        summary += f", {cancelled} cancelled"
    if failed:
        print_warning(summary)
    else:
        print_success(summary)
    return 1 if failed else 0


async def _submit_and_wait(
    queue: DownloadQueue, requests: list[DownloadRequest], tracked: list[str]
) -> None:
    """Restore, submit and show jobs until the queue drains.

    Ids of displayed jobs are appended to ``tracked`` as they are added.
    """
    restored = await queue.start()
    if restored:
        print_info(f"Restored {restored} job(s) from {queue.config.state_file}")

    with create_queue_progress() as progress:
        view = QueueProgressView(progress)

        def track(job_id: str) -> None:
            job = queue.get(job_id)
            if job is None:
                return
            view.track(job)
            queue.subscribe(job_id, view)
            tracked.append(job_id)

        for job in queue.list_active():
            track(job.id)

        for request in requests:
            try:
                job_id = await queue.submit(request)
            except InvalidRequestError as e:
                print_error(format_error(e))
                continue
            track(job_id)

        await queue.wait_idle()


def run_queue(config: QueueConfig, requests: list[DownloadRequest]) -> int:
    """Restore the queue, submit requests and wait until everything ran.

    Args:
        config: Queue configuration.
        requests: New downloads to submit after restoring.

    Returns:
        Exit code (0 = no failures, 1 = some failed, 130 = interrupted).
    """
    try:
        return asyncio.run(_drain(config, requests))
    except KeyboardInterrupt:
        print_warning("Interrupted. Unfinished jobs resume with 'yt-queue resume'.")
        return EXIT_INTERRUPTED


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        print(f"yt-queue version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            help="Show debug logging, including raw yt-dlp output.",
        ),
    ] = False,
    version: Annotated[  # noqa: ARG001
        bool,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
) -> None:
    """Queue yt-dlp downloads and run a few of them at a time."""
    setup_logging(verbose)


@app.command()
def download(
    urls: Annotated[
        list[str],
        typer.Argument(
            help="One or more video or playlist URLs to download.",
            show_default=False,
        ),
    ],
    format_id: Annotated[
        str | None,
        typer.Option(
            "--format",
            "-f",
            help="yt-dlp format id or selector (a bare id gets the best audio added).",
        ),
    ] = None,
    subfolder: Annotated[
        str | None,
        typer.Option(
            "--subfolder",
            "-s",
            help="Folder below the download directory.",
        ),
    ] = None,
    filename: Annotated[
        str | None,
        typer.Option(
            "--filename",
            "-n",
            help="yt-dlp filename template, e.g. '%(title)s'.",
        ),
    ] = None,
    items: Annotated[
        str | None,
        typer.Option(
            "--items",
            help="Playlist items to download, e.g. 1,3,5.",
        ),
    ] = None,
    item_format: Annotated[
        list[str] | None,
        typer.Option(
            "--item-format",
            help="Format for one playlist item as INDEX=FORMAT. Repeatable.",
        ),
    ] = None,
    jobs: ConcurrencyOption = None,
    no_probe: Annotated[
        bool,
        typer.Option(
            "--no-probe",
            help="Skip the title lookup before queueing.",
        ),
    ] = False,
    output: DownloadDirOption = None,
    state: StateFileOption = None,
) -> None:
    """Queue URLs and download them."""
    playlist_items = parse_items(items) if items else None
    item_formats = parse_item_formats(item_format) if item_format else None

    try:
        requests = [
            DownloadRequest(
                url=url,
                format_id=format_id,
                subfolder=subfolder,
                filename=filename,
                playlist_items=playlist_items,
                playlist_item_formats=item_formats,
            )
            for url in urls
        ]
    except InvalidRequestError as e:
        print_error(format_error(e))
        raise typer.Exit(code=2) from None

    config = load_config(output, state, jobs, prefetch_metadata=not no_probe)
    raise typer.Exit(code=run_queue(config, requests))


@app.command()
def resume(
    jobs: ConcurrencyOption = None,
    output: DownloadDirOption = None,
    state: StateFileOption = None,
) -> None:
    """Download the jobs left pending by an earlier run."""
    config = load_config(output, state, jobs)
    raise typer.Exit(code=run_queue(config, []))


@app.command("list")
def list_jobs(state: StateFileOption = None) -> None:
    """Show the jobs stored in the queue state file."""
    config = load_config(state_file=state)
    snapshot = asyncio.run(
        PersistenceManager(config.state_file).load(backup_corrupt=False)
    )
    if not snapshot.jobs:
        print_info("No jobs")
        return
    console.print(jobs_table(snapshot.jobs))


@app.command()
def clear(state: StateFileOption = None) -> None:
    """Remove every job from the queue state file."""
    config = load_config(state_file=state, prefetch_metadata=False)

    async def run() -> int:
        queue = DownloadQueue(config)
        count = len((await queue.persistence.load()).jobs)
        queue.clear_all()
        await queue.close()
        return count

    count = asyncio.run(run())
    print_success(f"Cleared {count} job(s)")


@app.command()
def info(
    url: Annotated[str, typer.Argument(help="Video or playlist URL.")],
) -> None:
    """Show what a URL points at and the recommended format."""
    config = load_config(prefetch_metadata=False)
    try:
        media = asyncio.run(MetadataProbe(config.yt_dlp_path)(url))
    except DownloadError as e:
        print_error(format_error(e))
        raise typer.Exit(code=1) from None

    if media.kind is JobKind.PLAYLIST:
        print_info(f"Playlist: {media.title} ({len(media.entries)} entries)")
        table = Table(show_header=True, header_style="bold")
        table.add_column("#", justify="right")
        table.add_column("Title")
        table.add_column("Duration", justify="right")
        for entry in media.entries[:MAX_LISTED_ENTRIES]:
            duration = entry.get("duration")
            table.add_row(
                str(entry.get("playlist_index", "")),
                str(entry.get("title", "")),
                f"{int(duration) // 60}:{int(duration) % 60:02d}" if duration else "",
            )
        console.print(table)
        if len(media.entries) > MAX_LISTED_ENTRIES:
            print_info(f"... and {len(media.entries) - MAX_LISTED_ENTRIES} more")
        return

    print_info(f"Video: {media.title or url} ({len(media.formats)} formats)")
    recommendation = recommend_format(media.formats)
    if recommendation is None:
        print_warning("No formats reported")
        return
    print_success(f"Recommended format: {recommendation.format_id} - {recommendation.reason}")


if __name__ == "__main__":
    app()
