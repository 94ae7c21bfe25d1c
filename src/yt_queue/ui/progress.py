"""Rich progress display for yt-queue."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    ProgressColumn,
    SpinnerColumn,
    Task,
    TaskID,
    TaskProgressColumn,
    TextColumn,
)
from rich.table import Table
from rich.text import Text

if TYPE_CHECKING:
    from yt_queue.models import Job, JobEvent

# Global console instance for consistent output
console = Console()

# Common progress format strings
_TASK_DESCRIPTION_FORMAT = "[bold blue]{task.description}"

# Longest job description shown in the progress display
_MAX_DESCRIPTION = 48

STATUS_STYLES = {
    "pending": "dim",
    "downloading": "blue",
    "completed": "green",
    "failed": "red",
    "cancelled": "yellow",
}


class ItemColumn(ProgressColumn):
    """Display playlist item counters (e.g., '2/5').

    Renders nothing for single-video jobs.
    """

    def render(self, task: Task) -> Text:
        """Render the item column.

        Args:
            task: The Rich Task to render.

        Returns:
            Text object with the item counter.
        """
        current = task.fields.get("current_item")
        total = task.fields.get("total_items")
        if not current or not total:
            return Text("")
        return Text(f"{current}/{total}", style="progress.download")


def create_queue_progress() -> Progress:
    """Create Rich progress display for queued downloads.

    Displays: spinner, description, progress bar, percentage, playlist
    item counter, smoothed speed and the ETA reported by yt-dlp.

    Returns:
        Configured Progress instance for queue operations.
    """
    return Progress(
        SpinnerColumn(),
        TextColumn(_TASK_DESCRIPTION_FORMAT),
        BarColumn(),
        TaskProgressColumn(),
        ItemColumn(),
        TextColumn("[progress.data.speed]{task.fields[speed]}"),
        TextColumn("[progress.remaining]{task.fields[eta]}"),
        console=console,
        transient=False,
    )


def describe_job(job: Job) -> str:
    """Short label for a job: its title, or the URL until one is known."""
    label = job.title or job.url
    if len(label) > _MAX_DESCRIPTION:
        label = label[: _MAX_DESCRIPTION - 1] + "…"
    return label


class QueueProgressView:
    """Subscriber that mirrors job events into a Rich progress display.

    Call ``track`` for each job, then subscribe the view to the job's
    events. Terminal events freeze the row with a status marker.
    """

    def __init__(self, progress: Progress) -> None:
        self.progress = progress
        self._tasks: dict[str, TaskID] = {}
        self._labels: dict[str, str] = {}
        self.outcomes: dict[str, str] = {}

    def track(self, job: Job) -> TaskID:
        """Add a row for a job."""
        label = describe_job(job)
        task_id = self.progress.add_task(
            label,
            total=100,
            completed=job.progress.percent,
            speed="",
            eta="",
            current_item=None,
            total_items=None,
        )
        self._tasks[job.id] = task_id
        self._labels[job.id] = label
        return task_id

    def __call__(self, event: JobEvent) -> None:
        task_id = self._tasks.get(event.job_id)
        if task_id is None:
            return
        label = self._labels[event.job_id]

        if event.event == "progress" and event.progress is not None:
            p = event.progress
            self.progress.update(
                task_id,
                completed=p.percent,
                speed=p.speed or "",
                eta=f"ETA {p.eta}" if p.eta else "",
                current_item=p.current_item,
                total_items=p.total_items,
            )
        elif event.event == "completed":
            self.outcomes[event.job_id] = "completed"
            self.progress.update(
                task_id,
                completed=100,
                description=f"[green]✓[/green] {label}",
                speed="",
                eta="",
            )
        elif event.event == "error":
            self.outcomes[event.job_id] = "failed"
            self.progress.update(
                task_id, description=f"[red]✗[/red] {label}", speed="", eta=""
            )
        elif event.event == "cancelled":
            self.outcomes[event.job_id] = "cancelled"
            self.progress.update(
                task_id, description=f"[yellow]![/yellow] {label}", speed="", eta=""
            )


def jobs_table(jobs: list[Job]) -> Table:
    """Build a table of jobs for display.

    Args:
        jobs: Jobs in the order to show them.

    Returns:
        Rich Table with one row per job.
    """
    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", no_wrap=True)
    table.add_column("Status")
    table.add_column("Progress", justify="right")
    table.add_column("Title / URL")
    table.add_column("Files", justify="right")

    for job in jobs:
        status = job.status.value
        table.add_row(
            job.id,
            f"[{STATUS_STYLES[status]}]{status}[/{STATUS_STYLES[status]}]",
            f"{job.progress.percent:.1f}%",
            job.error if job.error else describe_job(job),
            str(len(job.files)),
        )
    return table


def print_success(message: str) -> None:
    """Print a success message.

    Args:
        message: The message to print.
    """
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str) -> None:
    """Print an error message.

    Args:
        message: The message to print.
    """
    console.print(f"[red]✗[/red] {message}", style="red")


def print_warning(message: str) -> None:
    """Print a warning message.

    Args:
        message: The message to print.
    """
    console.print(f"[yellow]![/yellow] {message}", style="yellow")


def print_info(message: str) -> None:
    """Print an info message.

    Args:
        message: The message to print.
    """
    console.print(f"[blue]→[/blue] {message}")
