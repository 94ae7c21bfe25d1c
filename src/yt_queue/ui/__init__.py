"""UI feature - Rich console output and progress display."""

from yt_queue.ui.progress import (
    QueueProgressView,
    console,
    create_queue_progress,
    describe_job,
    jobs_table,
    print_error,
    print_info,
    print_success,
    print_warning,
)

__all__ = [
    "QueueProgressView",
    "console",
    "create_queue_progress",
    "describe_job",
    "jobs_table",
    "print_error",
    "print_info",
    "print_success",
    "print_warning",
]
