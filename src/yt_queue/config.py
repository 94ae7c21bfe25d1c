"""Runtime configuration for the download queue."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_DOWNLOAD_DIR = "~/Downloads/yt-dlp-web"
DEFAULT_STATE_FILE = "data/queue-state.json"

# Upper bound for concurrently running yt-dlp processes
MAX_CONCURRENT_LIMIT = 16


def _expand(path: str | Path) -> Path:
    return Path(path).expanduser().resolve()


@dataclass
class QueueConfig:
    """Download queue configuration.

    Attributes:
        download_dir: Root directory for downloaded files.
        state_file: Snapshot document of jobs and queue.
        max_concurrent: Number of downloads allowed to run at once.
        progress_interval: Minimum seconds between progress events per job.
        save_delay: Quiet period in seconds before the snapshot is written.
        yt_dlp_path: yt-dlp executable name or path.
        prefetch_metadata: Whether to look up title and kind on submission.
    """

    download_dir: Path = field(default_factory=lambda: _expand(DEFAULT_DOWNLOAD_DIR))
    state_file: Path = field(default_factory=lambda: _expand(DEFAULT_STATE_FILE))
    max_concurrent: int = 3
    progress_interval: float = 0.5
    save_delay: float = 1.0
    yt_dlp_path: str = "yt-dlp"
    prefetch_metadata: bool = True

    def __post_init__(self) -> None:
        """Validate configuration."""
        self.download_dir = _expand(self.download_dir)
        self.state_file = _expand(self.state_file)
        if self.max_concurrent < 1:
            raise ValueError(f"max_concurrent must be >= 1, got {self.max_concurrent}")
        if self.max_concurrent > MAX_CONCURRENT_LIMIT:
            raise ValueError(
                f"max_concurrent must be <= {MAX_CONCURRENT_LIMIT}, got {self.max_concurrent}"
            )
        if self.progress_interval < 0:
            raise ValueError(
                f"progress_interval must be >= 0, got {self.progress_interval}"
            )
        if self.save_delay < 0:
            raise ValueError(f"save_delay must be >= 0, got {self.save_delay}")

    @classmethod
    def from_env(cls, **overrides: object) -> QueueConfig:
        """Build configuration from environment variables.

        Reads DOWNLOAD_DIR, QUEUE_STATE_FILE, QUEUE_MAX_CONCURRENT and
        YT_DLP_PATH. Keyword arguments that are not None take precedence.

        Raises:
            ValueError: If a variable holds an invalid value.
        """
        values: dict[str, object] = {}
        if download_dir := os.environ.get("DOWNLOAD_DIR"):
            values["download_dir"] = download_dir
        if state_file := os.environ.get("QUEUE_STATE_FILE"):
            values["state_file"] = state_file
        if max_concurrent := os.environ.get("QUEUE_MAX_CONCURRENT"):
            try:
                values["max_concurrent"] = int(max_concurrent)
            except ValueError:
                raise ValueError(
                    f"QUEUE_MAX_CONCURRENT must be an integer, got {max_concurrent!r}"
                ) from None
        if yt_dlp_path := os.environ.get("YT_DLP_PATH"):
            values["yt_dlp_path"] = yt_dlp_path

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)  # type: ignore[arg-type]
