"""Shared pytest fixtures for yt-queue tests."""

from __future__ import annotations

import json
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from yt_queue.config import QueueConfig

if TYPE_CHECKING:
    from collections.abc import Generator


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test outputs."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def config(temp_dir: Path) -> QueueConfig:
    """Queue configuration writing into the temporary directory."""
    return QueueConfig(
        download_dir=temp_dir / "downloads",
        state_file=temp_dir / "data" / "queue-state.json",
        progress_interval=0.0,
        save_delay=0.01,
        prefetch_metadata=False,
    )


@pytest.fixture
def mock_yt_dlp_video() -> dict:
    """Mock yt-dlp JSON output for a single video."""
    return {
        "id": "dQw4w9WgXcQ",
        "title": "Test Video Title",
        "uploader": "Test Channel",
        "duration": 212,
        "formats": [
            {"format_id": "140", "vcodec": "none", "acodec": "mp4a.40.2", "tbr": 129},
            {"format_id": "137", "vcodec": "avc1.640028", "acodec": "none", "height": 1080, "tbr": 4400},
            {"format_id": "248", "vcodec": "vp9", "acodec": "none", "height": 1080, "tbr": 2600},
            {"format_id": "18", "vcodec": "avc1.42001E", "acodec": "mp4a.40.2", "height": 360, "tbr": 500},
        ],
    }


@pytest.fixture
def mock_flat_playlist_output() -> str:
    """Mock ``--flat-playlist --print-json`` output for a three entry playlist."""
    entries = [
        {
            "id": f"video{i}",
            "title": f"Video {i}",
            "url": f"https://youtube.com/watch?v=video{i}",
            "duration": 60 * i,
            "playlist_index": i,
            "playlist_title": "Test Playlist",
        }
        for i in range(1, 4)
    ]
    return "\n".join(json.dumps(entry) for entry in entries) + "\n"
