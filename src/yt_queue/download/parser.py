"""Parser for yt-dlp's line-oriented ``--newline`` progress output."""

from __future__ import annotations

import contextlib
import re
from collections import deque
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Any

# Number of raw speed samples averaged into the reported speed
SPEED_HISTORY_SIZE = 5

# Only lines carrying this tag are progress lines
DOWNLOAD_TAG = "[download]"

_PERCENT_RE = re.compile(r"(\d+\.?\d*)%")
_SPEED_RE = re.compile(r"at\s+([\d.]+)(\w+/s)")
_ETA_RE = re.compile(r"ETA\s+([\d:]+)")
_DESTINATION_RE = re.compile(r"Destination:\s+(.+)$")
_ITEM_RE = re.compile(r"Downloading (?:item|video) (\d+) of (\d+)")
_ITEM_SHORT_RE = re.compile(r"\[download\]\s+(\d+)\s+of\s+(\d+)")


@dataclass
class LineResult:
    """What a single output line contributed.

    Attributes:
        update: Progress fields to merge into the running record.
        destination: Base name of a file announced on this line.
        emit: Whether the merged record should be reported.
    """

    update: dict[str, Any] = field(default_factory=dict)
    destination: str | None = None
    emit: bool = False


class ProgressParser:
    """Stateful parser for one download's output.

    Holds the speed history, so each execution needs its own instance.
    """

    def __init__(self, history_size: int = SPEED_HISTORY_SIZE) -> None:
        self._speeds: deque[float] = deque(maxlen=history_size)

    def smooth_speed(self, raw: float, unit: str) -> str:
        """Add a raw sample and return the trailing average as text.

        Args:
            raw: Instantaneous speed value.
            unit: Unit suffix including "/s", e.g. "MiB/s".

        Returns:
            Average of the last samples formatted like "18.00MiB/s".
        """
        self._speeds.append(raw)
        average = sum(self._speeds) / len(self._speeds)
        return f"{average:.2f}{unit}"

    def parse_progress(self, line: str) -> dict[str, Any] | None:
        """Parse percent, speed and ETA from a progress line.

        Example: ``[download]  45.2% of 123.45MiB at 1.23MiB/s ETA 00:12``

        Returns:
            Progress fields, or None if the line carries no percentage.
        """
        percent_match = _PERCENT_RE.search(line)
        if not percent_match:
            return None

        update: dict[str, Any] = {"percent": float(percent_match.group(1))}

        speed_match = _SPEED_RE.search(line)
        if speed_match:
            with contextlib.suppress(ValueError):
                update["speed"] = self.smooth_speed(
                    float(speed_match.group(1)), speed_match.group(2)
                )

        eta_match = _ETA_RE.search(line)
        if eta_match:
            update["eta"] = eta_match.group(1)

        return update

    def parse_line(self, line: str) -> LineResult:
        """Interpret one line of yt-dlp output."""
        result = LineResult()
        if DOWNLOAD_TAG not in line:
            return result

        progress = self.parse_progress(line)
        if progress:
            result.update.update(progress)
            result.emit = True

        destination_match = _DESTINATION_RE.search(line)
        if destination_match:
            # Keep only the base name; files are served from the download dir
            name = PurePath(destination_match.group(1).strip()).name
            if name:
                result.destination = name
                result.update["current_file"] = name

        for pattern in (_ITEM_RE, _ITEM_SHORT_RE):
            item_match = pattern.search(line)
            if item_match:
                result.update["current_item"] = int(item_match.group(1))
                result.update["total_items"] = int(item_match.group(2))
                result.emit = True

        return result
