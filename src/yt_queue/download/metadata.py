"""Metadata probing and format recommendation via yt-dlp."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any

from yt_queue.core.errors import DownloadError
from yt_queue.models import JobKind

logger = logging.getLogger(__name__)


@dataclass
class MediaInfo:
    """What a URL points at, as reported by ``--flat-playlist``.

    Attributes:
        url: The probed URL.
        kind: Single video or playlist.
        title: Video title, or playlist title for playlists.
        entries: Flat playlist entries (empty for single videos).
        formats: Available formats (single videos only).
    """

    url: str
    kind: JobKind
    title: str | None = None
    entries: list[dict[str, Any]] = field(default_factory=list)
    formats: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class FormatRecommendation:
    """Best format picked from a video's format list."""

    format_id: str
    reason: str
    score: float


def _build_probe_command(yt_dlp_path: str, url: str) -> list[str]:
    return [
        yt_dlp_path,
        "--no-warnings",
        "--skip-download",
        "--print-json",
        "--flat-playlist",
        url,
    ]


def parse_probe_output(url: str, stdout: str) -> MediaInfo:
    """Build MediaInfo from newline-delimited JSON printed by yt-dlp.

    One line is a single video (or a playlist object); several lines are
    the entries of a flat playlist.

    Raises:
        DownloadError: If there is no output or the first line is not a
            JSON object.
    """
    lines = [line for line in stdout.splitlines() if line.strip()]
    if not lines:
        raise DownloadError(url, "No metadata received from yt-dlp")

    try:
        first = json.loads(lines[0])
    except json.JSONDecodeError as e:
        raise DownloadError(
            url, f"Failed to parse metadata: {lines[0][:100]}... - {e}"
        ) from e
    if not isinstance(first, dict):
        raise DownloadError(
            url, f"Unexpected metadata: expected an object, got {type(first).__name__}"
        )

    if len(lines) == 1:
        if first.get("_type") == "playlist":
            return MediaInfo(
                url=url,
                kind=JobKind.PLAYLIST,
                title=first.get("title"),
                entries=list(first.get("entries") or []),
            )
        return MediaInfo(
            url=url,
            kind=JobKind.VIDEO,
            title=first.get("title"),
            formats=list(first.get("formats") or []),
        )

    entries: list[dict[str, Any]] = []
    for index, line in enumerate(lines, 1):
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            logger.warning("Failed to parse playlist entry %d: %s", index, line[:100])
            entry = None
        if not isinstance(entry, dict):
            entry = {"id": f"unknown_{index - 1}", "title": f"[Parse Error] Entry {index}"}
        entries.append(
            {
                "id": entry.get("id"),
                "title": entry.get("title") or "[Untitled]",
                "url": entry.get("url") or entry.get("webpage_url") or url,
                "duration": entry.get("duration"),
                "playlist_index": entry.get("playlist_index") or index,
            }
        )

    return MediaInfo(
        url=url,
        kind=JobKind.PLAYLIST,
        title=first.get("playlist_title") or first.get("playlist") or "Playlist",
        entries=entries,
    )


class MetadataProbe:
    """Looks up a URL's kind and title before it is queued."""

    def __init__(self, yt_dlp_path: str = "yt-dlp") -> None:
        self.yt_dlp_path = yt_dlp_path

    async def __call__(self, url: str) -> MediaInfo:
        """Probe a URL.

        Raises:
            DownloadError: If yt-dlp fails or prints nothing usable.
        """
        try:
            process = await asyncio.create_subprocess_exec(
                *_build_probe_command(self.yt_dlp_path, url),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            raise DownloadError(url, f"yt-dlp not found: {self.yt_dlp_path}") from None

        stdout, stderr = await process.communicate()
        if process.returncode != 0:
            error = stderr.decode("utf-8", "replace").strip()
            if "ERROR:" in error:
                error = error.split("ERROR:")[-1].strip()
            raise DownloadError(
                url,
                error.split("\n")[0] or "Metadata lookup failed",
                exit_code=process.returncode,
            )

        return parse_probe_output(url, stdout.decode("utf-8", "replace"))


def _score_format(fmt: dict[str, Any]) -> float:
    score = 0.0
    vcodec = fmt.get("vcodec") or ""
    acodec = fmt.get("acodec") or ""

    if vcodec and vcodec != "none" and acodec and acodec != "none":
        score += 50

    if vcodec.startswith("av01"):
        score += 30
    elif vcodec.startswith("vp9"):
        score += 20
    elif vcodec.startswith("avc1"):
        score += 10

    height = fmt.get("height") or 0
    for min_height, points in ((2160, 40), (1440, 35), (1080, 30), (720, 20), (480, 10)):
        if height >= min_height:
            score += points
            break

    tbr = fmt.get("tbr")
    if tbr:
        score += min(tbr / 100, 20)

    return score


def recommend_format(formats: list[dict[str, Any]]) -> FormatRecommendation | None:
    """Pick the best format for a single video.

    Prefers formats with both video and audio, modern codecs, higher
    resolution and higher bitrate.

    Args:
        formats: yt-dlp format dictionaries.

    Returns:
        The recommendation, or None if there are no formats.
    """
    if not formats:
        return None

    best = max(formats, key=_score_format)
    vcodec = best.get("vcodec") or ""

    reason = "Best quality"
    if vcodec.startswith("av01"):
        reason += " (AV1 codec)"
    elif vcodec.startswith("vp9"):
        reason += " (VP9 codec)"
    if best.get("height"):
        reason += f" - {best['height']}p"

    return FormatRecommendation(
        format_id=str(best.get("format_id", "")),
        reason=reason,
        score=_score_format(best),
    )
