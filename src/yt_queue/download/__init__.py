"""Download feature - runs yt-dlp and parses its output."""

from yt_queue.download.metadata import (
    FormatRecommendation,
    MediaInfo,
    MetadataProbe,
    parse_probe_output,
    recommend_format,
)
from yt_queue.download.parser import ProgressParser
from yt_queue.download.runner import (
    DEFAULT_FORMAT,
    ProcessRunner,
    build_command,
    format_selector,
)

__all__ = [
    "DEFAULT_FORMAT",
    "FormatRecommendation",
    "MediaInfo",
    "MetadataProbe",
    "ProcessRunner",
    "ProgressParser",
    "build_command",
    "format_selector",
    "parse_probe_output",
    "recommend_format",
]
