"""Output path building for queued downloads."""

from __future__ import annotations

from pathlib import Path, PurePath

from yt_queue.core.errors import InvalidRequestError

# yt-dlp template: title truncated to 200 bytes, original extension
DEFAULT_FILENAME_TEMPLATE = "%(title).200B.%(ext)s"

EXT_FIELD = "%(ext)s"


def filename_template(filename: str | None) -> str:
    """Return the yt-dlp filename template for a request.

    Args:
        filename: Requested filename template, or None for the default.

    Returns:
        A template that always ends with an extension field.
    """
    template = filename or DEFAULT_FILENAME_TEMPLATE
    if EXT_FIELD not in template:
        template += f".{EXT_FIELD}"
    return template


def validate_subfolder(subfolder: str) -> str:
    """Check that a subfolder stays inside the download directory.

    Args:
        subfolder: Relative folder requested by the client.

    Returns:
        The subfolder with surrounding whitespace and slashes removed.

    Raises:
        InvalidRequestError: If the subfolder is absolute or escapes upward.
    """
    cleaned = subfolder.strip()
    if PurePath(cleaned).is_absolute() or cleaned.startswith(("/", "\\")):
        raise InvalidRequestError(f"Subfolder must be relative: {subfolder}")
    if ".." in PurePath(cleaned.replace("\\", "/")).parts:
        raise InvalidRequestError(f"Subfolder must not contain '..': {subfolder}")
    return cleaned.strip("/\\")


def build_output_path(
    download_dir: Path,
    subfolder: str | None = None,
    filename: str | None = None,
) -> Path:
    """Build the full output path template for a job.

    Args:
        download_dir: Root directory for all downloads.
        subfolder: Optional folder below the root.
        filename: Optional filename template.

    Returns:
        download_dir / subfolder / template.
    """
    output_dir = download_dir
    if subfolder:
        cleaned = validate_subfolder(subfolder)
        if cleaned:
            output_dir = output_dir / cleaned
    return output_dir / filename_template(filename)
