"""Shared file utility functions and constants."""

import re
from pathlib import Path
from typing import Iterable, Optional

VIDEO_EXTENSIONS = [".mkv", ".mp4", ".avi", ".webm", ".mov", ".wmv", ".flv", ".m4v"]

# Characters that are invalid in filenames on at least one platform
INVALID_FILENAME_CHARS = '/\\:*?"<>|'

SIZE_PATTERN = re.compile(r"(?i)^(\d+(?:\.\d+)?)\s*([KMGT]i?B)$")

SIZE_UNITS = {
    "KIB": 1024,
    "MIB": 1024 ** 2,
    "GIB": 1024 ** 3,
    "TIB": 1024 ** 4,
    "KB": 1000,
    "MB": 1000 ** 2,
    "GB": 1000 ** 3,
    "TB": 1000 ** 4,
}


def is_video_file(path: Path, extensions: Optional[Iterable[str]] = None) -> bool:
    """Check if a path has a video extension."""
    allowed = {e.lower() for e in (extensions or VIDEO_EXTENSIONS)}
    return path.suffix.lower() in allowed


def sanitize_filename(name: str) -> str:
    """Replace invalid filename characters with spaces and collapse whitespace."""
    for char in INVALID_FILENAME_CHARS:
        name = name.replace(char, " ")
    return " ".join(name.split())


def cleanup_path(path: str) -> str:
    """Remove empty brackets and dangling separators left by unset naming tokens."""
    previous = None
    while path != previous:
        previous = path
        path = (
            path.replace("[]", "")
            .replace("()", "")
            .replace("  ", " ")
            .replace(" - - ", " - ")
            .replace(" .", ".")
        )

    path = path.strip()
    while path.endswith(" - "):
        path = path[:-3]
    path = path.rstrip("-")
    while path.startswith(" - "):
        path = path[3:]
    path = path.lstrip("-")
    return path.strip()


def parse_size(value: str) -> Optional[int]:
    """Parse a human size like '1.5 GiB' or '700 MB' into bytes."""
    match = SIZE_PATTERN.match(value.strip())
    if not match:
        return None
    multiplier = SIZE_UNITS.get(match.group(2).upper())
    if multiplier is None:
        return None
    return int(float(match.group(1)) * multiplier)


def format_size(num_bytes: int) -> str:
    """Format a byte count using binary units."""
    for unit, factor in (("TiB", 1024 ** 4), ("GiB", 1024 ** 3), ("MiB", 1024 ** 2), ("KiB", 1024)):
        if num_bytes >= factor:
            return f"{num_bytes / factor:.2f} {unit}"
    return f"{num_bytes} B"
