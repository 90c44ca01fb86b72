"""Quality taxonomy and filename quality classification."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .parser import Release, extract_resolution, extract_source, parse_filename

logger = logging.getLogger(__name__)


class QualitySource(str, Enum):
    """Where a release was sourced from."""

    BLURAY = "BluRay"
    WEB = "WEB"
    HDTV = "HDTV"
    DVD = "DVD"
    SDTV = "SDTV"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class Quality:
    """One entry of the ranked quality table. Higher rank is better."""

    id: int
    name: str
    source: QualitySource
    resolution: int
    rank: int

    def is_better_than(self, other: "Quality") -> bool:
        return self.rank > other.rank

    def meets_cutoff(self, cutoff: "Quality") -> bool:
        """True when this quality is at or above the cutoff."""
        return self.rank >= cutoff.rank

    @property
    def is_unknown(self) -> bool:
        return self.id == UNKNOWN_QUALITY_ID

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "source": self.source.value,
            "resolution": self.resolution,
            "rank": self.rank,
        }

    def __str__(self) -> str:
        return self.name


UNKNOWN_QUALITY_ID = 99

# Ordered best first
QUALITIES: tuple[Quality, ...] = (
    Quality(1, "BluRay 2160p", QualitySource.BLURAY, 2160, 10),
    Quality(2, "WEB 2160p", QualitySource.WEB, 2160, 9),
    Quality(3, "BluRay 1080p", QualitySource.BLURAY, 1080, 8),
    Quality(4, "WEB 1080p", QualitySource.WEB, 1080, 7),
    Quality(5, "BluRay 720p", QualitySource.BLURAY, 720, 6),
    Quality(6, "WEB 720p", QualitySource.WEB, 720, 5),
    Quality(7, "HDTV 1080p", QualitySource.HDTV, 1080, 4),
    Quality(8, "HDTV 720p", QualitySource.HDTV, 720, 3),
    Quality(9, "DVD 576p", QualitySource.DVD, 576, 2),
    Quality(10, "SDTV 480p", QualitySource.SDTV, 480, 1),
)

UNKNOWN_QUALITY = Quality(UNKNOWN_QUALITY_ID, "Unknown", QualitySource.UNKNOWN, 0, 0)

_BY_ID = {q.id: q for q in QUALITIES + (UNKNOWN_QUALITY,)}
_BY_NAME = {q.name.lower(): q for q in QUALITIES + (UNKNOWN_QUALITY,)}

# Alternate spellings accepted by name lookups
_SOURCE_ALIASES = {
    "bd": "bluray",
    "blu-ray": "bluray",
    "bdrip": "bluray",
    "web-dl": "web",
    "webdl": "web",
    "webrip": "web",
}

# Used when the source does not pin down a table entry
_RESOLUTION_DEFAULT_ID = {2160: 2, 1080: 4, 720: 6, 576: 9, 480: 10}

_SOURCE_TAGS = {
    "BD": QualitySource.BLURAY,
    "BDRIP": QualitySource.BLURAY,
    "WEB": QualitySource.WEB,
    "WEBRIP": QualitySource.WEB,
    "AMZN": QualitySource.WEB,
    "CR": QualitySource.WEB,
    "DSNP": QualitySource.WEB,
    "NF": QualitySource.WEB,
    "HMAX": QualitySource.WEB,
    "HDTV": QualitySource.HDTV,
    "DVDRIP": QualitySource.DVD,
}


def list_qualities() -> list[Quality]:
    """All selectable qualities, best first. The Unknown entry is excluded."""
    return list(QUALITIES)


def get_quality_by_id(quality_id: Optional[int]) -> Optional[Quality]:
    if quality_id is None:
        return None
    return _BY_ID.get(quality_id)


def get_quality_by_name(name: str) -> Optional[Quality]:
    """Case-insensitive lookup that also accepts 'BD 1080p' for 'BluRay 1080p'."""
    key = " ".join(name.strip().lower().split())
    if key in _BY_NAME:
        return _BY_NAME[key]
    parts = key.split(" ", 1)
    if len(parts) == 2 and parts[0] in _SOURCE_ALIASES:
        return _BY_NAME.get(f"{_SOURCE_ALIASES[parts[0]]} {parts[1]}")
    return None


def resolution_to_int(resolution: Optional[str]) -> int:
    """'1080p' -> 1080, '4K' -> 2160, unknown -> 0."""
    if not resolution:
        return 0
    value = resolution.strip().lower()
    if value == "4k":
        return 2160
    try:
        return int(value.rstrip("pi"))
    except ValueError:
        return 0


def source_category(source: Optional[str]) -> QualitySource:
    """Map a parsed source tag (BD, WEB, WEBRIP, CR, ...) to its category."""
    if not source:
        return QualitySource.UNKNOWN
    return _SOURCE_TAGS.get(source.upper(), QualitySource.UNKNOWN)


def quality_for(resolution: int, source: QualitySource) -> Quality:
    """Best table entry for a resolution and source; Unknown without a resolution."""
    for quality in QUALITIES:
        if quality.resolution == resolution and quality.source == source:
            return quality
    default_id = _RESOLUTION_DEFAULT_ID.get(resolution)
    if default_id is None:
        return UNKNOWN_QUALITY
    return _BY_ID[default_id]


def classify(text: str) -> Quality:
    """Classify a filename or tag string. Never raises; unmatched input is Unknown."""
    resolution = resolution_to_int(extract_resolution(text))
    return quality_for(resolution, source_category(extract_source(text)))


def classify_release(release: Release) -> Quality:
    """Classify a parsed release from its own resolution and source tags."""
    return quality_for(resolution_to_int(release.resolution), source_category(release.source))


def determine_quality_id(release: Release) -> int:
    return classify_release(release).id


def _infer_source(filename: str) -> QualitySource:
    lower = filename.lower()
    if any(k in lower for k in ("bluray", "blu-ray", "bdremux", "bdrip")):
        return QualitySource.BLURAY
    if any(k in lower for k in ("amzn", "amazon", "crunchyroll", "dsnp", "disney", "netflix", "hmax", "hulu", "web")):
        return QualitySource.WEB
    if "hdtv" in lower:
        return QualitySource.HDTV
    if "dvd" in lower:
        return QualitySource.DVD
    return QualitySource.WEB


def parse_quality_from_filename(filename: str) -> Quality:
    """Lenient classification for search results: assumes 1080p and WEB when tags are missing."""
    release = parse_filename(filename)
    resolution = resolution_to_int(release.resolution) if release else 0
    if not resolution:
        resolution = resolution_to_int(extract_resolution(filename)) or 1080

    source = source_category(release.source) if release else QualitySource.UNKNOWN
    if source == QualitySource.UNKNOWN:
        source = _infer_source(filename)

    return quality_for(resolution, source)
