"""Release filename parsing.

Filenames are tried against an ordered list of strategies, most specific
first. The first strategy that recognizes the name produces the `Release`.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .titles import clean_title, detect_season_from_title

logger = logging.getLogger(__name__)

RESOLUTION_PATTERN = re.compile(r"(?i)(4K|2160p|1080p|720p|480p|576p)")

SOURCE_PATTERN = re.compile(
    r"(?i)(BD|Blu-?Ray|WEB-?(?:Rip|DL)?|HDTV|DVDRip|BDRip|WEBRip|AMZN|CR|DSNP|NF|HMAX)"
)

BRACKET_CONTENT_PATTERN = re.compile(r"\[([^\]]+)\]")
LEADING_GROUP_PATTERN = re.compile(r"^\[([^\]]+)\]")

# Codec and container keywords that are never a release group
METADATA_KEYWORDS = {
    "X264", "X265", "HEVC", "AV1", "AAC", "FLAC", "AC3", "EAC3", "DTS", "TRUEHD", "OPUS",
    "H.264", "H.265", "10BIT", "HDR", "REMUX", "DV",
}

# Numbers that look like episodes but are resolutions
RESOLUTION_NUMBERS = {480, 720, 1080, 2160}


@dataclass
class Release:
    """Structured information parsed from a release filename."""

    original_filename: str
    title: str
    episode_number: float
    season: Optional[int] = None
    group: Optional[str] = None
    resolution: Optional[str] = None
    source: Optional[str] = None
    version: Optional[int] = None

    def effective_season(self) -> int:
        return self.season if self.season is not None else 1

    def effective_version(self) -> int:
        return self.version if self.version is not None else 1

    def is_revised(self) -> bool:
        """True for re-uploads such as 'v2'."""
        return self.effective_version() > 1

    def episode_number_truncated(self) -> int:
        return int(self.episode_number)

    def episode_number_rounded(self) -> int:
        return int(self.episode_number + 0.5)

    def is_partial_episode(self) -> bool:
        """True for half episodes like 6.5."""
        return self.episode_number != int(self.episode_number)

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "original_filename": self.original_filename,
            "title": self.title,
            "episode_number": self.episode_number,
            "season": self.season,
            "group": self.group,
            "resolution": self.resolution,
            "source": self.source,
            "version": self.version,
        }


# ── Tag extraction ────────────────────────────────────────────────────

def extract_resolution(text: str) -> Optional[str]:
    """Find the first resolution tag, '4K' uppercase and others lowercase."""
    match = RESOLUTION_PATTERN.search(text)
    if not match:
        return None
    value = match.group(1)
    if value.upper() == "4K":
        return "4K"
    return value.lower()


def extract_source(text: str) -> Optional[str]:
    """Find the first source tag, normalizing BluRay, WEB-DL and WEBRip spellings."""
    match = SOURCE_PATTERN.search(text)
    if not match:
        return None
    value = match.group(1)
    upper = value.upper()
    if upper in ("BLURAY", "BLU-RAY"):
        return "BD"
    if upper in ("WEBRIP", "WEB-RIP"):
        return "WEBRIP"
    if upper in ("WEBDL", "WEB-DL", "WEB"):
        return "WEB"
    return value


def is_metadata(text: str) -> bool:
    """True when text is a quality, source or codec tag rather than a group name."""
    if extract_resolution(text) or extract_source(text):
        return True
    return text.upper() in METADATA_KEYWORDS


def extract_group_from_rest(text: str) -> Optional[str]:
    """Extract a release group from the text after the last dash ('...x265-GROUP.mkv')."""
    pos = text.rfind("-")
    if pos == -1:
        return None

    rest = text[pos + 1:].strip()
    stem = Path(rest).stem if rest else rest

    if "[" in stem and "]" in stem:
        for value in reversed(BRACKET_CONTENT_PATTERN.findall(stem)):
            candidate = value.strip().lstrip("[")
            if not is_metadata(candidate):
                return candidate

    if stem and not stem.startswith("[") and not is_metadata(stem):
        return stem
    return None


def extract_bracket_group(text: str) -> Optional[str]:
    """Extract a leading '[Group]' tag."""
    match = LEADING_GROUP_PATTERN.search(text)
    return match.group(1).strip() if match else None


def _to_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _to_version(value: Optional[str]) -> Optional[int]:
    version = _to_int(value)
    if version is None or version < 1:
        return None
    return version


# ── Strategies ────────────────────────────────────────────────────────

class ParseStrategy:
    """A single filename shape. Returns None when the name does not fit."""

    name = "base"
    pattern: re.Pattern = None

    def parse(self, filename: str) -> Optional[Release]:
        match = self.pattern.search(filename)
        if not match:
            return None
        return self.build(match, filename)

    def build(self, match: re.Match, filename: str) -> Optional[Release]:
        raise NotImplementedError

    def _common_fields(self, match: re.Match, filename: str, has_group: bool) -> Optional[Release]:
        """Fill a Release from named groups; tags come only from the captured tag block."""
        groups = match.groupdict()
        title = groups["title"].strip()
        try:
            episode_number = float(groups["episode"])
        except (TypeError, ValueError):
            return None

        group = groups.get("group").strip() if has_group and groups.get("group") else None

        season = _to_int(groups.get("season"))
        if season is None:
            season = detect_season_from_title(title)

        tags = groups.get("tags")
        if tags is None:
            tags = groups.get("tags_paren")

        return Release(
            original_filename=filename,
            title=clean_title(title),
            episode_number=episode_number,
            season=season,
            group=group,
            resolution=extract_resolution(tags) if tags is not None else None,
            source=extract_source(tags) if tags is not None else None,
            version=_to_version(groups.get("version")),
        )


class StandardBracketStrategy(ParseStrategy):
    """[Group] Title - 01v2 [1080p]"""

    name = "standard_bracket"
    pattern = re.compile(
        r"^\[(?P<group>[^\]]+)\]\s*(?P<title>.+?)\s*-\s*(?P<episode>\d+(?:\.\d+)?)\s*"
        r"(?:v(?P<version>\d+))?\s*"
        r"(?:(?:\[(?P<tags>[^\]]*)\])|(?:\((?P<tags_paren>[^)]*)\)))?.*$"
    )

    def build(self, match, filename):
        return self._common_fields(match, filename, has_group=True)


class BracketSeasonEpisodeStrategy(ParseStrategy):
    """[Group] Title - S01E05 [1080p]"""

    name = "bracket_season_episode"
    pattern = re.compile(
        r"^\[(?P<group>[^\]]+)\]\s*(?P<title>.+?)\s*-?\s*S(?P<season>\d+)E(?P<episode>\d+(?:\.\d+)?)\s*"
        r"(?:v(?P<version>\d+))?\s*(?:\[(?P<tags>[^\]]*)\])?.*$"
    )

    def build(self, match, filename):
        return self._common_fields(match, filename, has_group=True)


class SimpleSeasonEpisodeStrategy(ParseStrategy):
    """Title - S01E05 - Episode Title"""

    name = "simple_season_episode"
    pattern = re.compile(
        r"^(?P<title>.+?)\s*-\s*S(?P<season>\d+)E(?P<episode>\d+(?:\.\d+)?)(?:\s*-\s*.+)?.*$"
    )

    def build(self, match, filename):
        title = match.group("title").strip()
        # "Title (2023) - S01E01" belongs to the Plex strategy
        if title.endswith(")") and len(title) >= 2 and title[-2].isdigit():
            return None

        release = self._common_fields(match, filename, has_group=False)
        if release is None:
            return None
        release.resolution = extract_resolution(filename)
        release.source = extract_source(filename)
        release.group = extract_group_from_rest(filename)
        return release


class PlexStrategy(ParseStrategy):
    """Title (2023) - S01E01 - Episode Title [Bluray-1080p][x265]-GROUP"""

    name = "plex"
    pattern = re.compile(
        r"^(?P<title>.+?)\s*(?:\(\d{4}\))?\s*-\s*S(?P<season>\d+)E(?P<episode>\d+(?:\.\d+)?)\s*"
        r"(?:-\s*.+?)?\s*(?:\[(?P<tags>[^\]]*)\])*.*$"
    )

    def build(self, match, filename):
        release = self._common_fields(match, filename, has_group=False)
        if release is None:
            return None
        release.resolution = extract_resolution(filename)
        release.source = extract_source(filename)
        release.group = extract_group_from_rest(filename)
        return release


class DotSceneStrategy(ParseStrategy):
    """Title.Name.S01E01.1080p.WEB.x264-GROUP"""

    name = "dot_scene"
    pattern = re.compile(
        r"^(?P<title>.+?)\.S(?P<season>\d+)E(?P<episode>\d+(?:\.\d+)?)\.(?P<rest>.+)$"
    )

    def build(self, match, filename):
        try:
            episode_number = float(match.group("episode"))
        except ValueError:
            return None
        rest = match.group("rest") or ""
        return Release(
            original_filename=filename,
            title=clean_title(match.group("title").replace(".", " ")),
            episode_number=episode_number,
            season=_to_int(match.group("season")),
            group=extract_group_from_rest(rest),
            resolution=extract_resolution(rest),
            source=extract_source(rest),
            version=None,
        )


class GroupAtEndStrategy(ParseStrategy):
    """Title - 05 (1080p BD) [Group]"""

    name = "group_at_end"
    pattern = re.compile(
        r"^(?P<title>.+?)\s*-\s*(?P<episode>\d+(?:\.\d+)?)\s*(?:v(?P<version>\d+))?\s*"
        r"(?:\((?P<tags>[^)]*)\))?\s*\[(?P<group>[^\]]+)\].*$"
    )

    def build(self, match, filename):
        return self._common_fields(match, filename, has_group=True)


class FallbackStrategy(ParseStrategy):
    """Loose episode-number search for names no other strategy recognizes."""

    name = "fallback"
    patterns = [
        re.compile(r"-\s*(?P<episode>\d{1,4}(?:\.\d+)?)\s*(?:v(?P<version>\d+))?(?:\s|$|\[|\()"),
        re.compile(r"[Ee](?:p(?:isode)?)?\s*(?P<episode>\d{1,4}(?:\.\d+)?)\s*(?:v(?P<version>\d+))?"),
        re.compile(r"[_\s](?P<episode>\d{1,3}(?:\.\d+)?)\s*(?:v(?P<version>\d+))?[_\s\[\(]"),
    ]

    def parse(self, filename: str) -> Optional[Release]:
        name = filename.rsplit(".", 1)[0] if "." in filename else filename

        for pattern in self.patterns:
            matches = list(pattern.finditer(name))
            if not matches:
                continue
            match = matches[-1]
            episode_str = match.group("episode")
            episode_number = float(episode_str)

            # Years and resolutions are never episode numbers
            as_int = int(episode_number)
            if 1990 <= as_int <= 2099 or as_int in RESOLUTION_NUMBERS:
                continue

            title = self._title_before(name, episode_str) or "Unknown"
            return Release(
                original_filename=filename,
                title=clean_title(title),
                episode_number=episode_number,
                season=detect_season_from_title(title),
                group=extract_bracket_group(filename),
                resolution=extract_resolution(filename),
                source=extract_source(filename),
                version=_to_version(match.group("version")),
            )
        return None

    @staticmethod
    def _title_before(name: str, episode_str: str) -> Optional[str]:
        pos = name.find(episode_str)
        if pos == -1:
            return None
        title = name[:pos].rstrip("-_ \t\r\n\f\v")
        if title.startswith("["):
            end = title.find("]")
            if end != -1:
                title = title[end + 1:].strip()
        return title or None


DEFAULT_STRATEGIES: list[ParseStrategy] = [
    StandardBracketStrategy(),
    BracketSeasonEpisodeStrategy(),
    SimpleSeasonEpisodeStrategy(),
    PlexStrategy(),
    DotSceneStrategy(),
    GroupAtEndStrategy(),
    FallbackStrategy(),
]


class FilenameParser:
    """Runs filename strategies in priority order; the first match wins."""

    def __init__(self, strategies: Optional[list[ParseStrategy]] = None):
        self.strategies = list(strategies) if strategies is not None else list(DEFAULT_STRATEGIES)

    def parse(self, filename: str) -> Optional[Release]:
        """Parse a filename, returning None when it is not a recognizable release."""
        for strategy in self.strategies:
            release = strategy.parse(filename)
            if release is not None and release.episode_number >= 0:
                logger.debug(f"Parsed '{filename}' with {strategy.name}")
                return release
        return None

    def matching_strategy(self, filename: str) -> Optional[str]:
        """Name of the strategy that recognizes the filename, if any."""
        for strategy in self.strategies:
            if strategy.parse(filename) is not None:
                return strategy.name
        return None


default_parser = FilenameParser()


def parse_filename(filename: str) -> Optional[Release]:
    """Parse a release filename with the default strategy order."""
    return default_parser.parse(filename)
