"""Library layout: naming patterns, destination paths and file import."""

import logging
import os
import re
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from ..config import LibraryConfig
from ..errors import FileOperationError, ValidationError
from ..models import Anime
from .file_utils import cleanup_path, sanitize_filename
from .media import MediaInfo
from .titles import detect_season_from_title

logger = logging.getLogger(__name__)

# "Title (2023)" -> "Title"
_TRAILING_YEAR = re.compile(r"^(.*) \((\d{4})\)$")

TITLE_PREFERENCES = ("stored", "english", "romaji")


class ImportMode(str, Enum):
    MOVE = "Move"
    COPY = "Copy"
    HARDLINK = "Hardlink"

    @classmethod
    def parse(cls, value) -> "ImportMode":
        if isinstance(value, cls):
            return value
        for mode in cls:
            if mode.value.lower() == str(value).strip().lower():
                return mode
        raise ValidationError(f"Unknown import mode: {value}")


@dataclass
class RenamingOptions:
    """Per-file values for a naming pattern. Unset values render as empty."""

    season: Optional[int] = None
    episode_title: str = ""
    quality: Optional[str] = None
    group: Optional[str] = None
    original_filename: Optional[str] = None
    extension: str = "mkv"
    year: Optional[int] = None
    media_info: Optional[MediaInfo] = None


def folder_name_without_year(path: str) -> Optional[str]:
    """Last component of a stored anime path, minus a trailing ' (YYYY)'."""
    name = Path(path).name.strip()
    if not name:
        return None
    match = _TRAILING_YEAR.match(name)
    if match:
        return match.group(1)
    return name


def detect_anime_season(anime: Anime) -> Optional[int]:
    for title in (anime.title_romaji, anime.title_english):
        if title:
            season = detect_season_from_title(title)
            if season is not None:
                return season
    return None


class LibraryService:
    """Renders library paths and moves files into place."""

    def __init__(self, config: Optional[LibraryConfig] = None):
        self.config = config or LibraryConfig.from_settings()

    @property
    def library_root(self) -> Path:
        return Path(self.config.library_path)

    def get_series_title(self, anime: Anime) -> str:
        """Series title per the preferred_title setting.

        - stored: the anime's existing folder name without its year suffix,
          falling back to english
        - english: English title, falling back to romaji
        - romaji: romaji title
        """
        preference = (self.config.preferred_title or "english").lower()
        if preference == "stored" and anime.path:
            stored = folder_name_without_year(anime.path)
            if stored:
                return stored
        if preference == "romaji":
            return anime.title_romaji
        return anime.title_english or anime.title_romaji

    def naming_format_for(self, anime: Anime) -> str:
        if anime.is_movie:
            return self.config.movie_naming_format
        return self.config.naming_format

    def format_episode_path(
        self, anime: Anime, episode_number: int, options: Optional[RenamingOptions] = None
    ) -> str:
        """Render the naming pattern for one episode, relative to the library root."""
        options = options or RenamingOptions()
        season = options.season or detect_anime_season(anime) or 1
        year = options.year if options.year is not None else anime.start_year
        media = options.media_info

        tokens = {
            "{Series Title}": sanitize_filename(self.get_series_title(anime)),
            "{Season}": str(season),
            "{Episode}": str(episode_number),
            "{Season:02}": f"{season:02d}",
            "{Episode:02}": f"{episode_number:02d}",
            "{Title}": sanitize_filename(options.episode_title or ""),
            "{Quality}": sanitize_filename(options.quality or ""),
            "{Group}": sanitize_filename(options.group or ""),
            "{Original Filename}": sanitize_filename(options.original_filename or ""),
            "{Year}": str(year) if year else "",
            "{Resolution}": media.resolution_str() if media else "",
            "{Codec}": sanitize_filename(media.video_codec) if media else "",
            "{Duration}": media.duration_str() if media else "",
            "{Audio}": sanitize_filename(media.audio_codecs[0]) if media and media.audio_codecs else "",
        }

        path = self.naming_format_for(anime)
        for token, value in tokens.items():
            path = path.replace(token, value)
        return cleanup_path(path)

    def get_destination_path(
        self, anime: Anime, episode_number: int, options: Optional[RenamingOptions] = None
    ) -> Path:
        options = options or RenamingOptions()
        rendered = self.format_episode_path(anime, episode_number, options)
        extension = options.extension.lstrip(".")
        filename = f"{rendered}.{extension}" if extension else rendered
        return self.library_root / filename

    def build_anime_root_path(self, anime: Anime, custom_root: Optional[Path] = None) -> Path:
        """Folder for an anime: its stored folder name, else 'Romaji Title (Year)'."""
        if anime.path and Path(anime.path).name:
            folder_name = Path(anime.path).name
        elif anime.start_year:
            folder_name = sanitize_filename(f"{anime.title_romaji} ({anime.start_year})")
        else:
            folder_name = sanitize_filename(anime.title_romaji)
        root = Path(custom_root) if custom_root is not None else self.library_root
        return root / folder_name

    def import_file(self, source: Path, destination: Path, mode=None) -> Path:
        """Place a file in the library by move, copy or hardlink.

        A failed hardlink (e.g. across filesystems) falls back to a copy.
        Returns the absolute destination.
        """
        mode = ImportMode.parse(mode or self.config.import_mode)
        source = Path(source)
        destination = Path(destination)
        if not destination.is_absolute():
            destination = Path.cwd() / destination

        logger.info(f"Importing {source} -> {destination} ({mode.value})")
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            if mode is ImportMode.MOVE:
                shutil.move(str(source), str(destination))
            elif mode is ImportMode.COPY:
                shutil.copy2(str(source), str(destination))
            else:
                try:
                    os.link(source, destination)
                except OSError as e:
                    logger.warning(f"Hardlink failed, falling back to copy: {e}")
                    shutil.copy2(str(source), str(destination))
        except OSError as e:
            raise FileOperationError(f"Failed to import {source}: {e}") from e
        return destination
