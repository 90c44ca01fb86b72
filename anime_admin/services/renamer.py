"""Renaming downloaded episodes to the library naming pattern."""

import logging
import shutil
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from ..errors import FileOperationError, NotFoundError, RollbackError
from ..models import Anime, EpisodeStatus
from .events import EventBus, RenameFinished, RenameStarted, event_bus as default_event_bus
from .library import LibraryService, RenamingOptions
from .media import MediaInfo, MediaProbeService, media_probe
from .parser import parse_filename
from .quality import get_quality_by_id
from .recycle import RecycleBin

logger = logging.getLogger(__name__)


@dataclass
class RenamePreviewItem:
    episode_number: int
    current_path: str
    new_path: str
    new_filename: str

    def to_dict(self) -> dict:
        return {
            "episode_number": self.episode_number,
            "current_path": self.current_path,
            "new_path": self.new_path,
            "new_filename": self.new_filename,
        }


@dataclass
class RenameResult:
    """Outcome of a rename batch. Failures are described per episode.

    Moves that could not be undone are also kept in ``rollback_errors``;
    for those the file and the database disagree.
    """

    renamed: int = 0
    failed: int = 0
    failures: list[str] = field(default_factory=list)
    rollback_errors: list[RollbackError] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"renamed": self.renamed, "failed": self.failed, "failures": list(self.failures)}


class RenameService:
    """Previews and executes renames for one anime at a time.

    Renames within an anime run sequentially under a per-anime lock;
    different anime can be renamed concurrently.
    """

    def __init__(
        self,
        store,
        library: Optional[LibraryService] = None,
        episodes=None,
        recycle_bin: Optional[RecycleBin] = None,
        events: Optional[EventBus] = None,
        probe: Optional[MediaProbeService] = None,
    ):
        self.store = store
        self.library = library or LibraryService()
        self.episodes = episodes
        self.recycle_bin = recycle_bin
        self.events = events or default_event_bus
        self.probe = probe or media_probe
        self._locks: dict[int, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, anime_id: int) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(anime_id, threading.Lock())

    def _require_anime(self, anime_id: int) -> Anime:
        anime = self.store.get_anime(anime_id)
        if anime is None:
            raise NotFoundError(f"Anime {anime_id} not found")
        return anime

    def _episode_titles(self, anime_id: int) -> dict[int, str]:
        if self.episodes is None:
            return {}
        return self.episodes.get_episode_titles(anime_id)

    def _media_info(self, status: EpisodeStatus, current_path: Path) -> Optional[MediaInfo]:
        cached = MediaInfo.from_status(status)
        if cached is not None:
            return cached
        return self.probe.get_media_info(str(current_path))

    def build_options(
        self, anime: Anime, status: EpisodeStatus, current_path: Path, titles: dict[int, str]
    ) -> RenamingOptions:
        number = status.episode_number
        release = parse_filename(current_path.name)
        quality = get_quality_by_id(status.quality_id)
        return RenamingOptions(
            season=status.season,
            episode_title=titles.get(number) or f"Episode {number}",
            quality=quality.name if quality and not quality.is_unknown else None,
            group=release.group if release else None,
            original_filename=current_path.stem,
            extension=current_path.suffix.lstrip(".") or "mkv",
            year=anime.start_year,
            media_info=self._media_info(status, current_path),
        )

    def _plan(self, anime: Anime) -> list[RenamePreviewItem]:
        titles = self._episode_titles(anime.id)
        items = []
        for status in self.store.get_episode_statuses(anime.id):
            if not status.file_path:
                continue
            current_path = Path(status.file_path)
            if not current_path.exists():
                logger.debug(f"Skipping missing file for episode {status.episode_number}: {current_path}")
                continue

            options = self.build_options(anime, status, current_path, titles)
            new_path = self.library.get_destination_path(anime, status.episode_number, options)
            if str(new_path) == status.file_path:
                continue
            items.append(RenamePreviewItem(
                episode_number=status.episode_number,
                current_path=status.file_path,
                new_path=str(new_path),
                new_filename=new_path.name,
            ))
        items.sort(key=lambda item: item.episode_number)
        return items

    def preview(self, anime_id: int) -> list[RenamePreviewItem]:
        """Episodes whose file would move, with their new paths."""
        return self._plan(self._require_anime(anime_id))

    def _move_file(self, source: Path, dest: Path):
        shutil.move(str(source), str(dest))

    def _clear_destination(self, anime_id: int, item: RenamePreviewItem, dest: Path):
        """Recycle whatever already occupies the destination path."""
        if not dest.exists():
            return
        if self.recycle_bin is None:
            raise FileOperationError(f"Destination already exists: {dest}")
        self.recycle_bin.recycle(
            dest,
            reason="Replaced by rename",
            anime_id=anime_id,
            episode_number=item.episode_number,
        )

    def _rename_one(self, anime_id: int, item: RenamePreviewItem, result: RenameResult):
        number = item.episode_number
        source = Path(item.current_path)
        dest = Path(item.new_path)

        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(f"Failed to create {dest.parent}: {e}")
            result.failed += 1
            result.failures.append(f"Ep {number}: Failed to create dir")
            return

        try:
            self._clear_destination(anime_id, item, dest)
            self._move_file(source, dest)
        except (OSError, FileOperationError) as e:
            logger.warning(f"Rename failed for episode {number}: {e}")
            result.failed += 1
            result.failures.append(f"Ep {number}: Rename failed: {e}")
            return

        try:
            self.store.update_episode_path(anime_id, number, str(dest))
        except Exception as e:
            logger.error(f"DB update failed for episode {number}, rolling back: {e}")
            result.failed += 1
            try:
                self._move_file(dest, source)
            except OSError as rollback_error:
                error = RollbackError(
                    f"Rollback failed for anime {anime_id} episode {number}: "
                    f"file renamed to {dest} but database still points to {source}: {rollback_error}"
                )
                error.__cause__ = rollback_error
                logger.critical(str(error))
                result.rollback_errors.append(error)
                result.failures.append(f"Ep {number}: CRITICAL: rollback failed, file left at {dest}")
                return
            logger.info(f"Rolled back episode {number} to {source}")
            result.failures.append(f"Ep {number}: Rename failed (DB error, rolled back)")
            return

        logger.info(f"Renamed episode {number}: {source} -> {dest}")
        result.renamed += 1

    def execute(self, anime_id: int) -> RenameResult:
        """Rename every episode whose path differs, continuing past individual failures."""
        anime = self._require_anime(anime_id)
        with self._lock_for(anime_id):
            self.events.publish(RenameStarted(anime_id=anime_id, title=anime.title_romaji))
            result = RenameResult()
            for item in self._plan(anime):
                self._rename_one(anime_id, item, result)

            logger.info(
                f"Rename for {anime.title_romaji}: {result.renamed} renamed, {result.failed} failed"
            )
            self.events.publish(RenameFinished(
                anime_id=anime_id, title=anime.title_romaji,
                count=result.renamed, failed=result.failed,
            ))
            return result
