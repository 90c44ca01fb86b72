"""Library reconciliation: unmapped folder discovery and file scans."""

import asyncio
import copy
import logging
import os
import threading
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Callable, Optional

from ..config import LibraryConfig, settings
from ..errors import AnimeAdminError, FileOperationError, NotFoundError, ProviderError, ValidationError
from .events import (
    Error, EventBus, LibraryScanFinished, LibraryScanProgress, LibraryScanStarted,
    ScanFinished, ScanFolderFinished, ScanFolderStarted, ScanProgress, ScanStarted,
    event_bus as default_event_bus,
)
from .file_utils import is_video_file
from .folders import is_hidden
from .matcher import LibraryMatcher
from .media import MediaProbeService, media_probe
from .metadata import AniListClient
from .parser import parse_filename
from .quality import determine_quality_id, parse_quality_from_filename
from .titles import clean_title
from .worker import BackgroundWorker, background_worker

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 3


class ReadWriteLock:
    """Many readers or one writer."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    @contextmanager
    def read(self):
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self):
        with self._cond:
            while self._writer or self._readers:
                self._cond.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


@dataclass
class SearchSuggestion:
    """A metadata search hit proposed for an unmapped folder."""

    id: int
    title_romaji: str
    title_english: Optional[str] = None
    title_native: Optional[str] = None
    format: Optional[str] = None
    episode_count: Optional[int] = None
    status: Optional[str] = None
    cover_image: Optional[str] = None
    already_in_library: bool = False

    @classmethod
    def from_search(cls, result: dict, existing_ids: set[int]) -> "SearchSuggestion":
        return cls(
            id=result["id"],
            title_romaji=result.get("title_romaji") or "",
            title_english=result.get("title_english"),
            title_native=result.get("title_native"),
            format=result.get("format"),
            episode_count=result.get("episode_count"),
            status=result.get("status"),
            cover_image=result.get("cover_image"),
            already_in_library=result["id"] in existing_ids,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": {
                "romaji": self.title_romaji,
                "english": self.title_english,
                "native": self.title_native,
            },
            "format": self.format,
            "episode_count": self.episode_count,
            "status": self.status,
            "cover_image": self.cover_image,
            "already_in_library": self.already_in_library,
        }


@dataclass
class UnmappedFolder:
    name: str
    path: str
    suggested_matches: list[SearchSuggestion] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "path": self.path,
            "suggested_matches": [m.to_dict() for m in self.suggested_matches],
        }


@dataclass
class ScannerSnapshot:
    is_scanning: bool
    folders: list[UnmappedFolder]
    last_updated: Optional[datetime]

    def to_dict(self) -> dict:
        return {
            "is_scanning": self.is_scanning,
            "folders": [f.to_dict() for f in self.folders],
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }


class ScannerState:
    """Discovery scan state shared between the scan job and readers."""

    def __init__(self):
        self._lock = ReadWriteLock()
        self._is_scanning = False
        self._folders: list[UnmappedFolder] = []
        self._last_updated: Optional[datetime] = None

    def try_begin(self) -> bool:
        """Mark a scan as running and clear old results. False if one is already running."""
        with self._lock.write():
            if self._is_scanning:
                return False
            self._is_scanning = True
            self._folders = []
            return True

    def finish(self):
        with self._lock.write():
            self._is_scanning = False
            self._last_updated = datetime.now(timezone.utc)

    def set_folders(self, folders: list[UnmappedFolder]):
        with self._lock.write():
            self._folders = list(folders)

    def set_matches(self, name: str, matches: list[SearchSuggestion]):
        with self._lock.write():
            for folder in self._folders:
                if folder.name == name:
                    folder.suggested_matches = list(matches)
                    return

    def remove_folder(self, name: str):
        with self._lock.write():
            self._folders = [f for f in self._folders if f.name != name]

    @property
    def is_scanning(self) -> bool:
        with self._lock.read():
            return self._is_scanning

    def snapshot(self) -> ScannerSnapshot:
        with self._lock.read():
            return ScannerSnapshot(
                is_scanning=self._is_scanning,
                folders=copy.deepcopy(self._folders),
                last_updated=self._last_updated,
            )


@dataclass
class LibraryScanStats:
    scanned: int = 0
    matched: int = 0
    updated: int = 0
    skipped: int = 0

    def to_dict(self) -> dict:
        return {
            "scanned": self.scanned,
            "matched": self.matched,
            "updated": self.updated,
            "skipped": self.skipped,
        }


@dataclass
class FoundEpisode:
    episode_number: int
    season: Optional[int]
    file_path: str
    quality_id: int
    file_size: Optional[int]


def collect_and_parse_episodes(folder: Path, extensions=None) -> list[FoundEpisode]:
    """Breadth-first walk of an anime folder, parsing every video file.

    Hidden directories are skipped and no directory is visited twice.
    """
    found = []
    queue = deque([Path(folder)])
    visited = set()

    while queue:
        current = queue.popleft()
        try:
            key = current.resolve()
        except OSError:
            key = current
        if key in visited:
            continue
        visited.add(key)

        try:
            entries = sorted(current.iterdir())
        except OSError as e:
            logger.warning(f"Failed to read directory {current}: {e}")
            continue

        for entry in entries:
            if entry.is_dir():
                if not is_hidden(entry.name):
                    queue.append(entry)
                continue
            if not is_video_file(entry, extensions):
                continue
            release = parse_filename(entry.name)
            if release is None:
                continue
            try:
                size = entry.stat().st_size
            except OSError:
                size = None
            found.append(FoundEpisode(
                episode_number=release.episode_number_truncated(),
                season=release.season,
                file_path=str(entry),
                quality_id=parse_quality_from_filename(entry.name).id,
                file_size=size,
            ))
    return found


class LibraryScanner:
    """Finds unmapped folders and reconciles library files with episode state."""

    def __init__(
        self,
        store,
        config: Optional[LibraryConfig] = None,
        search_client=None,
        events: Optional[EventBus] = None,
        worker: Optional[BackgroundWorker] = None,
        probe: Optional[MediaProbeService] = None,
        search_delay: Optional[float] = None,
        progress_batch: Optional[int] = None,
        video_extensions: Optional[list[str]] = None,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
    ):
        self.store = store
        self.config = config or LibraryConfig.from_settings()
        self.search_client = search_client
        self.events = events or default_event_bus
        self.worker = worker or background_worker
        self.probe = probe or media_probe
        self.search_delay = (
            settings.scan_search_delay_ms / 1000 if search_delay is None else search_delay
        )
        self.progress_batch = progress_batch or settings.scan_progress_batch
        self.video_extensions = video_extensions or settings.video_extensions
        self.state = ScannerState()
        self._sleep = sleep

    @property
    def library_root(self) -> Path:
        return Path(self.config.library_path)

    def get_state(self) -> ScannerSnapshot:
        return self.state.snapshot()

    # ── Discovery scan ───────────────────────────────────────────────
    async def start_scan(self) -> bool:
        """Find library folders that belong to no known anime and suggest matches.

        Returns False without doing anything if a discovery scan is already running.
        """
        if not self.state.try_begin():
            logger.info("Discovery scan already running")
            return False

        self.events.publish(ScanStarted())
        logger.info("Starting unmapped folder discovery")
        try:
            await self._perform_scan()
        except (AnimeAdminError, OSError) as e:
            logger.error(f"Discovery scan failed: {e}")
            self.events.publish(Error(message=f"Scan failed: {e}"))
        finally:
            self.state.finish()

        unmapped = len(self.state.snapshot().folders)
        self.events.publish(ScanFinished(unmapped=unmapped))
        logger.info(f"Unmapped folder discovery finished, {unmapped} folders")
        return True

    def collect_unmapped_folders(self, existing) -> list[UnmappedFolder]:
        """Library subfolders not claimed by a known path, folder name or title."""
        known_paths = set()
        known_names = set()
        known_titles = set()
        for anime in existing:
            for title in anime.titles():
                clean = clean_title(title).lower()
                if clean:
                    known_titles.add(clean)
            if anime.path:
                path = Path(anime.path)
                known_paths.add(path.resolve())
                known_names.add(path.name)

        folders = []
        for entry in self.library_root.iterdir():
            if not entry.is_dir():
                continue
            if entry.resolve() in known_paths or entry.name in known_names:
                continue
            clean = clean_title(entry.name).lower()
            if clean and clean in known_titles:
                logger.debug(f"Skipping folder {entry.name}: matches a known title")
                continue
            folders.append(UnmappedFolder(name=entry.name, path=str(entry)))

        folders.sort(key=lambda f: f.name)
        return folders

    async def _perform_scan(self):
        if not self.library_root.exists():
            raise FileOperationError(f"Library path does not exist: {self.library_root}")

        existing = self.store.list_anime()
        existing_ids = {a.id for a in existing}
        folders = self.collect_unmapped_folders(existing)
        self.state.set_folders(folders)

        client = self.search_client or AniListClient()
        try:
            await self._search_matches(client, folders, existing_ids)
        finally:
            if self.search_client is None:
                await client.close()

    async def _search_matches(self, client, folders: list[UnmappedFolder], existing_ids: set[int]):
        total = len(folders)
        for index, folder in enumerate(folders):
            self.events.publish(ScanProgress(current=index + 1, total=total))

            query = clean_title(folder.name)
            if not query:
                continue

            await self._sleep(self.search_delay)
            try:
                results = await client.search_anime(query)
            except ProviderError as e:
                logger.warning(f"Search failed for folder {folder.name}: {e}")
                continue

            matches = [
                SearchSuggestion.from_search(r, existing_ids) for r in results[:MAX_SUGGESTIONS]
            ]
            if matches and matches[0].id in existing_ids:
                logger.debug(f"Dropping folder {folder.name}: top match {matches[0].id} already in library")
                self.state.remove_folder(folder.name)
            else:
                self.state.set_matches(folder.name, matches)

    # ── Library file scan ────────────────────────────────────────────
    def _walk_video_files(self):
        for dirpath, dirnames, filenames in os.walk(self.library_root):
            dirnames[:] = sorted(d for d in dirnames if not is_hidden(d))
            for name in sorted(filenames):
                path = Path(dirpath) / name
                if is_video_file(path, self.video_extensions):
                    yield path

    def scan_library_files(self) -> LibraryScanStats:
        """Match every video file in the library and record newly found episodes."""
        if not self.library_root.exists():
            raise FileOperationError(f"Library path does not exist: {self.library_root}")

        self.events.publish(LibraryScanStarted())
        logger.info(f"Scanning library {self.library_root}")

        matcher = LibraryMatcher(self.store.list_monitored())
        known_episodes: dict[int, set[int]] = {}
        stats = LibraryScanStats()

        for path in self._walk_video_files():
            stats.scanned += 1
            if stats.scanned % self.progress_batch == 0:
                self.events.publish(LibraryScanProgress(scanned=stats.scanned))

            release = parse_filename(path.name)
            if release is None:
                stats.skipped += 1
                continue
            anime, _ = matcher.match_release(release, path, self.library_root)
            if anime is None:
                logger.debug(f"No anime matched for {path.name}")
                stats.skipped += 1
                continue

            episode_number = release.episode_number_truncated()
            if anime.id not in known_episodes:
                try:
                    known_episodes[anime.id] = self.store.get_downloaded_episode_numbers(anime.id)
                except AnimeAdminError as e:
                    logger.warning(f"Failed to load episodes for anime {anime.id}: {e}")
                    stats.skipped += 1
                    continue

            if episode_number in known_episodes[anime.id]:
                stats.matched += 1
                continue

            try:
                self._record_file(path, anime, release)
            except AnimeAdminError as e:
                logger.warning(f"Failed to record library file {path}: {e}")
                continue
            stats.matched += 1
            stats.updated += 1
            known_episodes[anime.id].add(episode_number)

        self.events.publish(LibraryScanFinished(
            scanned=stats.scanned, matched=stats.matched, updated=stats.updated,
        ))
        logger.info(
            f"Library scan completed: {stats.scanned} scanned, {stats.matched} matched, "
            f"{stats.updated} updated"
        )
        return stats

    def _record_file(self, path: Path, anime, release):
        try:
            size = path.stat().st_size
        except OSError:
            size = None
        self.store.mark_episode_downloaded(
            anime.id,
            release.episode_number_truncated(),
            str(path),
            quality_id=determine_quality_id(release),
            file_size=size,
            media_info=self.probe.get_media_info(str(path)),
            season=release.effective_season(),
        )
        logger.info(f"Found {anime.title_romaji} episode {release.episode_number_truncated()}: {path.name}")

    # ── Per-anime folder scan ────────────────────────────────────────
    def scan_folder_for_episodes(self, anime_id: int, folder_path=None) -> int:
        """Record every parseable episode under the anime's folder. Returns the count."""
        anime = self.store.get_anime(anime_id)
        if anime is None:
            raise NotFoundError(f"Anime {anime_id} not found")
        target = folder_path or anime.path
        if not target:
            raise ValidationError(f"Anime {anime_id} has no folder")
        folder = Path(target)

        self.events.publish(ScanFolderStarted(anime_id=anime_id, title=anime.title_romaji))
        found = collect_and_parse_episodes(folder, self.video_extensions)
        for episode in found:
            try:
                self.store.mark_episode_downloaded(
                    anime_id,
                    episode.episode_number,
                    episode.file_path,
                    quality_id=episode.quality_id,
                    file_size=episode.file_size,
                    season=episode.season or 1,
                )
            except AnimeAdminError as e:
                logger.warning(f"Failed to mark episode {episode.episode_number} as downloaded: {e}")

        logger.info(f"Folder scan for {anime.title_romaji} found {len(found)} episodes")
        self.events.publish(ScanFolderFinished(
            anime_id=anime_id, title=anime.title_romaji, found=len(found),
        ))
        return len(found)

    # ── Background submission ────────────────────────────────────────
    def submit_scan(self):
        self.worker.submit(self.start_scan)

    def submit_library_scan(self):
        self.worker.submit(self._library_scan_job)

    def submit_folder_scan(self, anime_id: int, folder_path=None):
        self.worker.submit(self.scan_folder_for_episodes, anime_id, folder_path)

    def _library_scan_job(self):
        try:
            self.scan_library_files()
        except AnimeAdminError as e:
            logger.error(f"Library scan failed: {e}")
            self.events.publish(Error(message=f"Library scan failed: {e}"))
