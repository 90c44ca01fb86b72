"""Episode listings, metadata caching and staleness handling."""

import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from ..config import settings
from ..errors import AnimeAdminError, NotFoundError, ValidationError
from .media import MediaInfo
from .metadata import MetadataChain, merge_anime_metadata
from .provenance import AnimeProvenance, MetadataProvider
from .quality import get_quality_by_id
from .worker import BackgroundWorker, background_worker

logger = logging.getLogger(__name__)


@dataclass
class EpisodeView:
    """One episode as shown in listings."""

    episode_number: int
    title: str
    aired: Optional[str] = None
    filler: bool = False
    recap: bool = False
    downloaded: bool = False
    file_path: Optional[str] = None
    file_size: Optional[int] = None
    quality: Optional[str] = None
    media_info: Optional[MediaInfo] = None

    def to_dict(self) -> dict:
        media = self.media_info
        return {
            "episode_number": self.episode_number,
            "title": self.title,
            "aired": self.aired,
            "filler": self.filler,
            "recap": self.recap,
            "downloaded": self.downloaded,
            "file_path": self.file_path,
            "file_size": self.file_size,
            "quality": self.quality,
            "resolution": media.resolution_str() if media else None,
            "video_codec": media.video_codec if media else None,
            "audio": media.audio_str() if media else None,
            "duration": media.duration_str() if media else None,
        }


class EpisodeService:
    """Episode metadata and download state for monitored anime."""

    def __init__(
        self,
        store,
        providers: Optional[MetadataChain] = None,
        worker: Optional[BackgroundWorker] = None,
        refresh_window_secs: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.providers = providers or MetadataChain()
        self.worker = worker or background_worker
        self.refresh_window_secs = (
            settings.metadata_refresh_window_secs if refresh_window_secs is None else refresh_window_secs
        )
        self._clock = clock
        self._recent_fetches: dict[int, float] = {}
        self._fetch_lock = threading.Lock()

    def _claim_fetch(self, anime_id: int) -> bool:
        """Record a fetch attempt unless one happened inside the refresh window."""
        now = self._clock()
        with self._fetch_lock:
            last = self._recent_fetches.get(anime_id)
            if last is not None and now - last < self.refresh_window_secs:
                return False
            self._recent_fetches[anime_id] = now
            return True

    def _require_anime(self, anime_id: int):
        anime = self.store.get_anime(anime_id)
        if anime is None:
            raise NotFoundError(f"Anime {anime_id} not found")
        return anime

    async def fetch_and_cache_episodes(self, anime_id: int, force: bool = False) -> int:
        """Fetch episode metadata and cache it. Returns the number of cached episodes.

        Skipped (returns 0) when the anime was fetched recently, unless forced.
        Raises AllProvidersFailedError when every provider failed.
        """
        anime = self._require_anime(anime_id)
        if force:
            with self._fetch_lock:
                self._recent_fetches[anime_id] = self._clock()
        elif not self._claim_fetch(anime_id):
            logger.debug(f"Skipping metadata fetch for anime {anime_id}, fetched recently")
            return 0

        provider, episodes = await self.providers.fetch_episodes(anime)
        if not episodes:
            return 0
        count = self.store.cache_episode_metadata(anime_id, [e.to_cache_dict() for e in episodes])
        logger.info(f"Cached {count} episodes from {provider} for anime {anime_id}")
        return count

    async def refresh_episode_cache(self, anime_id: int) -> int:
        """Drop cached metadata and fetch again, ignoring the throttle."""
        self._require_anime(anime_id)
        self.store.clear_episode_metadata(anime_id)
        return await self.fetch_and_cache_episodes(anime_id, force=True)

    async def refresh_anime_metadata(self, anime_id: int, overwrite: bool = False):
        """Fill anime fields from AniList; with overwrite, replace existing values."""
        anime = self._require_anime(anime_id)
        data = await self.providers.fetch_anime(anime_id)
        if not data:
            return anime
        provenance = AnimeProvenance.from_json(anime.metadata_provenance)
        updates = merge_anime_metadata(
            anime, data, MetadataProvider.ANILIST, provenance, overwrite=overwrite
        )
        if data.get("mal_id") and not anime.mal_id:
            updates["mal_id"] = data["mal_id"]
        if not updates:
            return anime
        updates["metadata_provenance"] = provenance.to_json()
        logger.info(f"Updating anime {anime_id} metadata fields: {sorted(updates)}")
        return self.store.update_anime(anime_id, **updates)

    def get_episode_title(self, anime_id: int, episode_number: int) -> str:
        """Cached title, or 'Episode N' when none is known."""
        for row in self.store.get_episode_metadata(anime_id):
            if row.episode_number == episode_number and row.title:
                return row.title
        return f"Episode {episode_number}"

    def get_episode_titles(self, anime_id: int) -> dict[int, str]:
        return {
            row.episode_number: row.title
            for row in self.store.get_episode_metadata(anime_id)
            if row.title
        }

    def _clear_stale(self, anime_id: int, episode_number: int):
        try:
            self.store.clear_episode_download(anime_id, episode_number)
            logger.info(f"Cleared missing file for anime {anime_id} episode {episode_number}")
        except AnimeAdminError as e:
            logger.warning(
                f"Failed to clear stale download for anime {anime_id} episode {episode_number}: {e}"
            )

    def _build_view(self, anime_id: int, number: int, metadata, status) -> EpisodeView:
        view = EpisodeView(
            episode_number=number,
            title=(metadata.title if metadata and metadata.title else f"Episode {number}"),
        )
        if metadata is not None:
            view.aired = metadata.aired
            view.filler = metadata.filler
            view.recap = metadata.recap

        if status is not None and status.file_path:
            if Path(status.file_path).exists():
                quality = get_quality_by_id(status.quality_id)
                view.downloaded = True
                view.file_path = status.file_path
                view.file_size = status.file_size
                view.quality = quality.name if quality else None
                view.media_info = MediaInfo.from_status(status)
            else:
                logger.debug(f"File missing for anime {anime_id} episode {number}: {status.file_path}")
                self.worker.submit(self._clear_stale, anime_id, number)
        return view

    def list_episodes(self, anime_id: int) -> list[EpisodeView]:
        """All known episodes with their download state.

        Episodes whose recorded file is gone are reported as not downloaded,
        and their status is cleared in the background.
        """
        anime = self._require_anime(anime_id)
        metadata = {row.episode_number: row for row in self.store.get_episode_metadata(anime_id)}
        statuses = {s.episode_number: s for s in self.store.get_episode_statuses(anime_id)}

        numbers = set(metadata) | set(statuses)
        if anime.episode_count:
            numbers |= set(range(1, anime.episode_count + 1))

        return [
            self._build_view(anime_id, n, metadata.get(n), statuses.get(n))
            for n in sorted(numbers)
            if n > 0
        ]

    def get_episode(self, anime_id: int, episode_number: int) -> EpisodeView:
        if episode_number <= 0:
            raise ValidationError(f"Episode number must be positive, got {episode_number}")
        self._require_anime(anime_id)
        metadata = next(
            (m for m in self.store.get_episode_metadata(anime_id) if m.episode_number == episode_number),
            None,
        )
        status = self.store.get_episode_status(anime_id, episode_number)
        return self._build_view(anime_id, episode_number, metadata, status)
