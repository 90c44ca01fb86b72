"""Persistence layer used by the services."""

import json
import logging
from contextlib import contextmanager
from typing import Iterable, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from .database import create_db_engine, get_engine, init_database, utcnow
from .errors import NotFoundError, StoreError
from .models import (
    Anime, EpisodeMetadata, EpisodeStatus, QualityProfileRecord, RecycleBinEntry,
    ReleaseProfile, ReleaseProfileRule,
)
from .services.media import MediaInfo
from .services.scoring import QualityProfile, ReleaseRule, RuleType

logger = logging.getLogger(__name__)


class Store:
    """Database access for anime, episode state, profiles and caches.

    Every method runs in its own short transaction. Returned rows are
    detached from the session and safe to read from any thread.
    Database failures surface as StoreError.
    """

    def __init__(self, engine=None):
        self.engine = engine or get_engine()
        self._session_maker = sessionmaker(
            bind=self.engine, autoflush=False, expire_on_commit=False
        )

    @classmethod
    def from_url(cls, url: str) -> "Store":
        """Create a store on a new engine and make sure the tables exist."""
        engine = create_db_engine(url)
        init_database(engine)
        return cls(engine)

    @contextmanager
    def _session(self, action: str):
        session = self._session_maker()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Database error during {action}: {e}")
            raise StoreError(f"Database error during {action}") from e
        finally:
            session.close()

    # ── Anime ────────────────────────────────────────────────────────
    def get_anime(self, anime_id: int) -> Optional[Anime]:
        with self._session("get_anime") as session:
            return session.get(Anime, anime_id)

    def list_anime(self) -> list[Anime]:
        with self._session("list_anime") as session:
            return list(session.scalars(select(Anime).order_by(Anime.title_romaji)))

    def list_monitored(self) -> list[Anime]:
        with self._session("list_monitored") as session:
            return list(session.scalars(
                select(Anime).where(Anime.monitored.is_(True)).order_by(Anime.title_romaji)
            ))

    def add_anime(self, anime: Anime) -> Anime:
        """Insert or replace an anime row."""
        with self._session("add_anime") as session:
            merged = session.merge(anime)
            session.flush()
            return merged

    def update_anime(self, anime_id: int, **fields) -> Anime:
        with self._session("update_anime") as session:
            anime = session.get(Anime, anime_id)
            if anime is None:
                raise NotFoundError(f"Anime {anime_id} not found")
            for key, value in fields.items():
                setattr(anime, key, value)
            return anime

    def delete_anime(self, anime_id: int) -> bool:
        with self._session("delete_anime") as session:
            anime = session.get(Anime, anime_id)
            if anime is None:
                return False
            session.delete(anime)
            return True

    # ── Episode state ────────────────────────────────────────────────
    def get_episode_status(self, anime_id: int, episode_number: int) -> Optional[EpisodeStatus]:
        with self._session("get_episode_status") as session:
            return session.scalar(
                select(EpisodeStatus).where(
                    EpisodeStatus.anime_id == anime_id,
                    EpisodeStatus.episode_number == episode_number,
                )
            )

    def get_episode_statuses(self, anime_id: int) -> list[EpisodeStatus]:
        with self._session("get_episode_statuses") as session:
            return list(session.scalars(
                select(EpisodeStatus)
                .where(EpisodeStatus.anime_id == anime_id)
                .order_by(EpisodeStatus.episode_number)
            ))

    def get_downloaded_episode_numbers(self, anime_id: int) -> set[int]:
        with self._session("get_downloaded_episode_numbers") as session:
            return set(session.scalars(
                select(EpisodeStatus.episode_number).where(
                    EpisodeStatus.anime_id == anime_id,
                    EpisodeStatus.file_path.is_not(None),
                )
            ))

    def mark_episode_downloaded(
        self,
        anime_id: int,
        episode_number: int,
        file_path: str,
        quality_id: Optional[int] = None,
        is_seadex: bool = False,
        file_size: Optional[int] = None,
        media_info: Optional[MediaInfo] = None,
        season: int = 1,
    ) -> EpisodeStatus:
        """Record the file for an episode, creating the status row if needed."""
        with self._session("mark_episode_downloaded") as session:
            status = session.scalar(
                select(EpisodeStatus).where(
                    EpisodeStatus.anime_id == anime_id,
                    EpisodeStatus.episode_number == episode_number,
                )
            )
            if status is None:
                status = EpisodeStatus(
                    anime_id=anime_id, episode_number=episode_number, season=season
                )
                session.add(status)

            status.file_path = file_path
            status.quality_id = quality_id
            status.is_seadex = is_seadex
            status.file_size = file_size
            status.downloaded_at = utcnow()
            if media_info is not None:
                status.resolution_width = media_info.resolution_width
                status.resolution_height = media_info.resolution_height
                status.video_codec = media_info.video_codec
                status.audio_codecs = json.dumps(media_info.audio_codecs)
                status.duration_secs = media_info.duration_secs
            session.flush()
            return status

    def clear_episode_download(self, anime_id: int, episode_number: int) -> bool:
        """Forget the file of an episode. Returns False if there was no row."""
        with self._session("clear_episode_download") as session:
            status = session.scalar(
                select(EpisodeStatus).where(
                    EpisodeStatus.anime_id == anime_id,
                    EpisodeStatus.episode_number == episode_number,
                )
            )
            if status is None:
                return False
            status.file_path = None
            status.file_size = None
            status.quality_id = None
            status.is_seadex = False
            status.downloaded_at = None
            status.resolution_width = None
            status.resolution_height = None
            status.video_codec = None
            status.audio_codecs = None
            status.duration_secs = None
            return True

    def update_episode_path(self, anime_id: int, episode_number: int, file_path: str) -> None:
        with self._session("update_episode_path") as session:
            status = session.scalar(
                select(EpisodeStatus).where(
                    EpisodeStatus.anime_id == anime_id,
                    EpisodeStatus.episode_number == episode_number,
                )
            )
            if status is None:
                raise NotFoundError(f"Episode {episode_number} of anime {anime_id} not found")
            status.file_path = file_path

    # ── Quality profiles ─────────────────────────────────────────────
    def get_quality_profile(self, profile_id: int) -> Optional[QualityProfileRecord]:
        with self._session("get_quality_profile") as session:
            return session.get(QualityProfileRecord, profile_id)

    def get_quality_profile_by_name(self, name: str) -> Optional[QualityProfileRecord]:
        with self._session("get_quality_profile_by_name") as session:
            return session.scalar(
                select(QualityProfileRecord).where(QualityProfileRecord.name == name)
            )

    def list_quality_profiles(self) -> list[QualityProfileRecord]:
        with self._session("list_quality_profiles") as session:
            return list(session.scalars(
                select(QualityProfileRecord).order_by(QualityProfileRecord.name)
            ))

    def save_quality_profile(self, profile: QualityProfile) -> QualityProfileRecord:
        """Validate and insert, or update when profile.id is set."""
        profile.validate()
        with self._session("save_quality_profile") as session:
            if profile.id is not None:
                record = session.get(QualityProfileRecord, profile.id)
                if record is None:
                    raise NotFoundError(f"Quality profile {profile.id} not found")
            else:
                record = QualityProfileRecord()
                session.add(record)

            record.name = profile.name
            record.cutoff = profile.cutoff
            record.allowed_qualities = json.dumps(list(profile.allowed_qualities))
            record.upgrade_allowed = profile.upgrade_allowed
            record.seadex_preferred = profile.seadex_preferred
            record.min_size = profile.min_size
            record.max_size = profile.max_size
            session.flush()
            return record

    def delete_quality_profile(self, profile_id: int) -> bool:
        with self._session("delete_quality_profile") as session:
            record = session.get(QualityProfileRecord, profile_id)
            if record is None:
                return False
            session.delete(record)
            return True

    def ensure_default_profile(self) -> QualityProfileRecord:
        existing = self.get_quality_profile_by_name(QualityProfile.default().name)
        if existing is not None:
            return existing
        logger.info("Creating default quality profile")
        return self.save_quality_profile(QualityProfile.default())

    # ── Release profiles ─────────────────────────────────────────────
    def save_release_profile(
        self,
        name: str,
        rules: Iterable[ReleaseRule],
        enabled: bool = True,
        is_global: bool = True,
        anime_ids: Iterable[int] = (),
    ) -> ReleaseProfile:
        """Create or replace the named release profile and its rules."""
        with self._session("save_release_profile") as session:
            profile = session.scalar(select(ReleaseProfile).where(ReleaseProfile.name == name))
            if profile is None:
                profile = ReleaseProfile(name=name)
                session.add(profile)
            profile.enabled = enabled
            profile.is_global = is_global
            profile.rules = [
                ReleaseProfileRule(term=r.term, score=r.score, rule_type=RuleType(r.rule_type).value)
                for r in rules
            ]
            ids = list(anime_ids)
            profile.anime = (
                list(session.scalars(select(Anime).where(Anime.id.in_(ids)))) if ids else []
            )
            session.flush()
            return profile

    def list_release_profiles(self) -> list[ReleaseProfile]:
        with self._session("list_release_profiles") as session:
            return list(session.scalars(select(ReleaseProfile).order_by(ReleaseProfile.name)))

    def get_release_rules_for_anime(self, anime_id: int) -> list[ReleaseRule]:
        """Rules of enabled profiles that are global or linked to the anime."""
        with self._session("get_release_rules_for_anime") as session:
            profiles = session.scalars(
                select(ReleaseProfile).where(ReleaseProfile.enabled.is_(True))
            )
            rules = []
            for profile in profiles:
                if not profile.is_global and anime_id not in {a.id for a in profile.anime}:
                    continue
                for rule in profile.rules:
                    rules.append(ReleaseRule(
                        term=rule.term, score=rule.score, rule_type=RuleType(rule.rule_type)
                    ))
            return rules

    # ── Recycle bin ──────────────────────────────────────────────────
    def add_recycle_bin_entry(
        self,
        original_path: str,
        recycled_path: str,
        anime_id: Optional[int] = None,
        episode_number: Optional[int] = None,
        quality_id: Optional[int] = None,
        file_size: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> RecycleBinEntry:
        with self._session("add_recycle_bin_entry") as session:
            entry = RecycleBinEntry(
                original_path=original_path,
                recycled_path=recycled_path,
                anime_id=anime_id,
                episode_number=episode_number,
                quality_id=quality_id,
                file_size=file_size,
                reason=reason,
            )
            session.add(entry)
            session.flush()
            return entry

    def list_recycle_bin_entries(self) -> list[RecycleBinEntry]:
        with self._session("list_recycle_bin_entries") as session:
            return list(session.scalars(
                select(RecycleBinEntry).order_by(RecycleBinEntry.deleted_at.desc())
            ))

    def delete_recycle_bin_entry(self, recycled_path: str) -> None:
        with self._session("delete_recycle_bin_entry") as session:
            session.execute(
                delete(RecycleBinEntry).where(RecycleBinEntry.recycled_path == recycled_path)
            )

    # ── Episode metadata cache ───────────────────────────────────────
    def cache_episode_metadata(self, anime_id: int, episodes: Iterable[dict]) -> int:
        """Upsert cached episode metadata; each dict needs an 'episode_number'."""
        count = 0
        with self._session("cache_episode_metadata") as session:
            existing = {
                row.episode_number: row
                for row in session.scalars(
                    select(EpisodeMetadata).where(EpisodeMetadata.anime_id == anime_id)
                )
            }
            for data in episodes:
                number = data["episode_number"]
                row = existing.get(number)
                if row is None:
                    row = EpisodeMetadata(anime_id=anime_id, episode_number=number)
                    session.add(row)
                    existing[number] = row
                row.title = data.get("title")
                row.title_japanese = data.get("title_japanese")
                row.aired = data.get("aired")
                row.filler = bool(data.get("filler", False))
                row.recap = bool(data.get("recap", False))
                row.metadata_provenance = data.get("metadata_provenance")
                row.fetched_at = utcnow()
                count += 1
        return count

    def get_episode_metadata(self, anime_id: int) -> list[EpisodeMetadata]:
        with self._session("get_episode_metadata") as session:
            return list(session.scalars(
                select(EpisodeMetadata)
                .where(EpisodeMetadata.anime_id == anime_id)
                .order_by(EpisodeMetadata.episode_number)
            ))

    def clear_episode_metadata(self, anime_id: int) -> None:
        with self._session("clear_episode_metadata") as session:
            session.execute(delete(EpisodeMetadata).where(EpisodeMetadata.anime_id == anime_id))
