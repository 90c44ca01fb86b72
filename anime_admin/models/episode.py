"""Episode status and cached episode metadata models."""

import json
from datetime import datetime
from typing import Optional, TYPE_CHECKING

from sqlalchemy import (
    String, Integer, BigInteger, Boolean, DateTime, Float, Text, ForeignKey, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..database import Base, utcnow

if TYPE_CHECKING:
    from .anime import Anime


class EpisodeStatus(Base):
    """Download state of one episode of a monitored anime."""

    __tablename__ = "episode_status"
    __table_args__ = (UniqueConstraint("anime_id", "episode_number", name="uq_episode_status"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    anime_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("anime.id", ondelete="CASCADE"), nullable=False
    )
    episode_number: Mapped[int] = mapped_column(Integer, nullable=False)
    season: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    monitored: Mapped[bool] = mapped_column(Boolean, default=True)

    # Download state
    quality_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_seadex: Mapped[bool] = mapped_column(Boolean, default=False)
    file_path: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    file_size: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    downloaded_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Probed media info
    resolution_width: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    resolution_height: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    video_codec: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    audio_codecs: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # JSON array
    duration_secs: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    anime: Mapped["Anime"] = relationship("Anime", back_populates="episodes")

    def __repr__(self) -> str:
        return (
            f"<EpisodeStatus(anime_id={self.anime_id}, episode={self.episode_number}, "
            f"file_path='{self.file_path}')>"
        )

    @property
    def is_downloaded(self) -> bool:
        return bool(self.file_path)

    @property
    def audio_codec_list(self) -> list[str]:
        if not self.audio_codecs:
            return []
        try:
            return json.loads(self.audio_codecs)
        except (ValueError, TypeError):
            return []

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "anime_id": self.anime_id,
            "episode_number": self.episode_number,
            "season": self.season,
            "monitored": self.monitored,
            "quality_id": self.quality_id,
            "is_seadex": self.is_seadex,
            "file_path": self.file_path,
            "file_size": self.file_size,
            "downloaded_at": self.downloaded_at.isoformat() if self.downloaded_at else None,
            "resolution_width": self.resolution_width,
            "resolution_height": self.resolution_height,
            "video_codec": self.video_codec,
            "audio_codecs": self.audio_codec_list,
            "duration_secs": self.duration_secs,
        }


class EpisodeMetadata(Base):
    """Episode titles and air dates cached from metadata providers."""

    __tablename__ = "episode_metadata"
    __table_args__ = (UniqueConstraint("anime_id", "episode_number", name="uq_episode_metadata"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    anime_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("anime.id", ondelete="CASCADE"), nullable=False
    )
    episode_number: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    title_japanese: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    aired: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    filler: Mapped[bool] = mapped_column(Boolean, default=False)
    recap: Mapped[bool] = mapped_column(Boolean, default=False)
    # JSON object: field name -> provider name
    metadata_provenance: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    fetched_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<EpisodeMetadata(anime_id={self.anime_id}, episode={self.episode_number})>"

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "episode_number": self.episode_number,
            "title": self.title,
            "title_japanese": self.title_japanese,
            "aired": self.aired,
            "filler": self.filler,
            "recap": self.recap,
        }
