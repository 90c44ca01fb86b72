"""Anime model for monitored series."""

import json
from datetime import datetime
from typing import Optional, TYPE_CHECKING

from sqlalchemy import String, Integer, Boolean, DateTime, Text, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..database import Base, utcnow

if TYPE_CHECKING:
    from .episode import EpisodeStatus


class Anime(Base):
    """Monitored anime series, keyed by its AniList id."""

    __tablename__ = "anime"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    mal_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    title_romaji: Mapped[str] = mapped_column(String(255), nullable=False)
    title_english: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    title_native: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Values: TV, TV_SHORT, MOVIE, SPECIAL, OVA, ONA, MUSIC
    format: Mapped[str] = mapped_column(String(20), default="TV", nullable=False)
    episode_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String(50), default="UNKNOWN")
    start_year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cover_image: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    banner_image: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    # Library folder for this series
    path: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    quality_profile_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("quality_profiles.id", ondelete="SET NULL"), nullable=True
    )
    monitored: Mapped[bool] = mapped_column(Boolean, default=True)

    # JSON object: field name -> provider name
    metadata_provenance: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    added_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    episodes: Mapped[list["EpisodeStatus"]] = relationship(
        "EpisodeStatus", back_populates="anime", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Anime(id={self.id}, title='{self.title_romaji}')>"

    @property
    def display_title(self) -> str:
        """English title when known, romaji otherwise."""
        return self.title_english or self.title_romaji

    def titles(self) -> list[str]:
        """All non-empty titles usable for matching."""
        return [t for t in (self.title_romaji, self.title_english) if t]

    @property
    def is_movie(self) -> bool:
        return (self.format or "").upper() == "MOVIE"

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "mal_id": self.mal_id,
            "title": {
                "romaji": self.title_romaji,
                "english": self.title_english,
                "native": self.title_native,
            },
            "format": self.format,
            "episode_count": self.episode_count,
            "status": self.status,
            "start_year": self.start_year,
            "cover_image": self.cover_image,
            "banner_image": self.banner_image,
            "path": self.path,
            "quality_profile_id": self.quality_profile_id,
            "monitored": self.monitored,
            "metadata_provenance": (
                json.loads(self.metadata_provenance) if self.metadata_provenance else None
            ),
            "added_at": self.added_at.isoformat() if self.added_at else None,
        }
