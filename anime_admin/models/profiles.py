"""Quality profile and release profile models."""

import json
from datetime import datetime
from typing import Optional, TYPE_CHECKING

from sqlalchemy import (
    String, Integer, BigInteger, Boolean, DateTime, Text, ForeignKey, Table, Column,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..database import Base, utcnow

if TYPE_CHECKING:
    from .anime import Anime


class QualityProfileRecord(Base):
    """Persisted quality profile."""

    __tablename__ = "quality_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    cutoff: Mapped[str] = mapped_column(String(50), nullable=False)
    upgrade_allowed: Mapped[bool] = mapped_column(Boolean, default=True)
    seadex_preferred: Mapped[bool] = mapped_column(Boolean, default=True)
    # JSON array of quality names, most preferred first
    allowed_qualities: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    min_size: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    max_size: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<QualityProfileRecord(id={self.id}, name='{self.name}')>"

    @property
    def allowed_quality_names(self) -> list[str]:
        return json.loads(self.allowed_qualities or "[]")


release_profile_anime = Table(
    "release_profile_anime",
    Base.metadata,
    Column("release_profile_id", ForeignKey("release_profiles.id", ondelete="CASCADE"), primary_key=True),
    Column("anime_id", ForeignKey("anime.id", ondelete="CASCADE"), primary_key=True),
)


class ReleaseProfile(Base):
    """Named, toggleable set of keyword rules."""

    __tablename__ = "release_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    is_global: Mapped[bool] = mapped_column(Boolean, default=True)

    rules: Mapped[list["ReleaseProfileRule"]] = relationship(
        "ReleaseProfileRule", back_populates="profile", cascade="all, delete-orphan",
        lazy="selectin",
    )
    anime: Mapped[list["Anime"]] = relationship(
        "Anime", secondary=release_profile_anime, lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<ReleaseProfile(id={self.id}, name='{self.name}', enabled={self.enabled})>"


class ReleaseProfileRule(Base):
    """Single term inside a release profile."""

    __tablename__ = "release_profile_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    profile_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("release_profiles.id", ondelete="CASCADE"), nullable=False
    )
    term: Mapped[str] = mapped_column(String(255), nullable=False)
    score: Mapped[int] = mapped_column(Integer, default=0)
    # Values: preferred, must, must_not
    rule_type: Mapped[str] = mapped_column(String(20), default="preferred")

    profile: Mapped["ReleaseProfile"] = relationship("ReleaseProfile", back_populates="rules")

    def __repr__(self) -> str:
        return f"<ReleaseProfileRule(term='{self.term}', type='{self.rule_type}', score={self.score})>"
