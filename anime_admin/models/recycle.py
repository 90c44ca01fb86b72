"""Recycle bin log model."""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Integer, BigInteger, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from ..database import Base, utcnow


class RecycleBinEntry(Base):
    """A media file moved to the recycle bin instead of being deleted."""

    __tablename__ = "recycle_bin"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    original_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    recycled_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    anime_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    episode_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    quality_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    file_size: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    deleted_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<RecycleBinEntry(id={self.id}, original_path='{self.original_path}')>"

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            "original_path": self.original_path,
            "recycled_path": self.recycled_path,
            "anime_id": self.anime_id,
            "episode_number": self.episode_number,
            "quality_id": self.quality_id,
            "file_size": self.file_size,
            "reason": self.reason,
            "deleted_at": self.deleted_at.isoformat() if self.deleted_at else None,
        }
