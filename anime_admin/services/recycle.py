"""Recycle bin for replaced or deleted media files."""

import logging
import shutil
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from ..config import settings
from ..errors import FileOperationError
from .file_utils import format_size

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


@dataclass
class RecycledFile:
    original_path: Path
    recycled_path: Path
    file_size: Optional[int]
    reason: str


@dataclass
class CleanupStats:
    files_deleted: int = 0
    bytes_freed: int = 0
    errors: int = 0

    def bytes_freed_human(self) -> str:
        return format_size(self.bytes_freed)

    def to_dict(self) -> dict:
        return {
            "files_deleted": self.files_deleted,
            "bytes_freed": self.bytes_freed,
            "bytes_freed_human": self.bytes_freed_human(),
            "errors": self.errors,
        }


class RecycleBin:
    """Moves files into a timestamped holding folder and purges them after a retention period."""

    def __init__(self, path=None, retention_days: Optional[int] = None, store=None):
        self.path = Path(path or settings.recycle_path)
        self.retention_days = (
            settings.recycle_cleanup_days if retention_days is None else retention_days
        )
        self.store = store

    def ensure_exists(self):
        self.path.mkdir(parents=True, exist_ok=True)

    def _target_for(self, file_path: Path, now: datetime) -> Path:
        stem = f"{now.strftime(TIMESTAMP_FORMAT)}_{file_path.name}"
        target = self.path / stem
        counter = 1
        while target.exists():
            target = self.path / f"{now.strftime(TIMESTAMP_FORMAT)}_{counter}_{file_path.name}"
            counter += 1
        return target

    def recycle(
        self,
        file_path,
        reason: str,
        anime_id: Optional[int] = None,
        episode_number: Optional[int] = None,
        quality_id: Optional[int] = None,
    ) -> RecycledFile:
        """Move a file to '<recycle>/<YYYYmmdd_HHMMSS>_<name>'."""
        file_path = Path(file_path)
        if not file_path.name:
            raise FileOperationError(f"Invalid file path: {file_path}")
        self.ensure_exists()

        recycled_path = self._target_for(file_path, datetime.now(timezone.utc))
        try:
            file_size = file_path.stat().st_size
        except OSError:
            file_size = None

        try:
            shutil.move(str(file_path), str(recycled_path))
        except OSError as e:
            raise FileOperationError(f"Failed to recycle {file_path}: {e}") from e

        logger.info(f"Recycled {file_path} -> {recycled_path} (reason: {reason})")

        if self.store is not None:
            self.store.add_recycle_bin_entry(
                original_path=str(file_path),
                recycled_path=str(recycled_path),
                anime_id=anime_id,
                episode_number=episode_number,
                quality_id=quality_id,
                file_size=file_size,
                reason=reason,
            )

        return RecycledFile(
            original_path=file_path,
            recycled_path=recycled_path,
            file_size=file_size,
            reason=reason,
        )

    def restore(self, recycled_path, original_path):
        recycled_path = Path(recycled_path)
        original_path = Path(original_path)
        try:
            original_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(recycled_path), str(original_path))
        except OSError as e:
            raise FileOperationError(f"Failed to restore {recycled_path}: {e}") from e
        logger.info(f"Restored {recycled_path} -> {original_path}")
        if self.store is not None:
            self.store.delete_recycle_bin_entry(str(recycled_path))

    def list_files(self) -> list[Path]:
        if not self.path.exists():
            return []
        return sorted(p for p in self.path.iterdir() if p.is_file())

    def get_size(self) -> int:
        return sum(p.stat().st_size for p in self.list_files())

    def _delete(self, path: Path, stats: CleanupStats):
        try:
            size = path.stat().st_size
            path.unlink()
        except OSError as e:
            logger.warning(f"Failed to delete {path}: {e}")
            stats.errors += 1
            return
        stats.files_deleted += 1
        stats.bytes_freed += size

    def _recycled_at(self, path: Path) -> datetime:
        """When a file entered the bin, read from its name prefix.

        A move keeps the original modification time, so mtime is only used
        for files without a timestamp prefix.
        """
        try:
            return datetime.strptime(path.name[:15], TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
        except ValueError:
            return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)

    def cleanup(self) -> CleanupStats:
        """Delete files recycled before the retention window."""
        stats = CleanupStats()
        cutoff = datetime.now(timezone.utc) - timedelta(days=self.retention_days)
        for path in self.list_files():
            try:
                recycled_at = self._recycled_at(path)
            except OSError:
                continue
            if recycled_at < cutoff:
                logger.debug(f"Cleaning up old file: {path}")
                self._delete(path, stats)

        if stats.files_deleted:
            logger.info(
                f"Recycle bin cleanup: deleted {stats.files_deleted} files, "
                f"freed {stats.bytes_freed_human()}"
            )
        return stats

    def empty(self) -> CleanupStats:
        stats = CleanupStats()
        for path in self.list_files():
            self._delete(path, stats)
        logger.info(
            f"Emptied recycle bin: deleted {stats.files_deleted} files, "
            f"freed {stats.bytes_freed_human()}"
        )
        return stats
