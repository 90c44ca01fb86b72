"""Tracks which metadata provider supplied each stored field."""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Optional

logger = logging.getLogger(__name__)


class MetadataProvider(str, Enum):
    ANILIST = "anilist"
    JIKAN = "jikan"
    KITSU = "kitsu"

    def __str__(self) -> str:
        return self.value


@dataclass
class Provenance:
    """Field name -> provider map.

    The first provider to fill a field keeps it; pass overwrite=True when a
    refresh is meant to replace earlier values.
    """

    FIELDS: ClassVar[tuple[str, ...]] = ()

    sources: dict[str, MetadataProvider] = field(default_factory=dict)

    def record(self, field_name: str, provider: MetadataProvider, overwrite: bool = False) -> bool:
        """Returns True if the provider was recorded for the field."""
        if field_name not in self.FIELDS:
            raise ValueError(f"Unknown provenance field: {field_name}")
        if field_name in self.sources and not overwrite:
            return False
        self.sources[field_name] = MetadataProvider(provider)
        return True

    def get(self, field_name: str) -> Optional[MetadataProvider]:
        return self.sources.get(field_name)

    def is_empty(self) -> bool:
        return not self.sources

    def to_dict(self) -> dict:
        return {name: provider.value for name, provider in self.sources.items()}

    def to_json(self) -> Optional[str]:
        """JSON for storage, or None when nothing is tracked."""
        if self.is_empty():
            return None
        return json.dumps(self.to_dict(), sort_keys=True)

    @classmethod
    def from_json(cls, text: Optional[str]):
        """Parse stored JSON. Invalid or unknown entries are ignored."""
        provenance = cls()
        if not text:
            return provenance
        try:
            data = json.loads(text)
        except ValueError:
            logger.debug(f"Ignoring unparseable provenance: {text!r}")
            return provenance
        if not isinstance(data, dict):
            return provenance
        for name, value in data.items():
            if name not in cls.FIELDS:
                continue
            try:
                provenance.sources[name] = MetadataProvider(value)
            except ValueError:
                continue
        return provenance


@dataclass
class AnimeProvenance(Provenance):
    FIELDS: ClassVar[tuple[str, ...]] = (
        "title_english", "title_native", "description", "cover_image", "banner_image",
        "episode_count", "status", "start_year",
    )


@dataclass
class EpisodeProvenance(Provenance):
    FIELDS: ClassVar[tuple[str, ...]] = ("title", "title_japanese", "aired", "filler", "recap")
