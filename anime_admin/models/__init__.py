"""Database models for anime-admin."""

from .anime import Anime
from .episode import EpisodeStatus, EpisodeMetadata
from .profiles import QualityProfileRecord, ReleaseProfile, ReleaseProfileRule, release_profile_anime
from .recycle import RecycleBinEntry

__all__ = [
    "Anime", "EpisodeStatus", "EpisodeMetadata", "QualityProfileRecord",
    "ReleaseProfile", "ReleaseProfileRule", "release_profile_anime", "RecycleBinEntry",
]
