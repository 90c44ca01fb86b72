"""Shared test fixtures for anime-admin."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from anime_admin.config import LibraryConfig
from anime_admin.models import Anime
from anime_admin.services.events import EventBus
from anime_admin.store import Store


@pytest.fixture
def store() -> Store:
    """In-memory SQLite store with all tables created."""
    return Store.from_url("sqlite://")


@pytest.fixture
def library_root(tmp_path: Path) -> Path:
    """Empty library directory."""
    root = tmp_path / "library"
    root.mkdir()
    return root


@pytest.fixture
def recycle_root(tmp_path: Path) -> Path:
    return tmp_path / "recycle"


@pytest.fixture
def library_config(library_root: Path, recycle_root: Path) -> LibraryConfig:
    return LibraryConfig(
        library_path=str(library_root),
        recycle_path=str(recycle_root),
    )


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def no_probe():
    """Media probe stand-in that never finds stream info."""
    probe = MagicMock()
    probe.get_media_info.return_value = None
    return probe


def build_anime(anime_id: int, title_romaji: str, **fields) -> Anime:
    fields.setdefault("format", "TV")
    fields.setdefault("status", "FINISHED")
    fields.setdefault("monitored", True)
    return Anime(id=anime_id, title_romaji=title_romaji, **fields)


@pytest.fixture
def make_anime():
    """Factory for detached Anime rows with sensible defaults."""
    return build_anime


@pytest.fixture
def sample_catalog() -> list[Anime]:
    """A few anime, including sequels sharing a base title."""
    return [
        build_anime(154587, "Sousou no Frieren", title_english="Frieren: Beyond Journey's End",
                   episode_count=28, start_year=2023),
        build_anime(150672, "Oshi no Ko", title_english="[Oshi No Ko]",
                   episode_count=11, start_year=2023),
        build_anime(166531, "Oshi no Ko 2nd Season", title_english="[Oshi No Ko] Season 2",
                   episode_count=13, start_year=2024),
        build_anime(21355, "Re:Zero kara Hajimeru Isekai Seikatsu",
                   title_english="Re:ZERO -Starting Life in Another World-",
                   episode_count=25, start_year=2016),
    ]


@pytest.fixture
def stored_catalog(store: Store, sample_catalog: list[Anime]) -> list[Anime]:
    """The sample catalog persisted to the store."""
    return [store.add_anime(anime) for anime in sample_catalog]
