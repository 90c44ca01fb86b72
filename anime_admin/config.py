"""Configuration management for anime-admin."""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel
from pydantic_settings import BaseSettings


DEFAULT_NAMING_FORMAT = (
    "{Series Title}/Season {Season}/{Series Title} - S{Season:02}E{Episode:02} - {Title}"
)
DEFAULT_MOVIE_NAMING_FORMAT = "{Series Title}/{Series Title}"


class Settings(BaseSettings):
    """Application settings loaded from environment or config file."""

    # Database
    database_url: str = ""

    # Server
    host: str = "0.0.0.0"
    port: int = 6789
    debug: bool = False
    log_level: str = "INFO"

    # Library
    library_path: str = "./library"
    recycle_path: str = "./recycle"
    recycle_cleanup_days: int = 7
    naming_format: str = DEFAULT_NAMING_FORMAT
    movie_naming_format: str = DEFAULT_MOVIE_NAMING_FORMAT
    # Values: stored, english, romaji
    preferred_title: str = "stored"
    # Values: Move, Copy, Hardlink
    import_mode: str = "Move"

    # File handling
    video_extensions: list[str] = [
        ".mkv", ".mp4", ".avi", ".webm", ".mov", ".wmv", ".flv", ".m4v",
    ]

    # Scanning
    scan_search_delay_ms: int = 600
    scan_progress_batch: int = 100
    metadata_refresh_window_secs: int = 300

    # Metadata providers
    anilist_url: str = "https://graphql.anilist.co"
    kitsu_url: str = "https://kitsu.io/api/edge"
    jikan_url: str = "https://api.jikan.moe/v4"

    class Config:
        env_prefix = "ANIME_ADMIN_"
        env_file = ".env"


class LibraryConfig(BaseModel):
    """Naming and layout options used when organizing the library."""

    library_path: str = "./library"
    recycle_path: str = "./recycle"
    recycle_cleanup_days: int = 7
    naming_format: str = DEFAULT_NAMING_FORMAT
    movie_naming_format: str = DEFAULT_MOVIE_NAMING_FORMAT
    preferred_title: str = "stored"
    import_mode: str = "Move"

    @classmethod
    def from_settings(cls, source: Optional[Settings] = None) -> "LibraryConfig":
        """Build the library options from application settings."""
        source = source or settings
        return cls(
            library_path=source.library_path,
            recycle_path=source.recycle_path,
            recycle_cleanup_days=source.recycle_cleanup_days,
            naming_format=source.naming_format,
            movie_naming_format=source.movie_naming_format,
            preferred_title=source.preferred_title,
            import_mode=source.import_mode,
        )


# Global settings instance
settings = Settings()


def get_project_root() -> Path:
    """Get the project root directory."""
    return Path(__file__).parent.parent


def get_data_dir() -> Path:
    """Get the data directory path."""
    data_dir = get_project_root() / "data"
    data_dir.mkdir(exist_ok=True)
    return data_dir


def get_database_url() -> str:
    """Get the database URL, defaulting to a SQLite file in the data directory."""
    if settings.database_url:
        return settings.database_url
    return f"sqlite:///{get_data_dir() / 'anime-admin.db'}"
