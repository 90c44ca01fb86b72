"""SQLite database setup and session management."""

from datetime import datetime, timezone

from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from .config import get_database_url


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


def utcnow() -> datetime:
    """Naive UTC timestamp for DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# Singleton engine to ensure consistent database access
_engine = None


# Enable foreign keys for SQLite
@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    if type(dbapi_connection).__module__.startswith("sqlite3"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def create_db_engine(url: str):
    """Create an engine for the given database URL."""
    if not url.startswith("sqlite"):
        return create_engine(url, echo=False)
    connect_args = {"check_same_thread": False}
    if url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise each connection sees its own empty database
        return create_engine(url, connect_args=connect_args, poolclass=StaticPool, echo=False)
    return create_engine(url, connect_args=connect_args, echo=False)


def get_engine():
    """Get or create the singleton database engine."""
    global _engine
    if _engine is None:
        _engine = create_db_engine(get_database_url())
    return _engine


def init_database(engine=None):
    """Initialize the database, creating all tables."""
    # Register every model on the metadata before create_all
    from . import models  # noqa: F401

    engine = engine or get_engine()
    Base.metadata.create_all(bind=engine)
