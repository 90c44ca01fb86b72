"""API routers for anime-admin."""

from .library import router as library_router
from .episodes import router as episodes_router
from .profiles import router as profiles_router

__all__ = ["library_router", "episodes_router", "profiles_router"]
