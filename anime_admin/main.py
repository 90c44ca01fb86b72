"""FastAPI application entry point for anime-admin."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .database import init_database
from .errors import AnimeAdminError, NotFoundError, StoreError, ValidationError
from .routers import episodes_router, library_router, profiles_router
from .routers.deps import get_episode_service, get_recycle_bin, get_store
from .services.worker import background_worker

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info("Starting anime-admin...")
    init_database()
    get_store().ensure_default_profile()
    logger.info("Database initialized")

    background_worker.start()
    background_worker.submit(get_recycle_bin().cleanup)

    yield

    # Shutdown
    logger.info("Stopping background worker...")
    background_worker.stop()
    await get_episode_service().providers.close()
    logger.info("Shutting down anime-admin...")


# Create FastAPI application
app = FastAPI(
    title="Anime Admin",
    description="Anime release parsing, quality decisions and library organization",
    version="0.1.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(library_router)
app.include_router(episodes_router)
app.include_router(profiles_router)


@app.get("/")
async def root():
    return {
        "message": "Anime Admin API",
        "docs": "/docs",
        "version": "0.1.0",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(AnimeAdminError)
async def domain_error_handler(request: Request, exc: AnimeAdminError):
    logger.error(f"Request failed: {exc}")
    # Database details stay in the log
    detail = "Database error" if isinstance(exc, StoreError) else str(exc)
    return JSONResponse(status_code=500, content={"detail": detail})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "anime_admin.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
