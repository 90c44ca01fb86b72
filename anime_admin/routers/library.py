"""API endpoints for anime, library scans, renames and the recycle bin."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..errors import NotFoundError
from ..models import Anime
from ..services.library import LibraryService
from ..services.parser import parse_filename
from ..services.quality import classify_release
from ..services.recycle import RecycleBin
from ..services.renamer import RenameService
from ..services.scanner import LibraryScanner
from .deps import get_library_service, get_recycle_bin, get_rename_service, get_scanner, get_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["library"])


class AnimeCreate(BaseModel):
    """Request model for adding an anime to the library."""

    id: int
    title_romaji: str
    title_english: Optional[str] = None
    title_native: Optional[str] = None
    format: str = "TV"
    episode_count: Optional[int] = None
    status: str = "UNKNOWN"
    start_year: Optional[int] = None
    mal_id: Optional[int] = None
    path: Optional[str] = None
    quality_profile_id: Optional[int] = None
    monitored: bool = True


class ParseRequest(BaseModel):
    filename: str


# ── Anime ─────────────────────────────────────────────────────────────
@router.get("/anime")
async def list_anime(store=Depends(get_store)):
    return [a.to_dict() for a in store.list_anime()]


@router.post("/anime", status_code=201)
async def add_anime(
    data: AnimeCreate,
    store=Depends(get_store),
    library: LibraryService = Depends(get_library_service),
):
    """Add an anime; without a path, its folder is derived from the title and year."""
    if store.get_anime(data.id) is not None:
        raise HTTPException(status_code=409, detail=f"Anime {data.id} already exists")
    anime = Anime(**data.model_dump())
    if not anime.path:
        anime.path = str(library.build_anime_root_path(anime))
    saved = store.add_anime(anime)
    logger.info(f"Added anime {saved.id}: {saved.title_romaji}")
    return saved.to_dict()


@router.get("/anime/{anime_id}")
async def get_anime(anime_id: int, store=Depends(get_store)):
    anime = store.get_anime(anime_id)
    if anime is None:
        raise NotFoundError(f"Anime {anime_id} not found")
    return anime.to_dict()


@router.delete("/anime/{anime_id}")
async def delete_anime(anime_id: int, store=Depends(get_store)):
    if not store.delete_anime(anime_id):
        raise NotFoundError(f"Anime {anime_id} not found")
    return {"deleted": anime_id}


# ── Scans ─────────────────────────────────────────────────────────────
@router.get("/library/unmapped")
async def get_unmapped_folders(scanner: LibraryScanner = Depends(get_scanner)):
    return scanner.get_state().to_dict()


@router.post("/library/unmapped/scan", status_code=202)
async def start_unmapped_scan(scanner: LibraryScanner = Depends(get_scanner)):
    """Start a discovery scan in the background."""
    if scanner.state.is_scanning:
        return {"started": False, "message": "Scan already running"}
    scanner.submit_scan()
    return {"started": True}


@router.post("/library/scan", status_code=202)
async def start_library_scan(scanner: LibraryScanner = Depends(get_scanner)):
    scanner.submit_library_scan()
    return {"started": True}


@router.post("/anime/{anime_id}/scan", status_code=202)
async def scan_anime_folder(anime_id: int, scanner: LibraryScanner = Depends(get_scanner)):
    if scanner.store.get_anime(anime_id) is None:
        raise NotFoundError(f"Anime {anime_id} not found")
    scanner.submit_folder_scan(anime_id)
    return {"started": True}


# ── Rename ────────────────────────────────────────────────────────────
@router.get("/anime/{anime_id}/rename")
def preview_rename(anime_id: int, renamer: RenameService = Depends(get_rename_service)):
    return [item.to_dict() for item in renamer.preview(anime_id)]


@router.post("/anime/{anime_id}/rename")
def execute_rename(anime_id: int, renamer: RenameService = Depends(get_rename_service)):
    return renamer.execute(anime_id).to_dict()


# ── Recycle bin ───────────────────────────────────────────────────────
@router.get("/recycle")
async def list_recycle_bin(store=Depends(get_store), recycle: RecycleBin = Depends(get_recycle_bin)):
    return {
        "size": recycle.get_size(),
        "entries": [e.to_dict() for e in store.list_recycle_bin_entries()],
    }


@router.post("/recycle/cleanup")
def cleanup_recycle_bin(recycle: RecycleBin = Depends(get_recycle_bin)):
    return recycle.cleanup().to_dict()


@router.post("/recycle/empty")
def empty_recycle_bin(recycle: RecycleBin = Depends(get_recycle_bin)):
    return recycle.empty().to_dict()


# ── Parsing ───────────────────────────────────────────────────────────
@router.post("/parse")
async def parse_release(request: ParseRequest):
    """Parse a release filename and classify its quality."""
    release = parse_filename(request.filename)
    if release is None:
        return {"parsed": False, "release": None, "quality": None}
    return {
        "parsed": True,
        "release": release.to_dict(),
        "quality": classify_release(release).to_dict(),
    }
