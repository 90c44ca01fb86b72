"""API endpoints for episode listings and metadata refresh."""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends

from ..errors import AllProvidersFailedError
from ..services.episodes import EpisodeService
from .deps import get_episode_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/anime/{anime_id}/episodes", tags=["episodes"])


async def _fetch_in_background(service: EpisodeService, anime_id: int):
    try:
        await service.fetch_and_cache_episodes(anime_id)
    except AllProvidersFailedError as e:
        logger.warning(f"Episode metadata fetch for anime {anime_id} failed: {e}")


@router.get("")
async def list_episodes(
    anime_id: int,
    background_tasks: BackgroundTasks,
    service: EpisodeService = Depends(get_episode_service),
):
    """Episodes with download state. Missing metadata is fetched in the background."""
    episodes = service.list_episodes(anime_id)
    if not service.get_episode_titles(anime_id):
        background_tasks.add_task(_fetch_in_background, service, anime_id)
    return [e.to_dict() for e in episodes]


@router.get("/{episode_number}")
async def get_episode(
    anime_id: int, episode_number: int, service: EpisodeService = Depends(get_episode_service)
):
    return service.get_episode(anime_id, episode_number).to_dict()


@router.post("/refresh")
async def refresh_episodes(anime_id: int, service: EpisodeService = Depends(get_episode_service)):
    """Re-fetch episode metadata, bypassing the recent-fetch window."""
    count = await service.refresh_episode_cache(anime_id)
    return {"cached": count}


@router.post("/refresh-anime")
async def refresh_anime_metadata(
    anime_id: int, overwrite: bool = False, service: EpisodeService = Depends(get_episode_service)
):
    anime = await service.refresh_anime_metadata(anime_id, overwrite=overwrite)
    return anime.to_dict()
