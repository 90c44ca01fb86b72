"""Service instances shared by the routers."""

from functools import lru_cache

from ..config import LibraryConfig
from ..store import Store
from ..services.episodes import EpisodeService
from ..services.library import LibraryService
from ..services.recycle import RecycleBin
from ..services.renamer import RenameService
from ..services.scanner import LibraryScanner
from ..services.scoring import DownloadDecisionService


@lru_cache
def get_store() -> Store:
    return Store()


@lru_cache
def get_library_service() -> LibraryService:
    return LibraryService(LibraryConfig.from_settings())


@lru_cache
def get_recycle_bin() -> RecycleBin:
    return RecycleBin(store=get_store())


@lru_cache
def get_episode_service() -> EpisodeService:
    return EpisodeService(get_store())


@lru_cache
def get_scanner() -> LibraryScanner:
    return LibraryScanner(get_store(), config=get_library_service().config)


@lru_cache
def get_rename_service() -> RenameService:
    return RenameService(
        get_store(),
        library=get_library_service(),
        episodes=get_episode_service(),
        recycle_bin=get_recycle_bin(),
    )


def get_decision_service() -> DownloadDecisionService:
    return DownloadDecisionService(get_store())
