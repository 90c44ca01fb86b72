"""Metadata provider clients (AniList, Kitsu, Jikan) and the episode fallback chain."""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

import httpx

from ..config import settings
from ..errors import AllProvidersFailedError, ProviderError
from .provenance import AnimeProvenance, EpisodeProvenance, MetadataProvider

logger = logging.getLogger(__name__)

USER_AGENT = "anime-admin/1.0"

ANILIST_EPISODE_TITLE = re.compile(r"(?i)^Episode\s+(\d+)(?:\s*-\s*(.+))?$")

SEARCH_QUERY = """
query ($search: String) {
  Page(page: 1, perPage: 10) {
    media(search: $search, type: ANIME) {
      id idMal
      title { romaji english native }
      format episodes status seasonYear
      coverImage { extraLarge large }
      bannerImage
      description(asHtml: false)
    }
  }
}
"""

MEDIA_QUERY = """
query ($id: Int) {
  Media(id: $id, type: ANIME) {
    id idMal
    title { romaji english native }
    format episodes status seasonYear
    coverImage { extraLarge large }
    bannerImage
    nextAiringEpisode { episode }
    description(asHtml: false)
  }
}
"""

EPISODES_QUERY = """
query ($id: Int) {
  Media(id: $id, type: ANIME) {
    streamingEpisodes { title thumbnail url site }
    airingSchedule(perPage: 500) { nodes { episode airingAt } }
  }
}
"""


@dataclass
class EpisodeInfo:
    """Episode metadata from one provider."""

    episode_number: int
    title: Optional[str] = None
    title_japanese: Optional[str] = None
    aired: Optional[str] = None
    filler: bool = False
    recap: bool = False
    provenance: EpisodeProvenance = field(default_factory=EpisodeProvenance)

    def to_cache_dict(self) -> dict:
        return {
            "episode_number": self.episode_number,
            "title": self.title,
            "title_japanese": self.title_japanese,
            "aired": self.aired,
            "filler": self.filler,
            "recap": self.recap,
            "metadata_provenance": self.provenance.to_json(),
        }


class BaseProviderClient:
    """Shared httpx client handling for provider APIs."""

    provider: MetadataProvider

    def __init__(self, base_url: str, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=30.0,
                headers={"User-Agent": USER_AGENT},
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs) -> dict:
        client = await self._get_client()
        try:
            response = await client.request(method, url, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            raise ProviderError(self.provider.value, f"request failed: {e}") from e
        except ValueError as e:
            raise ProviderError(self.provider.value, f"invalid response: {e}") from e


class AniListClient(BaseProviderClient):
    """AniList GraphQL API."""

    provider = MetadataProvider.ANILIST

    def __init__(self, base_url: Optional[str] = None, transport=None):
        super().__init__(base_url or settings.anilist_url, transport)

    async def _graphql(self, query: str, variables: dict) -> dict:
        data = await self._request("POST", self.base_url, json={"query": query, "variables": variables})
        if data.get("errors") and not data.get("data"):
            message = data["errors"][0].get("message", "unknown error")
            raise ProviderError(self.provider.value, message)
        return data.get("data") or {}

    @staticmethod
    def _parse_media(media: dict) -> dict:
        title = media.get("title") or {}
        cover = media.get("coverImage") or {}
        next_airing = media.get("nextAiringEpisode") or {}
        return {
            "id": media["id"],
            "mal_id": media.get("idMal"),
            "title_romaji": title.get("romaji") or "",
            "title_english": title.get("english"),
            "title_native": title.get("native"),
            "format": media.get("format") or "UNKNOWN",
            "episode_count": media.get("episodes") or next_airing.get("episode"),
            "status": media.get("status") or "UNKNOWN",
            "start_year": media.get("seasonYear"),
            "cover_image": cover.get("extraLarge") or cover.get("large"),
            "banner_image": media.get("bannerImage"),
            "description": media.get("description"),
        }

    async def search_anime(self, query: str) -> list[dict]:
        """Search AniList by title. Results are in AniList relevance order."""
        data = await self._graphql(SEARCH_QUERY, {"search": query})
        media = (data.get("Page") or {}).get("media") or []
        return [self._parse_media(m) for m in media]

    async def get_by_id(self, anilist_id: int) -> Optional[dict]:
        data = await self._graphql(MEDIA_QUERY, {"id": anilist_id})
        media = data.get("Media")
        return self._parse_media(media) if media else None

    @staticmethod
    def parse_episode_title(title: Optional[str]) -> Optional[tuple[int, Optional[str]]]:
        """Split 'Episode 5 - The Title' into (5, 'The Title')."""
        if not title:
            return None
        match = ANILIST_EPISODE_TITLE.match(title.strip())
        if not match:
            return None
        name = match.group(2).strip() if match.group(2) else None
        return int(match.group(1)), name

    async def get_episodes(self, anilist_id: int) -> list[EpisodeInfo]:
        """Episodes from streaming listings, plus aired-only entries from the airing schedule."""
        data = await self._graphql(EPISODES_QUERY, {"id": anilist_id})
        media = data.get("Media")
        if not media:
            return []

        air_dates = {}
        for node in ((media.get("airingSchedule") or {}).get("nodes") or []):
            if node.get("episode") is None or node.get("airingAt") is None:
                continue
            aired = datetime.fromtimestamp(node["airingAt"], tz=timezone.utc)
            air_dates[node["episode"]] = aired.isoformat()

        episodes = {}
        for streaming in media.get("streamingEpisodes") or []:
            parsed = self.parse_episode_title(streaming.get("title"))
            if parsed is None:
                continue
            number, name = parsed
            if number <= 0 or number in episodes:
                continue
            info = EpisodeInfo(episode_number=number, title=name, aired=air_dates.get(number))
            if name:
                info.provenance.record("title", self.provider)
            if info.aired:
                info.provenance.record("aired", self.provider)
            episodes[number] = info

        for number, aired in air_dates.items():
            if number > 0 and number not in episodes:
                info = EpisodeInfo(episode_number=number, aired=aired)
                info.provenance.record("aired", self.provider)
                episodes[number] = info

        return [episodes[n] for n in sorted(episodes)]


class KitsuClient(BaseProviderClient):
    """Kitsu JSON:API."""

    provider = MetadataProvider.KITSU
    PAGE_LIMIT = 20
    MAX_OFFSET = 2000

    def __init__(self, base_url: Optional[str] = None, transport=None):
        super().__init__(base_url or settings.kitsu_url, transport)

    async def lookup_kitsu_id(self, anilist_id: int) -> Optional[int]:
        """Map an AniList id to a Kitsu id through Kitsu's mappings endpoint."""
        data = await self._request(
            "GET",
            f"{self.base_url}/mappings",
            params={
                "filter[externalSite]": "anilist/anime",
                "filter[externalId]": str(anilist_id),
                "include": "item",
            },
        )
        for item in data.get("included") or []:
            if item.get("type") == "anime" and item.get("id"):
                return int(item["id"])
        return None

    async def get_episodes(self, kitsu_id: int) -> list[EpisodeInfo]:
        episodes = []
        seen = set()
        offset = 0
        while True:
            data = await self._request(
                "GET",
                f"{self.base_url}/anime/{kitsu_id}/episodes",
                params={"page[limit]": self.PAGE_LIMIT, "page[offset]": offset},
            )
            page = data.get("data") or []
            if not page:
                break

            for entry in page:
                attributes = entry.get("attributes") or {}
                number = attributes.get("number")
                if not number or number <= 0 or number in seen:
                    continue
                seen.add(number)
                info = EpisodeInfo(
                    episode_number=number,
                    title=attributes.get("canonicalTitle"),
                    aired=attributes.get("airdate"),
                )
                if info.title:
                    info.provenance.record("title", self.provider)
                if info.aired:
                    info.provenance.record("aired", self.provider)
                episodes.append(info)

            if len(page) < self.PAGE_LIMIT:
                break
            offset += len(page)
            if offset > self.MAX_OFFSET:
                break
        return episodes


class JikanClient(BaseProviderClient):
    """Jikan (MyAnimeList) REST API."""

    provider = MetadataProvider.JIKAN
    PAGE_SIZE = 100
    MAX_PAGES = 10
    PAGE_DELAY_SECONDS = 0.35

    def __init__(self, base_url: Optional[str] = None, transport=None,
                 page_delay: float = PAGE_DELAY_SECONDS):
        super().__init__(base_url or settings.jikan_url, transport)
        self.page_delay = page_delay

    async def get_episodes_page(self, mal_id: int, page: int) -> list[dict]:
        data = await self._request(
            "GET", f"{self.base_url}/anime/{mal_id}/episodes", params={"page": page}
        )
        return data.get("data") or []

    async def get_episodes(self, mal_id: int) -> list[EpisodeInfo]:
        """All episode pages, stopping at a short page or the page limit."""
        episodes = []
        page = 1
        while True:
            if page > 1:
                await asyncio.sleep(self.page_delay)
            try:
                entries = await self.get_episodes_page(mal_id, page)
            except ProviderError as e:
                if not episodes:
                    raise
                logger.warning(f"Jikan page {page} for MAL {mal_id} failed, keeping earlier pages: {e}")
                break
            if not entries:
                break

            for entry in entries:
                info = EpisodeInfo(
                    episode_number=entry["mal_id"],
                    title=entry.get("title"),
                    title_japanese=entry.get("title_japanese"),
                    aired=entry.get("aired"),
                    filler=bool(entry.get("filler")),
                    recap=bool(entry.get("recap")),
                )
                if info.title:
                    info.provenance.record("title", self.provider)
                if info.title_japanese:
                    info.provenance.record("title_japanese", self.provider)
                if info.aired:
                    info.provenance.record("aired", self.provider)
                if info.filler:
                    info.provenance.record("filler", self.provider)
                if info.recap:
                    info.provenance.record("recap", self.provider)
                episodes.append(info)

            if len(entries) < self.PAGE_SIZE:
                break
            page += 1
            if page > self.MAX_PAGES:
                logger.warning(f"Reached episode page limit for MAL {mal_id}")
                break
        return episodes


class MetadataChain:
    """Fetches episode metadata from AniList, then Kitsu, then Jikan.

    The first provider returning a non-empty list wins. Errors are logged
    and the next provider is tried; AllProvidersFailedError is raised only
    when every provider failed.
    """

    def __init__(
        self,
        anilist: Optional[AniListClient] = None,
        kitsu: Optional[KitsuClient] = None,
        jikan: Optional[JikanClient] = None,
    ):
        self.anilist = anilist or AniListClient()
        self.kitsu = kitsu or KitsuClient()
        self.jikan = jikan or JikanClient()

    async def close(self):
        for client in (self.anilist, self.kitsu, self.jikan):
            await client.close()

    async def _from_anilist(self, anime) -> list[EpisodeInfo]:
        return await self.anilist.get_episodes(anime.id)

    async def _from_kitsu(self, anime) -> list[EpisodeInfo]:
        kitsu_id = await self.kitsu.lookup_kitsu_id(anime.id)
        if kitsu_id is None:
            logger.debug(f"No Kitsu mapping for AniList {anime.id}")
            return []
        return await self.kitsu.get_episodes(kitsu_id)

    async def _from_jikan(self, anime) -> list[EpisodeInfo]:
        if not anime.mal_id:
            logger.debug(f"No MAL id for AniList {anime.id}")
            return []
        return await self.jikan.get_episodes(anime.mal_id)

    async def fetch_episodes(self, anime) -> tuple[Optional[MetadataProvider], list[EpisodeInfo]]:
        steps = (
            (MetadataProvider.ANILIST, self._from_anilist),
            (MetadataProvider.KITSU, self._from_kitsu),
            (MetadataProvider.JIKAN, self._from_jikan),
        )
        errors = []
        for provider, fetch in steps:
            try:
                episodes = await fetch(anime)
            except ProviderError as e:
                logger.warning(f"Failed to fetch episodes for {anime.id} from {provider}: {e}")
                errors.append(e)
                continue
            if episodes:
                logger.info(f"Fetched {len(episodes)} episodes from {provider} for {anime.id}")
                return provider, episodes
            logger.debug(f"{provider} returned 0 episodes for {anime.id}")

        if len(errors) == len(steps):
            raise AllProvidersFailedError(errors)
        return None, []

    async def fetch_anime(self, anilist_id: int) -> Optional[dict]:
        return await self.anilist.get_by_id(anilist_id)


def merge_anime_metadata(
    anime,
    data: dict,
    provider: MetadataProvider,
    provenance: AnimeProvenance,
    overwrite: bool = False,
) -> dict:
    """Field updates for an anime from provider data.

    A field is filled when the provider has a value and either the anime has
    none or overwrite is set.
    """
    updates = {}
    for name in AnimeProvenance.FIELDS:
        value = data.get(name)
        if value is None or value == "":
            continue
        current = getattr(anime, name, None)
        if current not in (None, "") and not overwrite:
            continue
        if current == value and provenance.get(name) is not None:
            continue
        updates[name] = value
        provenance.record(name, provider, overwrite=True)
    return updates
