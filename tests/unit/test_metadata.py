"""Unit tests for metadata provider clients and the fallback chain."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from anime_admin.errors import AllProvidersFailedError, ProviderError
from anime_admin.services.metadata import (
    AniListClient,
    EpisodeInfo,
    JikanClient,
    KitsuClient,
    MetadataChain,
)
from anime_admin.services.provenance import MetadataProvider


async def run_and_close(client, coro):
    try:
        return await coro
    finally:
        await client.close()


class TestAniListClient:
    """Tests for AniList GraphQL handling."""

    @pytest.mark.parametrize(
        "title,expected",
        [
            ("Episode 5 - The Hero Himmel", (5, "The Hero Himmel")),
            ("EPISODE 12", (12, None)),
            ("episode 3 -  Spaced  ", (3, "Spaced")),
            ("Special", None),
            (None, None),
        ],
    )
    def test_parse_episode_title(self, title, expected) -> None:
        assert AniListClient.parse_episode_title(title) == expected

    def test_get_episodes_merges_airing_schedule(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            assert body["variables"] == {"id": 154587}
            return httpx.Response(200, json={"data": {"Media": {
                "streamingEpisodes": [
                    {"title": "Episode 2 - Second"},
                    {"title": "Episode 1 - First"},
                    {"title": "Recap Special"},
                    {"title": "Episode 1 - Duplicate"},
                ],
                "airingSchedule": {"nodes": [
                    {"episode": 1, "airingAt": 0},
                    {"episode": 3, "airingAt": 86400},
                ]},
            }}})

        client = AniListClient(base_url="https://graphql.test", transport=httpx.MockTransport(handler))
        episodes = asyncio.run(run_and_close(client, client.get_episodes(154587)))

        assert [(e.episode_number, e.title) for e in episodes] == [
            (1, "First"), (2, "Second"), (3, None),
        ]
        assert episodes[0].aired == "1970-01-01T00:00:00+00:00"
        assert episodes[0].provenance.to_dict() == {"title": "anilist", "aired": "anilist"}
        assert episodes[1].provenance.to_dict() == {"title": "anilist"}
        assert episodes[2].provenance.to_dict() == {"aired": "anilist"}

    def test_search_parses_media(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"data": {"Page": {"media": [{
                "id": 154587,
                "idMal": 52991,
                "title": {"romaji": "Sousou no Frieren", "english": "Frieren"},
                "format": "TV",
                "episodes": None,
                "nextAiringEpisode": {"episode": 20},
                "seasonYear": 2023,
                "coverImage": {"large": "https://img.test/c.jpg"},
            }]}}})

        client = AniListClient(base_url="https://graphql.test", transport=httpx.MockTransport(handler))
        results = asyncio.run(run_and_close(client, client.search_anime("frieren")))

        assert results[0]["id"] == 154587
        assert results[0]["mal_id"] == 52991
        assert results[0]["title_english"] == "Frieren"
        assert results[0]["episode_count"] == 20
        assert results[0]["cover_image"] == "https://img.test/c.jpg"
        assert results[0]["status"] == "UNKNOWN"

    def test_graphql_errors(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"errors": [{"message": "Not Found."}], "data": None})

        client = AniListClient(base_url="https://graphql.test", transport=httpx.MockTransport(handler))

        with pytest.raises(ProviderError, match="Not Found"):
            asyncio.run(run_and_close(client, client.get_by_id(1)))

    def test_http_errors(self) -> None:
        client = AniListClient(
            base_url="https://graphql.test",
            transport=httpx.MockTransport(lambda request: httpx.Response(500)),
        )

        with pytest.raises(ProviderError) as excinfo:
            asyncio.run(run_and_close(client, client.get_by_id(1)))
        assert excinfo.value.provider == "anilist"


class TestKitsuClient:
    """Tests for Kitsu id mapping and episode paging."""

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/mappings"):
            assert request.url.params["filter[externalSite]"] == "anilist/anime"
            assert request.url.params["filter[externalId]"] == "154587"
            return httpx.Response(200, json={"included": [{"type": "anime", "id": "46474"}]})
        offset = int(request.url.params["page[offset]"])
        count = 20 if offset == 0 else 3
        return httpx.Response(200, json={"data": [
            {"attributes": {"number": offset + i + 1, "canonicalTitle": f"Ep {offset + i + 1}"}}
            for i in range(count)
        ]})

    def test_lookup_and_paging(self) -> None:
        client = KitsuClient(base_url="https://kitsu.test/api/edge", transport=httpx.MockTransport(self.handler))

        async def fetch():
            kitsu_id = await client.lookup_kitsu_id(154587)
            return kitsu_id, await client.get_episodes(kitsu_id)

        kitsu_id, episodes = asyncio.run(run_and_close(client, fetch()))

        assert kitsu_id == 46474
        assert [e.episode_number for e in episodes] == list(range(1, 24))
        assert episodes[0].provenance.get("title") is MetadataProvider.KITSU

    def test_no_mapping(self) -> None:
        client = KitsuClient(
            base_url="https://kitsu.test/api/edge",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"data": []})),
        )

        assert asyncio.run(run_and_close(client, client.lookup_kitsu_id(1))) is None


class TestJikanClient:
    """Tests for Jikan pagination."""

    @staticmethod
    def page(start: int, count: int) -> dict:
        return {"data": [
            {"mal_id": n, "title": f"Ep {n}", "filler": n == 2}
            for n in range(start, start + count)
        ]}

    def test_reads_until_short_page(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            page = int(request.url.params["page"])
            return httpx.Response(200, json=self.page(1, 100) if page == 1 else self.page(101, 5))

        client = JikanClient(base_url="https://jikan.test/v4", transport=httpx.MockTransport(handler), page_delay=0)
        episodes = asyncio.run(run_and_close(client, client.get_episodes(52991)))

        assert len(episodes) == 105
        assert episodes[1].filler is True
        assert episodes[1].provenance.to_dict() == {"title": "jikan", "filler": "jikan"}

    def test_later_page_failure_keeps_earlier_pages(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.params["page"] == "1":
                return httpx.Response(200, json=self.page(1, 100))
            return httpx.Response(429)

        client = JikanClient(base_url="https://jikan.test/v4", transport=httpx.MockTransport(handler), page_delay=0)
        episodes = asyncio.run(run_and_close(client, client.get_episodes(52991)))

        assert len(episodes) == 100

    def test_first_page_failure_raises(self) -> None:
        client = JikanClient(
            base_url="https://jikan.test/v4",
            transport=httpx.MockTransport(lambda request: httpx.Response(503)),
            page_delay=0,
        )

        with pytest.raises(ProviderError):
            asyncio.run(run_and_close(client, client.get_episodes(52991)))

    def test_stops_at_page_limit(self) -> None:
        requested = []

        def handler(request: httpx.Request) -> httpx.Response:
            page = int(request.url.params["page"])
            requested.append(page)
            return httpx.Response(200, json=self.page((page - 1) * 100 + 1, 100))

        client = JikanClient(base_url="https://jikan.test/v4", transport=httpx.MockTransport(handler), page_delay=0)
        episodes = asyncio.run(run_and_close(client, client.get_episodes(21)))

        assert requested == list(range(1, JikanClient.MAX_PAGES + 1))
        assert len(episodes) == JikanClient.MAX_PAGES * 100


def stub_clients(anilist=None, kitsu_id=None, kitsu=None, jikan=None):
    """Provider clients whose calls return values or raise the given errors."""

    def async_call(value):
        if isinstance(value, Exception):
            return AsyncMock(side_effect=value)
        return AsyncMock(return_value=value)

    anilist_client = MagicMock()
    anilist_client.get_episodes = async_call(anilist if anilist is not None else [])
    kitsu_client = MagicMock()
    kitsu_client.lookup_kitsu_id = async_call(kitsu_id)
    kitsu_client.get_episodes = async_call(kitsu if kitsu is not None else [])
    jikan_client = MagicMock()
    jikan_client.get_episodes = async_call(jikan if jikan is not None else [])
    return MetadataChain(anilist=anilist_client, kitsu=kitsu_client, jikan=jikan_client)


class TestMetadataChain:
    """Tests for provider fallback order."""

    def test_first_non_empty_provider_wins(self, make_anime) -> None:
        anime = make_anime(154587, "Sousou no Frieren", mal_id=52991)
        chain = stub_clients(
            anilist=ProviderError("anilist", "down"),
            kitsu_id=46474,
            kitsu=[EpisodeInfo(1, "From Kitsu")],
            jikan=[EpisodeInfo(1, "From Jikan")],
        )

        provider, episodes = asyncio.run(chain.fetch_episodes(anime))

        assert provider is MetadataProvider.KITSU
        assert episodes[0].title == "From Kitsu"
        chain.jikan.get_episodes.assert_not_called()

    def test_falls_through_to_jikan(self, make_anime) -> None:
        anime = make_anime(154587, "Sousou no Frieren", mal_id=52991)
        chain = stub_clients(kitsu_id=None, jikan=[EpisodeInfo(1, "From Jikan")])

        provider, _ = asyncio.run(chain.fetch_episodes(anime))

        assert provider is MetadataProvider.JIKAN
        chain.kitsu.get_episodes.assert_not_called()
        chain.jikan.get_episodes.assert_awaited_once_with(52991)

    def test_jikan_needs_mal_id(self, make_anime) -> None:
        chain = stub_clients(jikan=[EpisodeInfo(1, "From Jikan")])

        assert asyncio.run(chain.fetch_episodes(make_anime(1, "No MAL"))) == (None, [])
        chain.jikan.get_episodes.assert_not_called()

    def test_some_failures_without_data_is_not_an_error(self, make_anime) -> None:
        anime = make_anime(1, "Obscure", mal_id=5)
        chain = stub_clients(
            anilist=ProviderError("anilist", "down"),
            kitsu_id=ProviderError("kitsu", "down"),
        )

        assert asyncio.run(chain.fetch_episodes(anime)) == (None, [])

    def test_all_providers_failed(self, make_anime) -> None:
        anime = make_anime(1, "Obscure", mal_id=5)
        chain = stub_clients(
            anilist=ProviderError("anilist", "down"),
            kitsu_id=ProviderError("kitsu", "down"),
            jikan=ProviderError("jikan", "down"),
        )

        with pytest.raises(AllProvidersFailedError) as excinfo:
            asyncio.run(chain.fetch_episodes(anime))
        assert [e.provider for e in excinfo.value.errors] == ["anilist", "kitsu", "jikan"]
