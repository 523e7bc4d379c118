from __future__ import annotations

import re

import pytest
from aioresponses import aioresponses

from streamwatch.services.anilist import AniListClient
from streamwatch.services.cache import TTLCache
from streamwatch.services.catalog import Catalog
from streamwatch.services.next_unit import NextUnitResolver
from streamwatch.services.items import NextUnit
from streamwatch.services.tmdb import CatalogError, TMDBClient

TMDB = "https://api.themoviedb.org/3"
ANILIST = "https://graphql.anilist.co"


def tmdb_url(path: str) -> re.Pattern:
    return re.compile(rf"^{re.escape(TMDB)}/{re.escape(path)}(\?.*)?$")


@pytest.fixture()
async def catalog():
    c = Catalog(TMDBClient("key", TMDB), AniListClient(ANILIST), TTLCache(3600))
    yield c
    await c.close()


@pytest.fixture()
def mocked():
    with aioresponses() as m:
        yield m


async def test_tv_series_and_season_episodes(catalog, mocked) -> None:
    mocked.get(tmdb_url("tv/1399"), payload={
        "name": "Game of Thrones",
        "seasons": [
            {"season_number": 0, "episode_count": 14},
            {"season_number": 1, "episode_count": 10},
            {"season_number": "x", "episode_count": 3},
            {"season_number": 2, "episode_count": None},
        ],
    })
    mocked.get(tmdb_url("tv/1399/season/1"), payload={
        "episodes": [{"episode_number": 2}, {"episode_number": 1}, {"episode_number": None}],
    })

    series = await catalog.get_series("1399", "tv")
    assert [(s.season_number, s.episode_count) for s in series.seasons] == [(0, 14), (1, 10), (2, 0)]
    assert await catalog.get_season_episodes("1399", "tv", 1) == [1, 2]


async def test_movies_have_no_series_structure(catalog) -> None:
    with pytest.raises(CatalogError):
        await catalog.get_series("550", "movie")


async def test_missing_resource_raises_catalog_error(catalog, mocked) -> None:
    mocked.get(tmdb_url("tv/404"), status=404)
    with pytest.raises(CatalogError):
        await catalog.get_series("404", "tv")


async def test_anime_id_is_translated_once_and_cached(catalog, mocked) -> None:
    mocked.post(ANILIST, payload={"data": {"Media": {
        "id": 16498, "episodes": 25, "title": {"english": "Attack on Titan", "romaji": "Shingeki no Kyojin"},
        "startDate": {"year": 2013},
    }}})
    mocked.get(tmdb_url("search/tv"), payload={"results": [{"id": 1429}]})

    assert await catalog.translate_anime_id("16498") == "1429"
    # Served from the cache: no further mocked responses are registered.
    assert await catalog.translate_anime_id("16498") == "1429"


async def test_untranslatable_anime_uses_anilist_episode_count(catalog, mocked) -> None:
    media = {"data": {"Media": {"id": 99, "episodes": 12, "title": {"romaji": "Obscure Show"}, "startDate": {"year": 2020}}}}
    mocked.post(ANILIST, payload=media, repeat=True)
    mocked.get(tmdb_url("search/tv"), payload={"results": []}, repeat=True)

    series = await catalog.get_series("99", "anime")
    assert [(s.season_number, s.episode_count) for s in series.seasons] == [(1, 12)]
    assert await catalog.get_season_episodes("99", "anime", 1) == list(range(1, 13))
    assert await catalog.get_season_episodes("99", "anime", 2) == []

    resolver = NextUnitResolver(catalog)
    assert await resolver.next_unit("99", "anime", 1, 11) == NextUnit(1, 12)
    assert await resolver.next_unit("99", "anime", 1, 12) is None


async def test_display_metadata(catalog, mocked) -> None:
    mocked.get(tmdb_url("movie/550"), payload={
        "title": "Fight Club", "poster_path": "/p.jpg", "backdrop_path": "/b.jpg",
        "overview": "Soap.", "vote_average": 8.4,
    })
    mocked.post(ANILIST, payload={"data": {"Media": {
        "id": 21, "title": {"romaji": "One Piece"}, "averageScore": 87,
        "coverImage": {"large": "https://img/op.jpg"}, "bannerImage": "https://img/op-banner.jpg",
    }}})
    mocked.get(tmdb_url("tv/1"), payload={"overview": "untitled"})

    movie = await catalog.get_display("550", "movie")
    assert (movie.title, movie.poster_path, movie.vote_average) == ("Fight Club", "/p.jpg", 8.4)

    anime = await catalog.get_display("21", "anime")
    assert (anime.title, anime.poster_path, anime.vote_average) == ("One Piece", "https://img/op.jpg", 8.7)

    with pytest.raises(CatalogError):
        await catalog.get_display("1", "tv")


async def test_anilist_errors_become_catalog_errors(catalog, mocked) -> None:
    mocked.post(ANILIST, payload={"data": {"Media": None}, "errors": [{"message": "Not Found."}]})
    with pytest.raises(CatalogError, match="Not Found"):
        await catalog.anilist.get_media("1")
    with pytest.raises(CatalogError):
        await catalog.anilist.get_media("not-a-number")
