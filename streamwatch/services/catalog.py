"""Catalog facade: series structure and display metadata per (media_type, media_id).

Movies and TV come straight from TMDB. Anime ids are AniList ids; they are
translated to a TMDB tv id by title search so that season structure comes from
TMDB. When no translation exists the AniList episode count is presented as a
single season 1.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass

from streamwatch.services.anilist import AniListClient
from streamwatch.services.cache import TTLCache
from streamwatch.services.tmdb import TMDBClient, CatalogError

logger = logging.getLogger(__name__)

_NO_MATCH = ""


@dataclass(frozen=True)
class SeasonInfo:
    season_number: int
    episode_count: int


@dataclass
class SeriesInfo:
    media_id: str
    media_type: str
    seasons: list[SeasonInfo]


@dataclass
class DisplayMeta:
    title: str
    poster_path: str | None = None
    backdrop_path: str | None = None
    overview: str | None = None
    vote_average: float | None = None


class Catalog:
    def __init__(self, tmdb: TMDBClient, anilist: AniListClient, id_cache: TTLCache | None = None):
        self.tmdb = tmdb
        self.anilist = anilist
        self._id_cache = id_cache or TTLCache(24 * 3600)

    async def close(self):
        await self.tmdb.close()
        await self.anilist.close()

    async def translate_anime_id(self, anilist_id: str) -> str | None:
        cached = self._id_cache.get(anilist_id)
        if cached is not None:
            return cached or None

        media = await self.anilist.get_media(anilist_id)
        year = (media.get("startDate") or {}).get("year")
        tmdb_id = _NO_MATCH
        for title in AniListClient.titles(media):
            results = await self.tmdb.search_tv(title, year) or await self.tmdb.search_tv(title)
            if results and results[0].get("id") is not None:
                tmdb_id = str(results[0]["id"])
                break

        self._id_cache.set(anilist_id, tmdb_id)
        if tmdb_id:
            logger.info(f"Mapped AniList {anilist_id} to TMDB tv {tmdb_id}")
        else:
            logger.info(f"No TMDB match for AniList {anilist_id}; using AniList episode count")
        return tmdb_id or None

    async def get_series(self, media_id: str, media_type: str) -> SeriesInfo:
        if media_type == "movie":
            raise CatalogError("Movies have no season structure")
        if media_type == "anime":
            tmdb_id = await self.translate_anime_id(media_id)
            if tmdb_id is None:
                media = await self.anilist.get_media(media_id)
                count = media.get("episodes") or 0
                return SeriesInfo(media_id, media_type, [SeasonInfo(1, int(count))])
        else:
            tmdb_id = media_id

        details = await self.tmdb.get_details("tv", tmdb_id)
        seasons = [SeasonInfo(n, c) for n, c in TMDBClient.parse_seasons(details)]
        return SeriesInfo(str(media_id), media_type, seasons)

    async def get_season_episodes(self, media_id: str, media_type: str, season: int) -> list[int]:
        if media_type == "anime":
            tmdb_id = await self.translate_anime_id(media_id)
            if tmdb_id is None:
                if season != 1:
                    return []
                media = await self.anilist.get_media(media_id)
                return list(range(1, int(media.get("episodes") or 0) + 1))
        else:
            tmdb_id = media_id
        data = await self.tmdb.get_season(tmdb_id, season)
        return TMDBClient.parse_episode_numbers(data)

    async def get_display(self, media_id: str, media_type: str) -> DisplayMeta:
        if media_type == "anime":
            media = await self.anilist.get_media(media_id)
            titles = AniListClient.titles(media)
            score = media.get("averageScore")
            return DisplayMeta(
                title=titles[0] if titles else f"Anime {media_id}",
                poster_path=(media.get("coverImage") or {}).get("large"),
                backdrop_path=media.get("bannerImage"),
                overview=media.get("description"),
                vote_average=round(score / 10, 1) if isinstance(score, (int, float)) else None,
            )

        details = await self.tmdb.get_details("movie" if media_type == "movie" else "tv", media_id)
        title = details.get("title") or details.get("name")
        if not title:
            raise CatalogError(f"TMDB {media_type}/{media_id} has no title")
        return DisplayMeta(
            title=title,
            poster_path=details.get("poster_path"),
            backdrop_path=details.get("backdrop_path"),
            overview=details.get("overview"),
            vote_average=details.get("vote_average"),
        )
