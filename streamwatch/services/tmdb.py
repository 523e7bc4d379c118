"""Async TMDB v3 API client."""
from __future__ import annotations
import asyncio
import aiohttp
from typing import Any


class CatalogError(Exception):
    """A catalog lookup failed or returned something unusable."""


class TMDBClient:
    def __init__(self, api_key: str, base_url: str = "https://api.themoviedb.org/3", timeout: float = 12.0):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._session: aiohttp.ClientSession | None = None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={"Accept": "application/json", "User-Agent": "StreamWatch/1.0"},
            )
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    async def _get(self, path: str, **params) -> Any:
        query = {"api_key": self.api_key, **{k: v for k, v in params.items() if v is not None}}
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            async with self.session.get(url, params=query) as resp:
                if resp.status == 404:
                    raise CatalogError(f"TMDB has no resource at /{path.lstrip('/')}")
                resp.raise_for_status()
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise CatalogError(f"TMDB request /{path.lstrip('/')} failed: {e}") from e
        if not isinstance(data, dict):
            raise CatalogError(f"TMDB returned {type(data).__name__} for /{path.lstrip('/')}")
        return data

    async def get_details(self, media_type: str, media_id: str) -> dict:
        """media_type: 'movie' | 'tv'"""
        return await self._get(f"{media_type}/{media_id}")

    async def get_season(self, tv_id: str, season_number: int) -> dict:
        return await self._get(f"tv/{tv_id}/season/{season_number}")

    async def search_tv(self, query: str, year: int | None = None) -> list[dict]:
        data = await self._get("search/tv", query=query, first_air_date_year=year)
        return data.get("results") or []

    @staticmethod
    def parse_seasons(details: dict) -> list[tuple[int, int]]:
        """Return (season_number, episode_count) pairs, skipping malformed entries."""
        seasons = []
        for s in details.get("seasons") or []:
            number = _safe_int(s.get("season_number"))
            count = _safe_int(s.get("episode_count"))
            if number is None:
                continue
            seasons.append((number, count or 0))
        return seasons

    @staticmethod
    def parse_episode_numbers(season: dict) -> list[int]:
        numbers = (_safe_int(ep.get("episode_number")) for ep in season.get("episodes") or [])
        return sorted(n for n in numbers if n is not None)


def _safe_int(val: Any) -> int | None:
    try:
        return int(val)
    except (TypeError, ValueError):
        return None
