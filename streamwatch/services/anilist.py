"""Async AniList GraphQL client."""
from __future__ import annotations
import asyncio
import aiohttp

from streamwatch.services.tmdb import CatalogError

_MEDIA_QUERY = """
query ($id: Int) {
  Media(id: $id, type: ANIME) {
    id
    episodes
    format
    description
    averageScore
    bannerImage
    title { romaji english }
    coverImage { large }
    startDate { year }
  }
}
"""


class AniListClient:
    def __init__(self, url: str = "https://graphql.anilist.co", timeout: float = 12.0):
        self.url = url
        self.timeout = timeout
        self._session: aiohttp.ClientSession | None = None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={"Accept": "application/json", "Content-Type": "application/json"},
            )
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    async def get_media(self, anilist_id: str) -> dict:
        try:
            media_id = int(anilist_id)
        except (TypeError, ValueError):
            raise CatalogError(f"Invalid AniList id {anilist_id!r}")
        payload = {"query": _MEDIA_QUERY, "variables": {"id": media_id}}
        try:
            async with self.session.post(self.url, json=payload) as resp:
                resp.raise_for_status()
                data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise CatalogError(f"AniList request for {media_id} failed: {e}") from e
        media = ((data or {}).get("data") or {}).get("Media")
        if not media:
            errors = (data or {}).get("errors") or []
            detail = errors[0].get("message") if errors else "no media"
            raise CatalogError(f"AniList returned nothing for {media_id}: {detail}")
        return media

    @staticmethod
    def titles(media: dict) -> list[str]:
        title = media.get("title") or {}
        return [t for t in (title.get("english"), title.get("romaji")) if t]
