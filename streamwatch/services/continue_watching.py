"""Builds the continue-watching row and the per-series resume point.

History and progress rows are written independently and may disagree; the
aggregator treats history as the source of candidates and progress as optional
detail about them.
"""
from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from typing import Callable

from streamwatch.services.cache import TTLCache
from streamwatch.services.catalog import Catalog
from streamwatch.services.history_store import HistoryStore, StoreUnavailableError
from streamwatch.services.items import HistoryEntry, ProgressSnapshot, is_series, utcnow
from streamwatch.services.next_unit import NextUnitResolver
from streamwatch.services.progress_store import ProgressStore

logger = logging.getLogger(__name__)


@dataclass
class ContinueWatchingEntry:
    media_id: str
    media_type: str
    season: int | None
    episode: int | None
    progress_seconds: int
    duration_seconds: int | None
    updated_at: datetime
    is_next_unit: bool = False
    title: str | None = None
    poster_path: str | None = None
    backdrop_path: str | None = None
    overview: str | None = None
    vote_average: float | None = None


@dataclass
class ResumePoint:
    media_id: str
    media_type: str
    season: int | None
    episode: int | None
    progress_seconds: int
    duration_seconds: int | None
    is_next_unit: bool = False


def most_advanced(entries: list[HistoryEntry]) -> HistoryEntry:
    """Pick the candidate unit for one title.

    Series rank by (season, episode), not by recency; ties fall back to the
    newest watched_at. Movies simply take the newest row.
    """
    if is_series(entries[0].media_type):
        return max(entries, key=lambda e: (e.season or 0, e.episode or 0, e.watched_at))
    return max(entries, key=lambda e: e.watched_at)


class ContinueWatchingService:
    def __init__(
        self,
        history: HistoryStore,
        progress: ProgressStore,
        resolver: NextUnitResolver,
        catalog: Catalog,
        resume_min_seconds: int = 30,
        recent_days: int = 7,
        completion_ratio: float = 0.90,
        cache_ttl: float = 60,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.history = history
        self.progress = progress
        self.resolver = resolver
        self.catalog = catalog
        self.resume_min_seconds = resume_min_seconds
        self.recent_window = timedelta(days=recent_days)
        self.completion_ratio = completion_ratio
        self._clock = clock
        self._cache = TTLCache(cache_ttl)

    def invalidate(self, user_id: str) -> None:
        self._cache.pop(user_id)

    def clear(self) -> None:
        self._cache.clear()

    def is_completed(self, snapshot: ProgressSnapshot | None) -> bool:
        if snapshot is None:
            return False
        ratio = snapshot.ratio
        return ratio is not None and ratio >= self.completion_ratio

    def _is_included(self, entry: HistoryEntry, snapshot: ProgressSnapshot | None) -> bool:
        if snapshot is not None and snapshot.progress_seconds > self.resume_min_seconds:
            return True
        return self._clock() - entry.watched_at <= self.recent_window

    async def continue_watching(self, user_id: str) -> list[ContinueWatchingEntry]:
        cached = self._cache.get(user_id)
        if cached is not None:
            return list(cached)

        try:
            rows = await self.history.list_for_user(user_id)
        except StoreUnavailableError as e:
            # Shown to the UI as "nothing to continue"; not cached so the next call retries.
            logger.warning(f"Continue watching unavailable for {user_id}: {e}")
            return []

        grouped: dict[tuple[str, str], list[HistoryEntry]] = {}
        for row in rows:
            grouped.setdefault((row.media_type, row.media_id), []).append(row)

        candidates: list[ContinueWatchingEntry] = []
        for entries in grouped.values():
            entry = await self._resolve_candidate(user_id, most_advanced(entries))
            if entry is not None:
                candidates.append(entry)

        enriched = await asyncio.gather(*(self._enrich(c) for c in candidates))
        result = [e for e in enriched if e is not None]
        result.sort(key=lambda e: e.updated_at, reverse=True)

        self._cache.set(user_id, tuple(result))
        logger.info(f"Continue watching for {user_id}: {len(result)} of {len(grouped)} titles")
        return result

    async def _resolve_candidate(self, user_id: str, entry: HistoryEntry) -> ContinueWatchingEntry | None:
        snapshot = await self.progress.get_progress(
            user_id, entry.media_id, entry.media_type, entry.season, entry.episode
        )
        if not self._is_included(entry, snapshot):
            return None

        updated_at = snapshot.updated_at if snapshot and snapshot.updated_at else entry.watched_at

        if is_series(entry.media_type) and self.is_completed(snapshot):
            nxt = await self.resolver.next_unit(entry.media_id, entry.media_type, entry.season, entry.episode)
            if nxt is None:
                return None
            return ContinueWatchingEntry(
                media_id=entry.media_id,
                media_type=entry.media_type,
                season=nxt.season,
                episode=nxt.episode,
                progress_seconds=0,
                duration_seconds=None,
                updated_at=updated_at,
                is_next_unit=True,
            )

        return ContinueWatchingEntry(
            media_id=entry.media_id,
            media_type=entry.media_type,
            season=entry.season,
            episode=entry.episode,
            progress_seconds=snapshot.progress_seconds if snapshot else 0,
            duration_seconds=snapshot.duration_seconds if snapshot else None,
            updated_at=updated_at,
        )

    async def _enrich(self, entry: ContinueWatchingEntry) -> ContinueWatchingEntry | None:
        try:
            meta = await self.catalog.get_display(entry.media_id, entry.media_type)
        except Exception as e:
            logger.warning(f"Dropping {entry.media_type}-{entry.media_id} from continue watching: {e}")
            return None
        return ContinueWatchingEntry(**{**asdict(entry), **asdict(meta)})

    async def last_watched_with_progress(self, user_id: str, media_id: str, media_type: str) -> ResumePoint | None:
        latest = await self.history.most_recently_touched(user_id, media_id, media_type)
        if latest is None:
            return None

        snapshot = await self.progress.get_progress(
            user_id, latest.media_id, latest.media_type, latest.season, latest.episode
        )
        if is_series(latest.media_type) and self.is_completed(snapshot):
            nxt = await self.resolver.next_unit(latest.media_id, latest.media_type, latest.season, latest.episode)
            if nxt is None:
                return None
            return ResumePoint(latest.media_id, latest.media_type, nxt.season, nxt.episode, 0, None, True)

        return ResumePoint(
            media_id=latest.media_id,
            media_type=latest.media_type,
            season=latest.season,
            episode=latest.episode,
            progress_seconds=snapshot.progress_seconds if snapshot else 0,
            duration_seconds=snapshot.duration_seconds if snapshot else None,
        )
