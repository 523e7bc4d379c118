"""Watch history: which units were visited, and when."""
from __future__ import annotations
import logging
from datetime import datetime

from sqlalchemy import select, delete
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from streamwatch.models import WatchProgress, WatchHistory
from streamwatch.services.items import WatchItem, HistoryEntry, as_utc, utcnow
from streamwatch.services.retry import retry_with_backoff
from streamwatch.services.rows import key_clauses, series_clauses, upsert_row

logger = logging.getLogger(__name__)


class StoreUnavailableError(Exception):
    """The history table could not be read."""


def is_transient_db_error(exc: BaseException) -> bool:
    if isinstance(exc, (ConnectionError, TimeoutError)):
        return True
    return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)


def _entry(row: WatchHistory) -> HistoryEntry:
    return HistoryEntry(
        media_id=row.media_id,
        media_type=row.media_type,
        season=row.season_number,
        episode=row.episode_number,
        watched_at=as_utc(row.watched_at),
    )


class HistoryStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        read_attempts: int = 3,
        retry_delay: float = 0.5,
    ):
        self._session_factory = session_factory
        self.read_attempts = read_attempts
        self.retry_delay = retry_delay

    async def list_for_user(self, user_id: str) -> list[HistoryEntry]:
        async def load() -> list[HistoryEntry]:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(WatchHistory)
                    .where(WatchHistory.user_id == user_id)
                    .order_by(WatchHistory.watched_at.desc())
                )
                return [_entry(r) for r in result.scalars().all()]

        try:
            return await retry_with_backoff(
                load,
                attempts=self.read_attempts,
                base_delay=self.retry_delay,
                retry_on=is_transient_db_error,
                label=f"History fetch for {user_id}",
            )
        except Exception as e:
            raise StoreUnavailableError(str(e)) from e

    async def most_recently_touched(self, user_id: str, media_id: str, media_type: str | None = None) -> HistoryEntry | None:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(WatchHistory)
                    .where(*series_clauses(WatchHistory, user_id, media_id, media_type))
                    .order_by(WatchHistory.watched_at.desc())
                    .limit(1)
                )
                row = result.scalars().first()
        except Exception as e:
            logger.warning(f"Could not read latest history for {media_type}-{media_id}: {e}")
            return None
        return _entry(row) if row else None

    async def upsert_history(self, user_id: str, item: WatchItem, watched_at: datetime | None = None) -> None:
        """Refresh watched_at for the unit. Raises on store errors."""
        async with self._session_factory() as session:
            await upsert_row(session, WatchHistory, user_id, item, {"watched_at": watched_at or utcnow()})
            await session.commit()

    async def delete_item(
        self,
        user_id: str,
        media_id: str,
        media_type: str,
        season: int | None = None,
        episode: int | None = None,
    ) -> None:
        """Drop progress and history for one unit, or for a whole series when no unit is given."""
        item = WatchItem(media_id, media_type, season, episode)
        whole_series = item.is_series and season is None and episode is None
        async with self._session_factory() as session:
            for model in (WatchProgress, WatchHistory):
                if whole_series:
                    clauses = series_clauses(model, user_id, item.media_id, media_type)
                else:
                    clauses = key_clauses(model, user_id, item)
                await session.execute(delete(model).where(*clauses))
            await session.commit()
        logger.info(f"Removed {'series ' if whole_series else ''}{item.key} for user {user_id}")
