"""Per-unit playback progress: reads, and writes through a fallback chain."""
from __future__ import annotations
import logging
import math
from dataclasses import dataclass
from typing import Awaitable, Callable

from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from streamwatch.models import WatchProgress, WatchHistory
from streamwatch.services.items import WatchItem, ProgressSnapshot, as_utc, utcnow
from streamwatch.services.rows import key_clauses, series_clauses, upsert_row

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressWrite:
    user_id: str
    item: WatchItem
    progress_seconds: int
    duration_seconds: int | None
    force_history: bool
    write_history: bool


SaveStrategy = Callable[[ProgressWrite], Awaitable[None]]

_RPC_SAVE = text(
    "SELECT save_watch_progress("
    "p_user_id => CAST(:user_id AS TEXT), "
    "p_media_id => CAST(:media_id AS TEXT), "
    "p_media_type => CAST(:media_type AS TEXT), "
    "p_season_number => CAST(:season AS INTEGER), "
    "p_episode_number => CAST(:episode AS INTEGER), "
    "p_progress_seconds => CAST(:progress AS INTEGER), "
    "p_duration_seconds => CAST(:duration AS INTEGER), "
    "p_force_history => CAST(:force_history AS BOOLEAN), "
    "p_history_min_seconds => CAST(:history_min_seconds AS INTEGER))"
)

# Deployments migrated before p_force_history existed only have this overload;
# its history threshold is fixed at 60s.
_RPC_SAVE_LEGACY = text(
    "SELECT save_watch_progress("
    "p_user_id => CAST(:user_id AS TEXT), "
    "p_media_id => CAST(:media_id AS TEXT), "
    "p_media_type => CAST(:media_type AS TEXT), "
    "p_season_number => CAST(:season AS INTEGER), "
    "p_episode_number => CAST(:episode AS INTEGER), "
    "p_progress_seconds => CAST(:progress AS INTEGER), "
    "p_duration_seconds => CAST(:duration AS INTEGER))"
)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def invalid_write_reason(user_id: str | None, item: WatchItem, progress_seconds) -> str | None:
    """Why a progress write can never succeed, or None when it is acceptable.

    Checked before falling back to the offline cache: a write refused here
    would be refused again on every replay.
    """
    if not user_id:
        return "no user"
    if (
        isinstance(progress_seconds, bool)
        or not isinstance(progress_seconds, (int, float))
        or not math.isfinite(progress_seconds)
        or progress_seconds < 0
    ):
        return f"invalid progress {progress_seconds!r}"
    if item.is_series and (item.season is None or item.episode is None):
        return "season and episode are required"
    return None


class ProgressStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        history_min_seconds: int = 60,
        strategies: list[tuple[str, SaveStrategy]] | None = None,
    ):
        self._session_factory = session_factory
        self.history_min_seconds = history_min_seconds
        self._strategies = strategies or [
            ("rpc", self._save_via_rpc),
            ("legacy_rpc", self._save_via_legacy_rpc),
            ("direct", self._save_direct),
        ]

    async def get_progress(
        self,
        user_id: str,
        media_id: str,
        media_type: str,
        season: int | None = None,
        episode: int | None = None,
    ) -> ProgressSnapshot | None:
        item = WatchItem(media_id, media_type, season, episode)
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(WatchProgress).where(*key_clauses(WatchProgress, user_id, item)).limit(1)
                )
                row = result.scalars().first()
        except Exception as e:
            logger.warning(f"Could not read progress for {item.key}: {e}")
            return None
        if row is None:
            return None
        return ProgressSnapshot(
            progress_seconds=row.progress_seconds,
            duration_seconds=row.duration_seconds,
            updated_at=as_utc(row.updated_at),
        )

    async def series_progress(self, user_id: str, media_id: str, media_type: str) -> list[tuple[WatchItem, ProgressSnapshot]]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(WatchProgress)
                    .where(*series_clauses(WatchProgress, user_id, media_id, media_type))
                    .order_by(WatchProgress.season_number, WatchProgress.episode_number)
                )
                rows = result.scalars().all()
        except Exception as e:
            logger.warning(f"Could not read series progress for {media_type}-{media_id}: {e}")
            return []
        return [
            (
                WatchItem(r.media_id, r.media_type, r.season_number, r.episode_number),
                ProgressSnapshot(r.progress_seconds, r.duration_seconds, as_utc(r.updated_at)),
            )
            for r in rows
        ]

    async def save_progress(
        self,
        user_id: str,
        item: WatchItem,
        progress_seconds: float,
        duration_seconds: float | None,
        force_history: bool = False,
    ) -> bool:
        """Persist progress for one unit. Returns False when nothing was written.

        Input rejected by invalid_write_reason never reaches a store call.
        """
        reason = invalid_write_reason(user_id, item, progress_seconds)
        if reason:
            logger.warning(f"Rejecting progress for {item.key}: {reason}")
            return False

        duration: int | None = None
        if isinstance(duration_seconds, (int, float)) and math.isfinite(duration_seconds) and duration_seconds > 0:
            duration = _round_half_up(duration_seconds)

        progress = math.ceil(progress_seconds)
        write = ProgressWrite(
            user_id=user_id,
            item=item,
            progress_seconds=progress,
            duration_seconds=duration,
            force_history=force_history,
            write_history=force_history or progress > self.history_min_seconds,
        )

        for name, strategy in self._strategies:
            try:
                await strategy(write)
                logger.debug(f"Saved progress for {item.key} via {name}: {progress}s/{duration}s")
                return True
            except Exception as e:
                logger.warning(f"Progress save via {name} failed for {item.key}: {e}")
        logger.error(f"All progress save strategies failed for {item.key}")
        return False

    def _rpc_params(self, write: ProgressWrite) -> dict:
        return {
            "user_id": write.user_id,
            "media_id": write.item.media_id,
            "media_type": write.item.media_type,
            "season": write.item.season,
            "episode": write.item.episode,
            "progress": write.progress_seconds,
            "duration": write.duration_seconds,
        }

    async def _save_via_rpc(self, write: ProgressWrite) -> None:
        async with self._session_factory() as session:
            await session.execute(
                _RPC_SAVE,
                {
                    **self._rpc_params(write),
                    "force_history": write.force_history,
                    "history_min_seconds": self.history_min_seconds,
                },
            )
            await session.commit()

    async def _save_via_legacy_rpc(self, write: ProgressWrite) -> None:
        async with self._session_factory() as session:
            await session.execute(_RPC_SAVE_LEGACY, self._rpc_params(write))
            await session.commit()

    async def _save_direct(self, write: ProgressWrite) -> None:
        now = utcnow()
        async with self._session_factory() as session:
            await upsert_row(
                session, WatchProgress, write.user_id, write.item,
                {
                    "progress_seconds": write.progress_seconds,
                    "duration_seconds": write.duration_seconds,
                    "updated_at": now,
                },
            )
            await session.commit()

        if not write.write_history:
            return
        # The progress row is what matters; a lagging history row is tolerated.
        try:
            async with self._session_factory() as session:
                await upsert_row(session, WatchHistory, write.user_id, write.item, {"watched_at": now})
                await session.commit()
        except Exception as e:
            logger.warning(f"History refresh failed for {write.item.key} (progress was saved): {e}")
