"""Last-resort holding area for progress updates the database refused.

Entries are only replayed through sync(), which the client triggers (e.g. on
leaving fullscreen or reconnecting). Nothing flushes them automatically.
"""
from __future__ import annotations
import json
import logging
from dataclasses import dataclass

from redis.asyncio import Redis

from streamwatch.services.items import WatchItem, utcnow
from streamwatch.services.progress_store import ProgressStore, invalid_write_reason

logger = logging.getLogger(__name__)

KEY_PREFIX = "streamwatch:offline-progress"


@dataclass
class PendingProgress:
    key: str
    item: WatchItem
    progress_seconds: float
    duration_seconds: float | None
    saved_at: str


class OfflineProgressCache:
    def __init__(self, redis: Redis, ttl_seconds: int = 30 * 24 * 3600):
        self.redis = redis
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def key_for(user_id: str, item: WatchItem) -> str:
        return f"{KEY_PREFIX}:{user_id}:{item.key}"

    async def put(self, user_id: str, item: WatchItem, progress_seconds: float, duration_seconds: float | None) -> bool:
        payload = {
            "media_id": item.media_id,
            "media_type": item.media_type,
            "season": item.season,
            "episode": item.episode,
            "progress": progress_seconds,
            "duration": duration_seconds,
            "saved_at": utcnow().isoformat(),
        }
        try:
            await self.redis.set(self.key_for(user_id, item), json.dumps(payload), ex=self.ttl_seconds or None)
        except Exception as e:
            logger.error(f"Could not cache offline progress for {item.key}: {e}")
            return False
        logger.info(f"Cached offline progress for {item.key} ({progress_seconds}s)")
        return True

    async def pending(self, user_id: str) -> list[PendingProgress]:
        entries = []
        async for key in self.redis.scan_iter(match=f"{KEY_PREFIX}:{user_id}:*"):
            key = key.decode() if isinstance(key, bytes) else key
            raw = await self.redis.get(key)
            if raw is None:
                continue
            try:
                data = json.loads(raw)
                item = WatchItem(data["media_id"], data["media_type"], data.get("season"), data.get("episode"))
            except (ValueError, KeyError, TypeError) as e:
                logger.warning(f"Discarding unreadable offline entry {key}: {e}")
                await self.redis.delete(key)
                continue
            entries.append(PendingProgress(key, item, data.get("progress", 0), data.get("duration"), data.get("saved_at", "")))
        entries.sort(key=lambda p: p.saved_at)
        return entries

    async def sync(self, user_id: str, store: ProgressStore) -> int:
        """Replay cached updates; each one is removed once the store accepts it."""
        synced = 0
        for entry in await self.pending(user_id):
            reason = invalid_write_reason(user_id, entry.item, entry.progress_seconds)
            if reason:
                logger.warning(f"Discarding offline progress for {entry.item.key}: {reason}")
                await self.redis.delete(entry.key)
                continue
            ok = await store.save_progress(user_id, entry.item, entry.progress_seconds, entry.duration_seconds)
            if not ok:
                logger.warning(f"Offline progress for {entry.item.key} still not accepted; keeping it")
                continue
            await self.redis.delete(entry.key)
            synced += 1
        if synced:
            logger.info(f"Synced {synced} offline progress updates for {user_id}")
        return synced

    async def discard(self, user_id: str, item: WatchItem) -> None:
        await self.redis.delete(self.key_for(user_id, item))
