"""Turns player events into throttled progress writes.

Embedded players talk to the page through ``postMessage`` in three different
shapes; the page relays them (with their origin) and, for same-origin
``<video>`` playback, plain current-time samples. One PlayerSession exists per
open player.
"""
from __future__ import annotations
import asyncio
import json
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable

from pydantic import ValidationError

from streamwatch.schemas.player import (
    KNOWN_MESSAGE_TYPES,
    MediaDataMessage,
    PlayerEventMessage,
    ProgressUpdateMessage,
    player_message_adapter,
)
from streamwatch.services.items import WatchItem
from streamwatch.services.offline_cache import OfflineProgressCache
from streamwatch.services.progress_store import ProgressStore, invalid_write_reason

logger = logging.getLogger(__name__)


@dataclass
class ProgressUpdate:
    progress: float
    duration: float | None
    season: int | None = None
    episode: int | None = None


@dataclass
class PlayerSignal:
    event: str  # "ended" | "player_ready"


def normalize_message(raw: Any, media_key: str) -> ProgressUpdate | PlayerSignal | None:
    """Map one relayed message onto a progress update or a player signal.

    ``media_key`` is ``"<mediaType>-<mediaId>"``, the key MEDIA_DATA payloads
    are indexed by. Unknown message types return None quietly; malformed known
    ones are logged and return None.
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError:
            return None
    if not isinstance(raw, dict) or raw.get("type") not in KNOWN_MESSAGE_TYPES:
        return None

    try:
        message = player_message_adapter.validate_python(raw)
    except ValidationError as e:
        logger.warning(f"Dropping malformed {raw.get('type')} message: {e.error_count()} error(s)")
        return None

    if isinstance(message, ProgressUpdateMessage):
        data = message.data
        return ProgressUpdate(data.progress.watched, data.progress.duration, data.season, data.episode)

    if isinstance(message, MediaDataMessage):
        entry = message.data.get(media_key)
        if entry is None or entry.progress is None:
            return None
        return ProgressUpdate(
            entry.progress.watched,
            entry.progress.duration,
            entry.last_season_watched,
            entry.last_episode_watched,
        )

    if isinstance(message, PlayerEventMessage):
        event = message.data.event
        if event == "timeupdate":
            if message.data.time is None:
                return None
            return ProgressUpdate(message.data.time, message.data.duration)
        if event in ("ended", "player_ready"):
            return PlayerSignal(event)
    return None


class PlayerSession:
    def __init__(self, bridge: "PlayerBridge", session_id: str, user_id: str, item: WatchItem):
        self.bridge = bridge
        self.session_id = session_id
        self.user_id = user_id
        self.item = item
        self.stream_url: str | None = None
        self.ready = False
        self.fallback = False
        self.finished = False
        self.last_update: ProgressUpdate | None = None
        self._last_iframe_save: float | None = None
        self._last_video_save: float | None = None
        self._history_written = False
        self._ready_timer: asyncio.TimerHandle | None = None

    @property
    def media_key(self) -> str:
        return f"{self.item.media_type}-{self.item.media_id}"

    def set_unit(self, season: int | None, episode: int | None) -> None:
        new_item = self.item.with_unit(season, episode)
        if new_item == self.item:
            return
        logger.info(f"[Player {self.session_id}] {self.item.key} -> {new_item.key}")
        self.item = new_item
        self.finished = False
        self.last_update = None
        self._last_iframe_save = None
        self._last_video_save = None
        self._history_written = False

    def set_stream_url(self, url: str, direct: bool = False) -> None:
        self.stream_url = url
        self._cancel_ready_timer()
        self.fallback = False
        if direct:
            # <video> playback is read directly and needs no handshake.
            self.ready = True
            return
        self.ready = False
        loop = asyncio.get_running_loop()
        self._ready_timer = loop.call_later(self.bridge.ready_timeout, self._enter_fallback)

    def _enter_fallback(self) -> None:
        self._ready_timer = None
        if self.ready:
            return
        self.fallback = True
        # A cross-origin iframe cannot be inspected, so this mode records nothing.
        logger.info(
            f"[Player {self.session_id}] no player_ready within {self.bridge.ready_timeout}s; "
            f"fallback tracking (no-op) for {self.item.key}"
        )

    def _cancel_ready_timer(self) -> None:
        if self._ready_timer is not None:
            self._ready_timer.cancel()
            self._ready_timer = None

    def _mark_ready(self) -> None:
        self.ready = True
        self.fallback = False
        self._cancel_ready_timer()

    async def handle_message(self, origin: str | None, raw: Any) -> bool:
        """Process one relayed postMessage. Returns True when progress was forwarded."""
        if not self.bridge.origin_allowed(origin):
            logger.debug(f"[Player {self.session_id}] ignoring message from {origin!r}")
            return False

        normalized = normalize_message(raw, self.media_key)
        if normalized is None:
            return False

        if isinstance(normalized, PlayerSignal):
            if normalized.event == "player_ready":
                self._mark_ready()
                return False
            return await self._on_ended()

        self._mark_ready()
        if self.item.is_series and (normalized.season is not None or normalized.episode is not None):
            self.set_unit(
                normalized.season if normalized.season is not None else self.item.season,
                normalized.episode if normalized.episode is not None else self.item.episode,
            )
        self.last_update = normalized

        now = self.bridge.clock()
        if self._last_iframe_save is not None and now - self._last_iframe_save < self.bridge.iframe_throttle:
            return False
        self._last_iframe_save = now
        return await self._persist(normalized.progress, normalized.duration)

    async def report_video_time(self, current_time: float, duration: float | None) -> bool:
        """Same-origin <video> samples; bypasses message parsing."""
        self.last_update = ProgressUpdate(current_time, duration)
        now = self.bridge.clock()
        if self._last_video_save is not None and now - self._last_video_save < self.bridge.video_throttle:
            return False
        self._last_video_save = now
        return await self._persist(current_time, duration)

    async def _on_ended(self) -> bool:
        self.finished = True
        logger.info(f"[Player {self.session_id}] playback ended for {self.item.key}")
        last = self.last_update
        if last is None or not last.duration:
            self.bridge.notify_changed(self.user_id)
            return False
        # Record the unit as fully watched; rollover is left to continue watching.
        return await self._persist(last.duration, last.duration)

    async def _persist(self, progress: float, duration: float | None) -> bool:
        reason = invalid_write_reason(self.user_id, self.item, progress)
        if reason:
            logger.warning(f"[Player {self.session_id}] dropping sample for {self.item.key}: {reason}")
            return False
        force_history = not self._history_written
        ok = await self.bridge.store.save_progress(self.user_id, self.item, progress, duration, force_history)
        if ok:
            self._history_written = True
            self.bridge.notify_changed(self.user_id)
            return True
        if self.bridge.offline_cache is not None:
            await self.bridge.offline_cache.put(self.user_id, self.item, progress, duration)
        return False

    def close(self) -> None:
        self._cancel_ready_timer()


class PlayerBridge:
    def __init__(
        self,
        store: ProgressStore,
        offline_cache: OfflineProgressCache | None,
        allowed_origins: list[str],
        iframe_throttle: float = 3.0,
        video_throttle: float = 1.0,
        ready_timeout: float = 10.0,
        on_progress_saved: Callable[[str], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.offline_cache = offline_cache
        self.allowed_origins = {o.rstrip("/") for o in allowed_origins}
        self.iframe_throttle = iframe_throttle
        self.video_throttle = video_throttle
        self.ready_timeout = ready_timeout
        self.clock = clock
        self._on_progress_saved = on_progress_saved
        self._sessions: dict[str, PlayerSession] = {}

    def apply_settings(self, iframe_throttle: float, video_throttle: float, ready_timeout: float) -> None:
        self.iframe_throttle = iframe_throttle
        self.video_throttle = video_throttle
        self.ready_timeout = ready_timeout

    def get_settings(self) -> dict:
        return {
            "iframe_throttle_seconds": self.iframe_throttle,
            "video_throttle_seconds": self.video_throttle,
            "player_ready_timeout_seconds": self.ready_timeout,
        }

    def origin_allowed(self, origin: str | None) -> bool:
        return bool(origin) and origin.rstrip("/") in self.allowed_origins

    def notify_changed(self, user_id: str) -> None:
        if self._on_progress_saved is not None:
            self._on_progress_saved(user_id)

    def open_session(self, user_id: str, item: WatchItem) -> PlayerSession:
        session = PlayerSession(self, uuid.uuid4().hex[:12], user_id, item)
        self._sessions[session.session_id] = session
        logger.info(f"[Player {session.session_id}] opened for {item.key} (user {user_id}), total: {len(self._sessions)}")
        return session

    def close_session(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is not None:
            session.close()
            logger.info(f"[Player {session_id}] closed, total: {len(self._sessions)}")

    def close_user_sessions(self, user_id: str) -> int:
        doomed = [sid for sid, s in self._sessions.items() if s.user_id == user_id]
        for sid in doomed:
            self.close_session(sid)
        return len(doomed)

    def get_session(self, session_id: str) -> PlayerSession | None:
        return self._sessions.get(session_id)
