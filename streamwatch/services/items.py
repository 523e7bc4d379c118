"""Value types shared by the stores, the resolver and the aggregator."""
from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timezone

SERIES_TYPES = frozenset({"tv", "anime"})


def is_series(media_type: str) -> bool:
    return media_type in SERIES_TYPES


def as_utc(dt: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class WatchItem:
    media_id: str
    media_type: str
    season: int | None = None
    episode: int | None = None

    def __post_init__(self):
        object.__setattr__(self, "media_id", str(self.media_id))
        if not is_series(self.media_type):
            # Movies never carry unit numbers, whatever the caller passed.
            object.__setattr__(self, "season", None)
            object.__setattr__(self, "episode", None)

    @property
    def is_series(self) -> bool:
        return is_series(self.media_type)

    @property
    def key(self) -> str:
        if not self.is_series:
            return f"movie-{self.media_id}"
        return f"{self.media_type}-{self.media_id}-s{self.season}-e{self.episode}"

    def with_unit(self, season: int | None, episode: int | None) -> "WatchItem":
        return WatchItem(self.media_id, self.media_type, season, episode)


@dataclass
class ProgressSnapshot:
    progress_seconds: int
    duration_seconds: int | None
    updated_at: datetime | None = None

    @property
    def ratio(self) -> float | None:
        if not self.duration_seconds or self.duration_seconds <= 0:
            return None
        return self.progress_seconds / self.duration_seconds


@dataclass
class HistoryEntry:
    media_id: str
    media_type: str
    season: int | None
    episode: int | None
    watched_at: datetime

    @property
    def item(self) -> WatchItem:
        return WatchItem(self.media_id, self.media_type, self.season, self.episode)


@dataclass(frozen=True)
class NextUnit:
    season: int
    episode: int
