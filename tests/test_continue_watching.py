from __future__ import annotations

from datetime import datetime, timedelta, timezone

from streamwatch.services.catalog import DisplayMeta
from streamwatch.services.continue_watching import ContinueWatchingService, most_advanced
from streamwatch.services.history_store import StoreUnavailableError
from streamwatch.services.items import HistoryEntry, NextUnit, ProgressSnapshot
from streamwatch.services.tmdb import CatalogError

NOW = datetime(2026, 10, 15, 20, 0, tzinfo=timezone.utc)


def entry(media_id, media_type, season=None, episode=None, age=timedelta(hours=1)) -> HistoryEntry:
    return HistoryEntry(media_id, media_type, season, episode, NOW - age)


class FakeHistory:
    def __init__(self, rows=None, fail=False):
        self.rows = rows or []
        self.fail = fail
        self.calls = 0

    async def list_for_user(self, user_id):
        self.calls += 1
        if self.fail:
            raise StoreUnavailableError("history table unreachable")
        return list(self.rows)

    async def most_recently_touched(self, user_id, media_id, media_type=None):
        matching = [r for r in self.rows if r.media_id == media_id and (media_type is None or r.media_type == media_type)]
        return max(matching, key=lambda r: r.watched_at) if matching else None


class FakeProgress:
    def __init__(self, snapshots=None):
        self.snapshots = snapshots or {}

    async def get_progress(self, user_id, media_id, media_type, season=None, episode=None):
        return self.snapshots.get((media_type, media_id, season, episode))


class FakeResolver:
    def __init__(self, table=None):
        self.table = table or {}
        self.calls = []

    async def next_unit(self, media_id, media_type, season, episode):
        self.calls.append((media_type, media_id, season, episode))
        return self.table.get((media_type, media_id, season, episode))


class FakeCatalog:
    def __init__(self, missing=()):
        self.missing = set(missing)

    async def get_display(self, media_id, media_type):
        if media_id in self.missing:
            raise CatalogError("no metadata")
        return DisplayMeta(title=f"Title {media_id}", poster_path=f"/{media_id}.jpg")


def snap(progress, duration, age=timedelta(hours=1)) -> ProgressSnapshot:
    return ProgressSnapshot(progress, duration, NOW - age)


def service(history, progress=None, resolver=None, catalog=None, **kw) -> ContinueWatchingService:
    return ContinueWatchingService(
        history=history,
        progress=progress or FakeProgress(),
        resolver=resolver or FakeResolver(),
        catalog=catalog or FakeCatalog(),
        clock=lambda: NOW,
        **kw,
    )


def test_most_advanced_prefers_later_episode_over_recency() -> None:
    rows = [
        entry("1399", "tv", 1, 5, age=timedelta(days=2)),
        entry("1399", "tv", 1, 2, age=timedelta(minutes=1)),
        entry("1399", "tv", 2, 1, age=timedelta(days=3)),
    ]
    assert (most_advanced(rows).season, most_advanced(rows).episode) == (2, 1)

    movies = [entry("550", "movie", age=timedelta(days=3)), entry("550", "movie", age=timedelta(days=1))]
    assert most_advanced(movies).watched_at == NOW - timedelta(days=1)


async def test_inclusion_needs_progress_or_recent_activity() -> None:
    history = FakeHistory([
        entry("1", "movie", age=timedelta(days=30)),   # old, real progress
        entry("2", "movie", age=timedelta(days=30)),   # old, barely started
        entry("3", "movie", age=timedelta(days=2)),    # recent, barely started
        entry("4", "movie", age=timedelta(days=8)),    # old, no progress row
    ])
    progress = FakeProgress({
        ("movie", "1", None, None): snap(31, 5400),
        ("movie", "2", None, None): snap(30, 5400),
        ("movie", "3", None, None): snap(5, 5400),
    })
    result = await service(history, progress).continue_watching("u1")
    assert sorted(e.media_id for e in result) == ["1", "3"]


async def test_completed_episode_rolls_over_to_next_unit() -> None:
    history = FakeHistory([entry("1399", "tv", 1, 10)])
    progress = FakeProgress({("tv", "1399", 1, 10): snap(1700, 1800, age=timedelta(minutes=10))})
    resolver = FakeResolver({("tv", "1399", 1, 10): NextUnit(2, 1)})

    [item] = await service(history, progress, resolver).continue_watching("u1")
    assert (item.season, item.episode) == (2, 1)
    assert item.is_next_unit is True
    assert item.progress_seconds == 0
    assert item.duration_seconds is None
    assert item.updated_at == NOW - timedelta(minutes=10)
    assert item.title == "Title 1399"


async def test_finished_series_and_completed_movies() -> None:
    history = FakeHistory([entry("1399", "tv", 8, 6), entry("550", "movie")])
    progress = FakeProgress({
        ("tv", "1399", 8, 6): snap(3500, 3600),
        ("movie", "550", None, None): snap(5300, 5400),
    })
    resolver = FakeResolver()
    result = await service(history, progress, resolver).continue_watching("u1")
    # No next unit: the series drops out. Movies never roll over.
    assert [(e.media_id, e.is_next_unit, e.progress_seconds) for e in result] == [("550", False, 5300)]
    assert resolver.calls == [("tv", "1399", 8, 6)]


async def test_titles_without_metadata_are_dropped() -> None:
    history = FakeHistory([entry("1", "movie"), entry("2", "movie")])
    progress = FakeProgress({
        ("movie", "1", None, None): snap(100, 5400),
        ("movie", "2", None, None): snap(100, 5400),
    })
    result = await service(history, progress, catalog=FakeCatalog(missing={"2"})).continue_watching("u1")
    assert [e.media_id for e in result] == ["1"]


async def test_ordered_by_most_recent_update() -> None:
    history = FakeHistory([entry("1", "movie"), entry("2", "movie"), entry("3", "tv", 1, 1)])
    progress = FakeProgress({
        ("movie", "1", None, None): snap(100, 5400, age=timedelta(hours=5)),
        ("movie", "2", None, None): snap(100, 5400, age=timedelta(minutes=5)),
        ("tv", "3", 1, 1): snap(100, 1800, age=timedelta(hours=1)),
    })
    result = await service(history, progress).continue_watching("u1")
    assert [e.media_id for e in result] == ["2", "3", "1"]


async def test_same_id_different_types_are_separate_titles() -> None:
    history = FakeHistory([entry("42", "movie"), entry("42", "tv", 1, 1)])
    progress = FakeProgress({
        ("movie", "42", None, None): snap(100, 5400),
        ("tv", "42", 1, 1): snap(100, 1800),
    })
    result = await service(history, progress).continue_watching("u1")
    assert sorted(e.media_type for e in result) == ["movie", "tv"]


async def test_history_failure_returns_empty_and_is_not_cached() -> None:
    history = FakeHistory(fail=True)
    svc = service(history)
    assert await svc.continue_watching("u1") == []
    history.fail = False
    history.rows = [entry("1", "movie")]
    assert [e.media_id for e in await svc.continue_watching("u1")] == ["1"]
    assert history.calls == 2


async def test_results_are_cached_until_invalidated() -> None:
    history = FakeHistory([entry("1", "movie")])
    svc = service(history, cache_ttl=60)
    await svc.continue_watching("u1")
    await svc.continue_watching("u1")
    assert history.calls == 1

    svc.invalidate("u1")
    await svc.continue_watching("u1")
    assert history.calls == 2

    svc.clear()
    await svc.continue_watching("u1")
    assert history.calls == 3


async def test_last_watched_with_progress_rolls_over() -> None:
    history = FakeHistory([
        entry("1399", "tv", 1, 3, age=timedelta(days=1)),
        entry("1399", "tv", 1, 4, age=timedelta(hours=2)),
    ])
    progress = FakeProgress({("tv", "1399", 1, 4): snap(1750, 1800)})
    resolver = FakeResolver({("tv", "1399", 1, 4): NextUnit(1, 5)})
    point = await service(history, progress, resolver).last_watched_with_progress("u1", "1399", "tv")
    assert (point.season, point.episode, point.progress_seconds, point.is_next_unit) == (1, 5, 0, True)


async def test_last_watched_with_progress_partial_and_missing() -> None:
    history = FakeHistory([entry("1399", "tv", 1, 4), entry("550", "movie")])
    progress = FakeProgress({
        ("tv", "1399", 1, 4): snap(600, 1800),
        ("movie", "550", None, None): snap(5350, 5400),
    })
    svc = service(history, progress)

    point = await svc.last_watched_with_progress("u1", "1399", "tv")
    assert (point.season, point.episode, point.progress_seconds, point.is_next_unit) == (1, 4, 600, False)

    movie = await svc.last_watched_with_progress("u1", "550", "movie")
    assert movie.progress_seconds == 5350
    assert movie.is_next_unit is False

    assert await svc.last_watched_with_progress("u1", "999", "tv") is None


async def test_is_completed_threshold() -> None:
    svc = service(FakeHistory())
    assert svc.is_completed(snap(90, 100))
    assert not svc.is_completed(snap(89, 100))
    assert not svc.is_completed(snap(90, None))
    assert not svc.is_completed(None)
