from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from streamwatch.services import retry as retry_mod
from streamwatch.services.history_store import HistoryStore, StoreUnavailableError, is_transient_db_error
from streamwatch.services.items import WatchItem
from streamwatch.services.progress_store import ProgressStore

T0 = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


async def test_list_for_user_newest_first(session_factory) -> None:
    history = HistoryStore(session_factory)
    await history.upsert_history("u1", WatchItem("550", "movie"), T0)
    await history.upsert_history("u1", WatchItem("1399", "tv", 1, 2), T0 + timedelta(hours=1))
    await history.upsert_history("u2", WatchItem("603", "movie"), T0)

    rows = await history.list_for_user("u1")
    assert [(r.media_id, r.season, r.episode) for r in rows] == [("1399", 1, 2), ("550", None, None)]
    assert rows[0].watched_at == T0 + timedelta(hours=1)


async def test_upsert_refreshes_watched_at(session_factory) -> None:
    history = HistoryStore(session_factory)
    item = WatchItem("1399", "tv", 1, 2)
    await history.upsert_history("u1", item, T0)
    await history.upsert_history("u1", item, T0 + timedelta(days=1))

    rows = await history.list_for_user("u1")
    assert len(rows) == 1
    assert rows[0].watched_at == T0 + timedelta(days=1)


async def test_most_recently_touched_uses_recency(session_factory) -> None:
    history = HistoryStore(session_factory)
    await history.upsert_history("u1", WatchItem("1399", "tv", 2, 5), T0)
    await history.upsert_history("u1", WatchItem("1399", "tv", 1, 1), T0 + timedelta(minutes=5))

    latest = await history.most_recently_touched("u1", "1399", "tv")
    assert (latest.season, latest.episode) == (1, 1)
    assert await history.most_recently_touched("u1", "nope", "tv") is None


async def test_delete_single_unit_and_whole_series(session_factory) -> None:
    history = HistoryStore(session_factory)
    progress = ProgressStore(session_factory)
    for ep in (1, 2, 3):
        await progress.save_progress("u1", WatchItem("1399", "tv", 1, ep), 120, 1800)

    await history.delete_item("u1", "1399", "tv", 1, 2)
    assert await progress.get_progress("u1", "1399", "tv", 1, 2) is None
    assert len(await history.list_for_user("u1")) == 2

    await history.delete_item("u1", "1399", "tv")
    assert await history.list_for_user("u1") == []
    assert await progress.series_progress("u1", "1399", "tv") == []


async def test_transient_failures_retry_then_raise_unavailable(monkeypatch: pytest.MonkeyPatch) -> None:
    delays = []

    async def fake_sleep(delay: float) -> None:
        delays.append(delay)

    monkeypatch.setattr(retry_mod.asyncio, "sleep", fake_sleep)
    calls = 0

    def flaky_factory():
        nonlocal calls
        calls += 1
        raise ConnectionError("db down")

    history = HistoryStore(flaky_factory, read_attempts=3, retry_delay=0.5)
    with pytest.raises(StoreUnavailableError):
        await history.list_for_user("u1")
    assert calls == 3
    assert delays == [0.5, 1.0]


async def test_permanent_failures_are_not_retried() -> None:
    calls = 0

    def broken_factory():
        nonlocal calls
        calls += 1
        raise ValueError("bad query")

    history = HistoryStore(broken_factory)
    with pytest.raises(StoreUnavailableError):
        await history.list_for_user("u1")
    assert calls == 1


def test_transient_error_classification() -> None:
    assert is_transient_db_error(ConnectionError())
    assert is_transient_db_error(TimeoutError())
    assert not is_transient_db_error(ValueError())
