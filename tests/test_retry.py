from __future__ import annotations

import pytest

from streamwatch.services import retry as retry_mod
from streamwatch.services.retry import retry_with_backoff


@pytest.fixture()
def sleeps(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    recorded: list[float] = []

    async def fake_sleep(delay: float) -> None:
        recorded.append(delay)

    monkeypatch.setattr(retry_mod.asyncio, "sleep", fake_sleep)
    return recorded


async def test_returns_first_success_without_sleeping(sleeps: list[float]) -> None:
    async def op() -> str:
        return "ok"

    assert await retry_with_backoff(op) == "ok"
    assert sleeps == []


async def test_linear_backoff_between_attempts(sleeps: list[float]) -> None:
    calls = 0

    async def op() -> int:
        nonlocal calls
        calls += 1
        if calls < 3:
            raise ConnectionError("down")
        return calls

    assert await retry_with_backoff(op, attempts=3, base_delay=0.5) == 3
    assert sleeps == [0.5, 1.0]


async def test_reraises_last_error_when_exhausted(sleeps: list[float]) -> None:
    calls = 0

    async def op() -> None:
        nonlocal calls
        calls += 1
        raise ConnectionError(f"attempt {calls}")

    with pytest.raises(ConnectionError, match="attempt 2"):
        await retry_with_backoff(op, attempts=2, base_delay=1)
    assert calls == 2
    assert sleeps == [1]


async def test_non_retryable_errors_propagate_immediately(sleeps: list[float]) -> None:
    calls = 0

    async def op() -> None:
        nonlocal calls
        calls += 1
        raise ValueError("bad input")

    with pytest.raises(ValueError):
        await retry_with_backoff(op, attempts=5, retry_on=lambda e: isinstance(e, ConnectionError))
    assert calls == 1
    assert sleeps == []
