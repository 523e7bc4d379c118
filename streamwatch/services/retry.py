"""Retry helper shared by the identity, history and offline-sync paths."""
from __future__ import annotations
import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _always(exc: BaseException) -> bool:
    return True


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int = 3,
    base_delay: float = 0.5,
    retry_on: Callable[[BaseException], bool] = _always,
    label: str = "operation",
) -> T:
    """Await ``operation`` up to ``attempts`` times.

    The delay before attempt ``n + 1`` is ``base_delay * n`` (linear backoff).
    Exceptions rejected by ``retry_on`` propagate immediately; the last error
    propagates once attempts are exhausted.
    """
    attempts = max(1, attempts)
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except Exception as e:
            if attempt >= attempts or not retry_on(e):
                raise
            delay = base_delay * attempt
            logger.warning(
                f"{label} failed ({type(e).__name__}: {e}); "
                f"retrying in {delay:.1f}s (attempt {attempt}/{attempts})"
            )
            await asyncio.sleep(delay)
    raise RuntimeError("unreachable")
