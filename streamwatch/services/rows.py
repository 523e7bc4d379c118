"""Composite-key helpers for the watch_progress / watch_history tables."""
from __future__ import annotations
from typing import Any

from sqlalchemy import insert, update
from sqlalchemy.ext.asyncio import AsyncSession

from streamwatch.services.items import WatchItem


def _same(column, value):
    # NULL-safe equality: "= NULL" never matches, so absent numbers need IS NULL.
    return column.is_(None) if value is None else column == value


def key_clauses(model, user_id: str, item: WatchItem) -> list:
    clauses = [
        model.user_id == user_id,
        model.media_id == item.media_id,
        model.media_type == item.media_type,
    ]
    if item.is_series:
        clauses.append(_same(model.season_number, item.season))
        clauses.append(_same(model.episode_number, item.episode))
    return clauses


def series_clauses(model, user_id: str, media_id: str, media_type: str | None = None) -> list:
    clauses = [model.user_id == user_id, model.media_id == str(media_id)]
    if media_type:
        clauses.append(model.media_type == media_type)
    return clauses


async def upsert_row(session: AsyncSession, model, user_id: str, item: WatchItem, values: dict[str, Any]) -> None:
    """Update the row for the composite key, inserting it when absent.

    ON CONFLICT cannot target the nullable unit columns portably, so this is an
    update-then-insert inside the caller's transaction. Concurrent writers
    converge on the last write.
    """
    result = await session.execute(
        update(model).where(*key_clauses(model, user_id, item)).values(**values)
    )
    if result.rowcount:
        return
    await session.execute(
        insert(model).values(
            user_id=user_id,
            media_id=item.media_id,
            media_type=item.media_type,
            season_number=item.season,
            episode_number=item.episode,
            **values,
        )
    )
