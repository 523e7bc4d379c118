from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from streamwatch.database import get_db
from streamwatch.deps import get_user_id
from streamwatch.models.favorite import Favorite
from streamwatch.schemas.favorite import FavoriteCreate, FavoriteResponse
from streamwatch.schemas.progress import MediaType

router = APIRouter(prefix="/api/favorites", tags=["favorites"])


async def _find(db: AsyncSession, user_id: str, media_id: str, media_type: str) -> Favorite | None:
    result = await db.execute(
        select(Favorite).where(
            Favorite.user_id == user_id,
            Favorite.media_id == media_id,
            Favorite.media_type == media_type,
        )
    )
    return result.scalars().first()


@router.get("", response_model=list[FavoriteResponse])
async def list_favorites(
    media_type: MediaType | None = Query(None),
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    query = select(Favorite).where(Favorite.user_id == user_id)
    if media_type:
        query = query.where(Favorite.media_type == media_type)
    result = await db.execute(query.order_by(Favorite.created_at.desc()))
    return result.scalars().all()


@router.post("", response_model=FavoriteResponse, status_code=201)
async def add_favorite(
    data: FavoriteCreate,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    if db.get_bind().dialect.name == "postgresql":
        stmt = (
            pg_insert(Favorite)
            .values(user_id=user_id, media_id=data.media_id, media_type=data.media_type)
            .on_conflict_do_nothing(constraint="uq_favorites_user_media")
            .returning(Favorite)
        )
        result = await db.execute(stmt)
        row = result.scalars().first()
    else:
        row = None
        if await _find(db, user_id, data.media_id, data.media_type) is None:
            row = Favorite(user_id=user_id, media_id=data.media_id, media_type=data.media_type)
            db.add(row)
            await db.flush()
    if row is None:
        # Already a favorite
        row = await _find(db, user_id, data.media_id, data.media_type)
    await db.commit()
    await db.refresh(row)
    return row


@router.delete("/{favorite_id}", status_code=204)
async def remove_favorite(
    favorite_id: int,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(Favorite).where(Favorite.id == favorite_id, Favorite.user_id == user_id)
    )
    fav = result.scalars().first()
    if not fav:
        raise HTTPException(404, "Favorite not found")
    await db.delete(fav)
    await db.commit()


@router.delete("", status_code=204)
async def remove_favorite_by_item(
    media_id: str = Query(...),
    media_type: MediaType = Query(...),
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Remove a favorite by its natural key (no need to look up the id first)."""
    fav = await _find(db, user_id, media_id, media_type)
    if fav:
        await db.delete(fav)
        await db.commit()
