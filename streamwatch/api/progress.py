import logging
from fastapi import APIRouter, Depends, HTTPException, Query

from streamwatch.deps import (
    get_user_id,
    get_progress_store,
    get_history_store,
    get_continue_watching,
    get_offline_cache,
)
from streamwatch.schemas.progress import (
    ProgressResponse,
    ProgressSaveRequest,
    ProgressSaveResponse,
    EpisodeProgressResponse,
    SyncResponse,
    MediaType,
)
from streamwatch.services.continue_watching import ContinueWatchingService
from streamwatch.services.history_store import HistoryStore
from streamwatch.services.items import WatchItem
from streamwatch.services.offline_cache import OfflineProgressCache
from streamwatch.services.progress_store import ProgressStore, invalid_write_reason

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/progress", tags=["progress"])


@router.get("", response_model=ProgressResponse | None)
async def get_progress(
    media_id: str = Query(...),
    media_type: MediaType = Query(...),
    season: int | None = Query(None),
    episode: int | None = Query(None),
    user_id: str = Depends(get_user_id),
    store: ProgressStore = Depends(get_progress_store),
):
    return await store.get_progress(user_id, media_id, media_type, season, episode)


@router.put("", response_model=ProgressSaveResponse)
async def save_progress(
    body: ProgressSaveRequest,
    user_id: str = Depends(get_user_id),
    store: ProgressStore = Depends(get_progress_store),
    offline: OfflineProgressCache = Depends(get_offline_cache),
    continue_watching: ContinueWatchingService = Depends(get_continue_watching),
):
    item = WatchItem(body.media_id, body.media_type, body.season, body.episode)
    reason = invalid_write_reason(user_id, item, body.progress_seconds)
    if reason:
        raise HTTPException(422, reason)

    saved = await store.save_progress(
        user_id, item, body.progress_seconds, body.duration_seconds, body.force_history
    )
    if saved:
        continue_watching.invalidate(user_id)
        return ProgressSaveResponse(saved=True)

    queued = await offline.put(user_id, item, body.progress_seconds, body.duration_seconds)
    return ProgressSaveResponse(saved=False, queued_offline=queued)


@router.delete("", status_code=204)
async def remove_item(
    media_id: str = Query(...),
    media_type: MediaType = Query(...),
    season: int | None = Query(None),
    episode: int | None = Query(None),
    user_id: str = Depends(get_user_id),
    history: HistoryStore = Depends(get_history_store),
    offline: OfflineProgressCache = Depends(get_offline_cache),
    continue_watching: ContinueWatchingService = Depends(get_continue_watching),
):
    """Remove a title (or one episode of it) from continue watching."""
    try:
        await history.delete_item(user_id, media_id, media_type, season, episode)
    except Exception as e:
        logger.error(f"Failed to remove {media_type}-{media_id} for {user_id}: {e}", exc_info=True)
        raise HTTPException(503, "Watch history is unavailable")
    continue_watching.invalidate(user_id)
    if season is not None or media_type == "movie":
        try:
            await offline.discard(user_id, WatchItem(media_id, media_type, season, episode))
        except Exception as e:
            logger.warning(f"Could not discard offline progress for {media_type}-{media_id}: {e}")


@router.get("/{media_type}/{media_id}/episodes", response_model=list[EpisodeProgressResponse])
async def get_series_progress(
    media_type: MediaType,
    media_id: str,
    user_id: str = Depends(get_user_id),
    store: ProgressStore = Depends(get_progress_store),
):
    rows = await store.series_progress(user_id, media_id, media_type)
    return [
        EpisodeProgressResponse(
            season=item.season,
            episode=item.episode,
            progress_seconds=snap.progress_seconds,
            duration_seconds=snap.duration_seconds,
            updated_at=snap.updated_at,
        )
        for item, snap in rows
    ]


@router.post("/sync", response_model=SyncResponse)
async def sync_offline_progress(
    user_id: str = Depends(get_user_id),
    store: ProgressStore = Depends(get_progress_store),
    offline: OfflineProgressCache = Depends(get_offline_cache),
    continue_watching: ContinueWatchingService = Depends(get_continue_watching),
):
    """Replay progress that was cached while the database was unreachable."""
    try:
        synced = await offline.sync(user_id, store)
    except Exception as e:
        logger.error(f"Offline progress sync failed for {user_id}: {e}", exc_info=True)
        raise HTTPException(503, "Offline cache is unavailable")
    if synced:
        continue_watching.invalidate(user_id)
    return SyncResponse(synced=synced)
