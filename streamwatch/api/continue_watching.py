from fastapi import APIRouter, Depends, HTTPException

from streamwatch.deps import get_user_id, get_continue_watching
from streamwatch.schemas.progress import ContinueWatchingResponse, ResumeResponse, MediaType
from streamwatch.services.continue_watching import ContinueWatchingService

router = APIRouter(prefix="/api/continue-watching", tags=["continue-watching"])


@router.get("", response_model=list[ContinueWatchingResponse])
async def list_continue_watching(
    user_id: str = Depends(get_user_id),
    service: ContinueWatchingService = Depends(get_continue_watching),
):
    return await service.continue_watching(user_id)


@router.get("/{media_type}/{media_id}/resume", response_model=ResumeResponse)
async def resume_point(
    media_type: MediaType,
    media_id: str,
    user_id: str = Depends(get_user_id),
    service: ContinueWatchingService = Depends(get_continue_watching),
):
    """Where the play button should start for this title."""
    point = await service.last_watched_with_progress(user_id, media_id, media_type)
    if point is None:
        raise HTTPException(404, "Nothing to resume")
    return point
