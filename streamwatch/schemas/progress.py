from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

MediaType = Literal["movie", "tv", "anime"]


class ProgressResponse(BaseModel):
    model_config = {"from_attributes": True}

    progress_seconds: int
    duration_seconds: int | None
    updated_at: datetime | None


class ProgressSaveRequest(BaseModel):
    media_id: str
    media_type: MediaType
    season: int | None = Field(default=None, ge=0)
    episode: int | None = Field(default=None, ge=0)
    # Range is checked in the router so bad input gets a 422.
    progress_seconds: float
    duration_seconds: float | None = None
    force_history: bool = False


class ProgressSaveResponse(BaseModel):
    saved: bool
    queued_offline: bool = False


class EpisodeProgressResponse(BaseModel):
    season: int | None
    episode: int | None
    progress_seconds: int
    duration_seconds: int | None
    updated_at: datetime | None


class SyncResponse(BaseModel):
    synced: int


class ContinueWatchingResponse(BaseModel):
    model_config = {"from_attributes": True}

    media_id: str
    media_type: str
    season: int | None
    episode: int | None
    progress_seconds: int
    duration_seconds: int | None
    updated_at: datetime
    is_next_unit: bool
    title: str | None
    poster_path: str | None
    backdrop_path: str | None
    overview: str | None
    vote_average: float | None


class ResumeResponse(BaseModel):
    model_config = {"from_attributes": True}

    media_id: str
    media_type: str
    season: int | None
    episode: int | None
    progress_seconds: int
    duration_seconds: int | None
    is_next_unit: bool
