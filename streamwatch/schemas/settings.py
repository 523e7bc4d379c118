from pydantic import BaseModel, Field


class PlayerSettingsRequest(BaseModel):
    iframe_throttle_seconds: float = Field(ge=0.5, le=60)
    video_throttle_seconds: float = Field(ge=0.25, le=60)
    player_ready_timeout_seconds: float = Field(ge=1, le=120)


class PlayerSettingsResponse(BaseModel):
    iframe_throttle_seconds: float
    video_throttle_seconds: float
    player_ready_timeout_seconds: float

