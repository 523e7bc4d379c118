from datetime import datetime
from pydantic import BaseModel
from typing import Literal


class FavoriteCreate(BaseModel):
    media_id: str
    media_type: Literal["movie", "tv", "anime"]


class FavoriteResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    media_id: str
    media_type: str
    created_at: datetime
