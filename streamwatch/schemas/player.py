"""Wire shapes posted by embedded players, as a discriminated union on ``type``."""
import json
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


def _decode_json(value: Any, depth: int = 2) -> Any:
    # Some providers JSON-encode the payload, and some encode it twice.
    while isinstance(value, (str, bytes)) and depth > 0:
        value = json.loads(value)
        depth -= 1
    return value


class WatchedProgress(BaseModel):
    model_config = ConfigDict(extra="ignore")

    watched: float = 0
    duration: float | None = None


class ProgressUpdateData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    progress: WatchedProgress
    season: int | None = None
    episode: int | None = None


class ProgressUpdateMessage(BaseModel):
    type: Literal["PROGRESS_UPDATE"]
    data: ProgressUpdateData


class MediaDataEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    progress: WatchedProgress | None = None
    last_season_watched: int | None = None
    last_episode_watched: int | None = None

    @field_validator("last_season_watched", "last_episode_watched", mode="before")
    @classmethod
    def blank_is_none(cls, v):
        return None if v in ("", None) else v


class MediaDataMessage(BaseModel):
    type: Literal["MEDIA_DATA"]
    data: dict[str, MediaDataEntry]

    @field_validator("data", mode="before")
    @classmethod
    def decode_data(cls, v):
        v = _decode_json(v)
        if isinstance(v, dict):
            return {k: _decode_json(entry) for k, entry in v.items()}
        return v


class PlayerEventData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    event: str
    time: float | None = None
    duration: float | None = None


class PlayerEventMessage(BaseModel):
    type: Literal["PLAYER_EVENT"]
    data: PlayerEventData


PlayerMessage = Annotated[
    Union[ProgressUpdateMessage, MediaDataMessage, PlayerEventMessage],
    Field(discriminator="type"),
]

player_message_adapter: TypeAdapter[PlayerMessage] = TypeAdapter(PlayerMessage)

KNOWN_MESSAGE_TYPES = frozenset({"PROGRESS_UPDATE", "MEDIA_DATA", "PLAYER_EVENT"})
