from pydantic import BaseModel


class StreamUrlResponse(BaseModel):
    url: str
    is_direct_source: bool = False
    current_source: str
    available_sources: list[str]
