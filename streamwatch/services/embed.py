"""Embed player providers and their iframe URLs."""
from __future__ import annotations
from dataclasses import dataclass
from urllib.parse import urlencode, urlsplit


@dataclass(frozen=True)
class EmbedProvider:
    name: str
    base_url: str
    resume_param: str
    supports_anime: bool = False

    @property
    def origin(self) -> str:
        parts = urlsplit(self.base_url)
        return f"{parts.scheme}://{parts.netloc}"


PROVIDERS: dict[str, EmbedProvider] = {
    "videasy": EmbedProvider("videasy", "https://player.videasy.net", "progress", supports_anime=True),
    "vidsrc": EmbedProvider("vidsrc", "https://vidsrc.to/embed", "t"),
    "embedsu": EmbedProvider("embedsu", "https://embed.su/embed", "time"),
}


class EmbedError(ValueError):
    pass


def provider_origins() -> list[str]:
    return sorted({p.origin for p in PROVIDERS.values()})


def build_embed_url(
    source: str,
    media_type: str,
    media_id: str,
    season: int | None = None,
    episode: int | None = None,
    progress: int | None = None,
    dub: bool = False,
) -> str:
    provider = PROVIDERS.get(source)
    if provider is None:
        raise EmbedError(f"Source '{source}' is not supported")

    params: dict[str, str] = {}
    if media_type == "movie":
        url = f"{provider.base_url}/movie/{media_id}"
    elif media_type == "anime":
        if not provider.supports_anime:
            raise EmbedError(f"Source '{source}' does not serve anime")
        url = f"{provider.base_url}/anime/{media_id}"
        if episode:
            url += f"/{episode}"
        if dub:
            params["dub"] = "true"
    elif media_type == "tv":
        if not season or not episode:
            raise EmbedError("Season and episode required for TV shows")
        url = f"{provider.base_url}/tv/{media_id}/{season}/{episode}"
        if provider.name == "videasy":
            params.update(nextEpisode="true", autoplayNextEpisode="true", episodeSelector="true")
    else:
        raise EmbedError(f"Unknown media type '{media_type}'")

    if progress and progress > 0:
        params[provider.resume_param] = str(int(progress))
    return f"{url}?{urlencode(params)}" if params else url
