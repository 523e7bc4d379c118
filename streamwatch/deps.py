"""Process-wide service instances, exposed as FastAPI dependencies."""
from functools import lru_cache

from fastapi import Depends, Header, HTTPException
from redis.asyncio import Redis

from streamwatch.config import get_settings
from streamwatch.database import AsyncSessionLocal
from streamwatch.services.anilist import AniListClient
from streamwatch.services.cache import TTLCache
from streamwatch.services.catalog import Catalog
from streamwatch.services.continue_watching import ContinueWatchingService
from streamwatch.services.embed import provider_origins
from streamwatch.services.history_store import HistoryStore
from streamwatch.services.identity import IdentityResolver, SupabaseAuthClient
from streamwatch.services.next_unit import NextUnitResolver
from streamwatch.services.offline_cache import OfflineProgressCache
from streamwatch.services.player_bridge import PlayerBridge
from streamwatch.services.progress_store import ProgressStore
from streamwatch.services.tmdb import TMDBClient

settings = get_settings()


@lru_cache
def get_auth_client() -> SupabaseAuthClient:
    return SupabaseAuthClient(settings.supabase_url, settings.supabase_anon_key)


@lru_cache
def get_identity() -> IdentityResolver:
    return IdentityResolver(
        get_auth_client().get_session,
        timeout=settings.auth_timeout_seconds,
        max_retries=settings.auth_max_retries,
        retry_delay=settings.auth_retry_delay_seconds,
        cache_ttl=settings.token_cache_ttl_seconds,
    )


@lru_cache
def get_catalog() -> Catalog:
    return Catalog(
        tmdb=TMDBClient(settings.tmdb_api_key, settings.tmdb_base_url, settings.catalog_timeout_seconds),
        anilist=AniListClient(settings.anilist_url, settings.catalog_timeout_seconds),
        id_cache=TTLCache(settings.anime_id_cache_ttl_seconds),
    )


@lru_cache
def get_progress_store() -> ProgressStore:
    return ProgressStore(AsyncSessionLocal, history_min_seconds=settings.history_min_seconds)


@lru_cache
def get_history_store() -> HistoryStore:
    return HistoryStore(AsyncSessionLocal)


@lru_cache
def get_continue_watching() -> ContinueWatchingService:
    catalog = get_catalog()
    return ContinueWatchingService(
        history=get_history_store(),
        progress=get_progress_store(),
        resolver=NextUnitResolver(catalog),
        catalog=catalog,
        resume_min_seconds=settings.resume_min_seconds,
        recent_days=settings.recent_days,
        completion_ratio=settings.completion_ratio,
        cache_ttl=settings.continue_watching_cache_ttl_seconds,
    )


@lru_cache
def get_offline_cache() -> OfflineProgressCache:
    redis = Redis.from_url(settings.redis_url)
    return OfflineProgressCache(redis, ttl_seconds=settings.offline_cache_ttl_days * 24 * 3600)


@lru_cache
def get_player_bridge() -> PlayerBridge:
    return PlayerBridge(
        store=get_progress_store(),
        offline_cache=get_offline_cache(),
        allowed_origins=settings.allowed_player_origins or provider_origins(),
        iframe_throttle=settings.iframe_throttle_seconds,
        video_throttle=settings.video_throttle_seconds,
        ready_timeout=settings.player_ready_timeout_seconds,
        on_progress_saved=get_continue_watching().invalidate,
    )


def bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_user_id(
    authorization: str | None = Header(None),
    identity: IdentityResolver = Depends(get_identity),
) -> str:
    user_id = await identity.current_user_id(bearer_token(authorization))
    if not user_id:
        raise HTTPException(401, "Not signed in")
    return user_id


async def get_optional_user_id(
    authorization: str | None = Header(None),
    identity: IdentityResolver = Depends(get_identity),
) -> str | None:
    return await identity.current_user_id(bearer_token(authorization))
