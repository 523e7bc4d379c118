from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import select

from streamwatch.config import get_settings
from streamwatch.database import AsyncSessionLocal
from streamwatch.api import progress, continue_watching, favorites, player, session
from streamwatch.api import settings as settings_router
from streamwatch.api.settings import SETTING_KEYS, settings_from_rows
from streamwatch.deps import (
    get_auth_client,
    get_catalog,
    get_continue_watching,
    get_identity,
    get_offline_cache,
    get_player_bridge,
)
from streamwatch.models.setting import AppSetting
from streamwatch.services.identity import SIGNED_OUT

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)
settings = get_settings()


def on_session_change(event: str, user_id: str) -> None:
    if event != SIGNED_OUT:
        return
    get_continue_watching().invalidate(user_id)
    closed = get_player_bridge().close_user_sessions(user_id)
    logger.info(f"Signed out {user_id}: cleared caches, closed {closed} player session(s)")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"Starting {settings.app_name}...")
    bridge = get_player_bridge()
    unsubscribe = get_identity().on_session_change(on_session_change)

    # Load persisted player settings from DB and apply
    try:
        async with AsyncSessionLocal() as db:
            result = await db.execute(select(AppSetting).where(AppSetting.key.in_(SETTING_KEYS)))
            rows = {r.key: r.value for r in result.scalars().all()}
            if rows:
                merged = settings_from_rows(rows, bridge.get_settings())
                bridge.apply_settings(
                    iframe_throttle=merged["iframe_throttle_seconds"],
                    video_throttle=merged["video_throttle_seconds"],
                    ready_timeout=merged["player_ready_timeout_seconds"],
                )
    except Exception as e:
        logger.warning(f"Could not load settings from DB (first boot?): {e}")

    yield
    # Shutdown
    unsubscribe()
    await get_catalog().close()
    await get_auth_client().close()
    await get_offline_cache().redis.aclose()
    logger.info("Shutdown complete")


app = FastAPI(
    title=settings.app_name,
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(progress.router)
app.include_router(continue_watching.router)
app.include_router(favorites.router)
app.include_router(player.router)
app.include_router(settings_router.router)
app.include_router(session.router)


@app.get("/health")
async def health():
    return {"status": "ok", "app": settings.app_name}
