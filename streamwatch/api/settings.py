from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from streamwatch.database import get_db
from streamwatch.deps import get_player_bridge, get_user_id
from streamwatch.models.setting import AppSetting
from streamwatch.schemas.settings import PlayerSettingsRequest, PlayerSettingsResponse
from streamwatch.services.player_bridge import PlayerBridge

router = APIRouter(prefix="/api/settings", tags=["settings"])

SETTING_KEYS = ("iframe_throttle_seconds", "video_throttle_seconds", "player_ready_timeout_seconds")


def settings_from_rows(rows: dict[str, str], defaults: dict) -> dict:
    """Merge persisted values over the bridge's current ones, skipping junk."""
    merged = dict(defaults)
    for key in SETTING_KEYS:
        try:
            merged[key] = float(rows[key])
        except (KeyError, ValueError):
            continue
    return merged


@router.get("", response_model=PlayerSettingsResponse)
async def get_player_settings(
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
    bridge: PlayerBridge = Depends(get_player_bridge),
):
    result = await db.execute(select(AppSetting).where(AppSetting.key.in_(SETTING_KEYS)))
    rows = {r.key: r.value for r in result.scalars().all()}
    return PlayerSettingsResponse(**settings_from_rows(rows, bridge.get_settings()))


@router.put("", response_model=PlayerSettingsResponse)
async def update_player_settings(
    body: PlayerSettingsRequest,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
    bridge: PlayerBridge = Depends(get_player_bridge),
):
    updates = {key: str(value) for key, value in body.model_dump().items()}
    for key, value in updates.items():
        result = await db.execute(select(AppSetting).where(AppSetting.key == key))
        setting = result.scalar_one_or_none()
        if setting:
            setting.value = value
        else:
            db.add(AppSetting(key=key, value=value))
    await db.commit()

    bridge.apply_settings(
        iframe_throttle=body.iframe_throttle_seconds,
        video_throttle=body.video_throttle_seconds,
        ready_timeout=body.player_ready_timeout_seconds,
    )
    return PlayerSettingsResponse(**body.model_dump())
