"""Player relay: a websocket per open player plus embed URL selection."""
import asyncio
import json
import logging
from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect

from streamwatch.deps import get_identity, get_player_bridge, get_progress_store, get_optional_user_id
from streamwatch.schemas.progress import MediaType
from streamwatch.schemas.stream import StreamUrlResponse
from streamwatch.services.embed import PROVIDERS, EmbedError, build_embed_url
from streamwatch.services.identity import IdentityResolver
from streamwatch.services.items import WatchItem, is_series
from streamwatch.services.player_bridge import PlayerBridge, PlayerSession
from streamwatch.services.progress_store import ProgressStore

logger = logging.getLogger(__name__)
router = APIRouter(tags=["player"])

HEARTBEAT_SECONDS = 30
UNAUTHORIZED_CLOSE_CODE = 4401


def _state(session: PlayerSession) -> dict:
    return {
        "type": "state",
        "key": session.item.key,
        "ready": session.ready,
        "fallback": session.fallback,
        "finished": session.finished,
    }


async def _dispatch(session: PlayerSession, envelope: dict) -> dict | None:
    """Apply one client envelope to the session and build the reply, if any."""
    kind = envelope.get("kind")
    if kind == "stream":
        url = envelope.get("url")
        if not url:
            return {"type": "error", "detail": "stream envelope needs a url"}
        session.set_stream_url(url, direct=bool(envelope.get("direct")))
        return _state(session)
    if kind == "message":
        saved = await session.handle_message(envelope.get("origin"), envelope.get("data"))
        return {"type": "saved", "key": session.item.key} if saved else None
    if kind == "video":
        try:
            current_time = float(envelope["current_time"])
            duration = envelope.get("duration")
            duration = float(duration) if duration else None
        except (KeyError, TypeError, ValueError):
            return {"type": "error", "detail": "video envelope needs numeric current_time and duration"}
        saved = await session.report_video_time(current_time, duration)
        return {"type": "saved", "key": session.item.key} if saved else None
    if kind == "episode":
        try:
            season = int(envelope["season"])
            episode = int(envelope["episode"])
        except (KeyError, TypeError, ValueError):
            return {"type": "error", "detail": "episode envelope needs integer season and episode"}
        if season < 0 or episode < 0:
            return {"type": "error", "detail": "season and episode must not be negative"}
        session.set_unit(season, episode)
        return _state(session)
    if kind == "state":
        return _state(session)
    return {"type": "error", "detail": f"unknown kind {kind!r}"}


@router.websocket("/ws/player")
async def websocket_player(
    websocket: WebSocket,
    token: str | None = Query(None),
    media_type: MediaType = Query(...),
    media_id: str = Query(...),
    season: int | None = Query(None),
    episode: int | None = Query(None),
    identity: IdentityResolver = Depends(get_identity),
    bridge: PlayerBridge = Depends(get_player_bridge),
):
    await websocket.accept()
    user_id = await identity.current_user_id(token)
    if not user_id:
        await websocket.close(code=UNAUTHORIZED_CLOSE_CODE)
        return

    session = bridge.open_session(user_id, WatchItem(media_id, media_type, season, episode))
    try:
        await websocket.send_json(_state(session))
        while True:
            try:
                data = await asyncio.wait_for(websocket.receive_text(), timeout=HEARTBEAT_SECONDS)
            except asyncio.TimeoutError:
                try:
                    await websocket.send_json({"type": "heartbeat", **_state(session)})
                except Exception:
                    break
                continue
            if data == "ping":
                await websocket.send_text("pong")
                continue
            if bridge.get_session(session.session_id) is None:
                # Closed from the server side, e.g. on sign-out.
                await websocket.close()
                break
            try:
                envelope = json.loads(data)
            except ValueError:
                await websocket.send_json({"type": "error", "detail": "expected JSON"})
                continue
            if not isinstance(envelope, dict):
                await websocket.send_json({"type": "error", "detail": "expected an object"})
                continue
            reply = await _dispatch(session, envelope)
            if reply is not None:
                await websocket.send_json(reply)
    except WebSocketDisconnect:
        pass
    finally:
        bridge.close_session(session.session_id)


@router.get("/api/stream-url", response_model=StreamUrlResponse)
async def get_stream_url(
    media_type: MediaType = Query(...),
    media_id: str = Query(...),
    season: int | None = Query(None),
    episode: int | None = Query(None),
    source: str = Query("videasy"),
    dub: bool = Query(False),
    user_id: str | None = Depends(get_optional_user_id),
    store: ProgressStore = Depends(get_progress_store),
):
    """Build an embed URL, falling back to the other providers in table order."""
    if source not in PROVIDERS:
        raise HTTPException(400, f"Source '{source}' is not supported")
    if media_type == "tv" and (not season or not episode):
        raise HTTPException(400, "Season and episode required for TV shows")

    available = [
        name for name, p in PROVIDERS.items() if media_type != "anime" or p.supports_anime
    ]
    progress = None
    if user_id:
        snapshot = await store.get_progress(
            user_id, media_id, media_type,
            season if is_series(media_type) else None,
            episode if is_series(media_type) else None,
        )
        if snapshot:
            progress = snapshot.progress_seconds

    for name in [source] + [n for n in PROVIDERS if n != source]:
        try:
            url = build_embed_url(name, media_type, media_id, season, episode, progress, dub)
        except EmbedError as e:
            logger.info(f"Stream source {name} skipped for {media_type}-{media_id}: {e}")
            continue
        return StreamUrlResponse(
            url=url,
            is_direct_source=False,
            current_source=name,
            available_sources=available,
        )
    raise HTTPException(503, "No stream source available")
