"""Resolves the signed-in user from a Supabase access token."""
from __future__ import annotations
import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable

import aiohttp

from streamwatch.services.cache import TTLCache
from streamwatch.services.retry import retry_with_backoff

logger = logging.getLogger(__name__)

SIGNED_OUT = "SIGNED_OUT"

SessionFetcher = Callable[[str], Awaitable[dict | None]]
SessionListener = Callable[[str, str], Any]


class SupabaseAuthClient:
    """Minimal GoTrue client: looks up the user behind an access token."""

    def __init__(self, supabase_url: str, anon_key: str):
        self.base_url = supabase_url.rstrip("/")
        self.anon_key = anon_key
        self._session: aiohttp.ClientSession | None = None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers={"apikey": self.anon_key})
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    async def get_session(self, access_token: str) -> dict | None:
        headers = {"Authorization": f"Bearer {access_token}"}
        async with self.session.get(f"{self.base_url}/auth/v1/user", headers=headers) as resp:
            if resp.status in (401, 403):
                return None
            resp.raise_for_status()
            user = await resp.json(content_type=None)
        return {"user": user} if user else None


def is_network_error(exc: BaseException) -> bool:
    # aiohttp's ServerTimeoutError is also a connection error; timeouts are not retried here.
    if isinstance(exc, asyncio.TimeoutError):
        return False
    return isinstance(exc, (aiohttp.ClientConnectionError, ConnectionError))


class IdentityResolver:
    def __init__(
        self,
        fetch_session: SessionFetcher,
        timeout: float = 5.0,
        max_retries: int = 2,
        retry_delay: float = 0.5,
        cache_ttl: float = 60,
    ):
        self._fetch_session = fetch_session
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._tokens = TTLCache(cache_ttl)
        self._listeners: list[SessionListener] = []

    async def current_user_id(self, access_token: str | None) -> str | None:
        """Return the user id behind the token, or None. Never raises."""
        if not access_token:
            return None
        cached = self._tokens.get(access_token)
        if cached is not None:
            return cached

        async def attempt():
            return await asyncio.wait_for(self._fetch_session(access_token), timeout=self.timeout)

        try:
            session = await retry_with_backoff(
                attempt,
                attempts=self.max_retries + 1,
                base_delay=self.retry_delay,
                retry_on=is_network_error,
                label="Session fetch",
            )
        except asyncio.TimeoutError:
            logger.warning(f"Session fetch timed out after {self.timeout}s")
            return None
        except Exception as e:
            logger.warning(f"Session fetch failed: {type(e).__name__}: {e}")
            return None

        user_id = ((session or {}).get("user") or {}).get("id")
        if not user_id:
            return None
        user_id = str(user_id)
        self._tokens.set(access_token, user_id)
        return user_id

    def on_session_change(self, callback: SessionListener) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    async def sign_out(self, user_id: str) -> None:
        self._tokens.clear_where(lambda _token, uid: uid == user_id)
        for listener in list(self._listeners):
            try:
                result = listener(SIGNED_OUT, user_id)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Session listener failed on sign-out of {user_id}: {e}", exc_info=True)

    def clear(self) -> None:
        self._tokens.clear()
