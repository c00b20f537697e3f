# barkada/session_store.py
"""
Server-side session storage.

Every handler receives a `SessionStore` and the browser session id explicitly;
nothing reads session state from a global. Values are plain JSON-able data.

Key layout (per browser session):
    spotify_state                legacy unslotted state; read as a fallback, never written
    spotify_state_{slot}         pending OAuth state of one friend slot
    user_id / spotify_access_token / spotify_refresh_token / token_expires_at
                                 last completed login
    group_user_{slot}            tokens + user id of one friend slot
"""

import logging
import secrets
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from fastapi import Request, Response

from .config import get_settings

logger = logging.getLogger(__name__)

DEFAULT_SLOT = "default"

STATE_KEY = "spotify_state"
STATE_KEY_PREFIX = "spotify_state_"
GROUP_USER_PREFIX = "group_user_"

USER_ID_KEY = "user_id"
ACCESS_TOKEN_KEY = "spotify_access_token"
REFRESH_TOKEN_KEY = "spotify_refresh_token"
EXPIRES_AT_KEY = "token_expires_at"

GLOBAL_TOKEN_KEYS = (USER_ID_KEY, ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, EXPIRES_AT_KEY)


def state_key(slot: str) -> str:
    return f"{STATE_KEY_PREFIX}{slot}"


def group_user_key(slot: str) -> str:
    return f"{GROUP_USER_PREFIX}{slot}"


class SessionStore(ABC):
    """Get / Put / Delete keyed by (session id, key)."""

    @abstractmethod
    async def get(self, session_id: str, key: str, default: Any = None) -> Any:
        ...

    @abstractmethod
    async def put(self, session_id: str, key: str, value: Any) -> None:
        ...

    @abstractmethod
    async def delete(self, session_id: str, key: str) -> None:
        ...

    @abstractmethod
    async def keys(self, session_id: str) -> List[str]:
        ...

    async def delete_prefixed(self, session_id: str, *prefixes: str) -> int:
        removed = 0
        for key in await self.keys(session_id):
            if key.startswith(prefixes):
                await self.delete(session_id, key)
                removed += 1
        return removed


class _Bucket:
    __slots__ = ("values", "last_seen")

    def __init__(self, now: float):
        self.values: Dict[str, Any] = {}
        self.last_seen = now


class InMemorySessionStore(SessionStore):
    """
    Process-local store. Last write wins; no cross-request locking.

    A session untouched for `ttl_seconds` is dropped. Expired buckets are
    swept whenever a new one is created, and an expired bucket is never read.
    """

    def __init__(self, ttl_seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._data: Dict[str, _Bucket] = {}

    def __len__(self):
        return len(self._data)

    def _expired(self, bucket: _Bucket, now: float) -> bool:
        return self.ttl_seconds is not None and now - bucket.last_seen >= self.ttl_seconds

    def _bucket(self, session_id: str, create: bool = False) -> Optional[_Bucket]:
        now = self._clock()
        bucket = self._data.get(session_id)
        if bucket is not None and self._expired(bucket, now):
            del self._data[session_id]
            bucket = None

        if bucket is None:
            if not create:
                return None
            self.cleanup_expired()
            bucket = self._data[session_id] = _Bucket(now)

        bucket.last_seen = now
        return bucket

    def cleanup_expired(self) -> int:
        """Drop every expired session; returns how many were removed."""
        now = self._clock()
        expired = [sid for sid, bucket in self._data.items() if self._expired(bucket, now)]
        for sid in expired:
            del self._data[sid]
        if expired:
            logger.debug("Evicted %d expired browser sessions", len(expired))
        return len(expired)

    async def get(self, session_id, key, default=None):
        bucket = self._bucket(session_id)
        if bucket is None:
            return default
        return bucket.values.get(key, default)

    async def put(self, session_id, key, value):
        self._bucket(session_id, create=True).values[key] = value

    async def delete(self, session_id, key):
        bucket = self._bucket(session_id)
        if bucket is not None:
            bucket.values.pop(key, None)
            if not bucket.values:
                del self._data[session_id]

    async def keys(self, session_id):
        bucket = self._bucket(session_id)
        return list(bucket.values.keys()) if bucket else []


_store = InMemorySessionStore(ttl_seconds=get_settings().session_ttl_seconds)


def get_session_store() -> SessionStore:
    return _store


def get_browser_session(request: Request, response: Response) -> str:
    """Return the browser session id, issuing a cookie on first contact."""
    settings = get_settings()
    session_id: Optional[str] = request.cookies.get(settings.session_cookie_name)
    if not session_id:
        session_id = secrets.token_hex(32)
        response.set_cookie(
            key=settings.session_cookie_name,
            value=session_id,
            httponly=True,
            secure=settings.session_cookie_secure,
            samesite="lax",
            max_age=settings.session_ttl_seconds,
            path="/",
        )
    return session_id
