"""
Async client for the Barkada backend, plus the client-side friend roster.

The client keeps the backend's session cookie, so every friend slot that
logs in through one client lands in the same server session.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import httpx

from .popup_bridge import PopupAuthBridge, PopupOutcome, PopupWindow

logger = logging.getLogger(__name__)

MAX_FRIENDS = 6


class BarkadaApiError(Exception):
    def __init__(self, message: str, status_code: int, details: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class PopupAuthError(Exception):
    """The popup reported AUTH_ERROR (or could not be opened)."""


class BarkadaApiClient:
    def __init__(self, base_url: str, *, api_token: Optional[str] = None, transport=None, timeout: float = 30.0):
        self.api_token = api_token
        self._client = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=timeout)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def _call(self, method: str, path: str, **kwargs) -> Any:
        headers = kwargs.pop("headers", {})
        if self.api_token:
            headers.setdefault("Authorization", f"Bearer {self.api_token}")

        res = await self._client.request(method, path, headers=headers, **kwargs)
        try:
            body = res.json()
        except ValueError:
            body = {"success": False, "message": res.text}

        if not res.is_success or not body.get("success", False):
            raise BarkadaApiError(
                body.get("message", "Request failed"), res.status_code, body.get("details")
            )
        return body

    # ----- auth -----

    async def get_auth_url(self, friend_slot: str) -> Dict[str, Any]:
        body = await self._call("GET", "/v1/auth/login", params={"friend_slot": friend_slot})
        return body["data"]

    async def handle_callback(self, code: str, state: Optional[str], friend_slot: str) -> Dict[str, Any]:
        body = await self._call(
            "POST", "/v1/auth/callback",
            json={"code": code, "state": state, "friend_slot": friend_slot},
        )
        return body["data"]

    async def refresh(self, refresh_token: Optional[str] = None, friend_slot: Optional[str] = None):
        body = await self._call(
            "POST", "/v1/auth/refresh",
            json={"refresh_token": refresh_token, "friend_slot": friend_slot},
        )
        return body["data"]

    async def barkada_users(self) -> List[Dict[str, Any]]:
        return (await self._call("GET", "/v1/auth/barkada/users"))["data"]

    async def clear_barkada(self) -> None:
        await self._call("POST", "/v1/auth/barkada/clear")

    # ----- analysis & sessions -----

    async def analyze_group(self, tokens: List[str], session_id: Optional[str] = None):
        body = await self._call(
            "POST", "/v1/analytics/barkada",
            json={"user_tokens": tokens, "session_id": session_id},
        )
        return body["data"]

    async def create_session(self, name: str, **options) -> Dict[str, Any]:
        body = await self._call("POST", "/v1/sessions", json={"name": name, **options})
        return body["data"]

    async def join_session(self, code: str, user_name: str, spotify_id: str) -> Dict[str, Any]:
        body = await self._call(
            "POST", f"/v1/sessions/{code}/join",
            json={"user_name": user_name, "spotify_id": spotify_id},
        )
        return body["data"]


# ==================================================
# FRIEND ROSTER
# ==================================================

@dataclass
class FriendLogin:
    slot: str
    user: Dict[str, Any]
    access_token: str
    refresh_token: Optional[str] = None
    api_token: Optional[str] = None
    joined_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def user_id(self) -> Optional[str]:
        return self.user.get("id")


class RosterFull(Exception):
    pass


class FriendRoster:
    """Up to six logged-in friends; re-using a slot replaces its friend."""

    def __init__(self, max_friends: int = MAX_FRIENDS):
        self.max_friends = max_friends
        self._friends: List[FriendLogin] = []

    def __len__(self):
        return len(self._friends)

    def __iter__(self):
        return iter(self._friends)

    @property
    def can_start_session(self) -> bool:
        return len(self._friends) >= 2

    def next_slot(self) -> str:
        return f"friend{len(self._friends) + 1}"

    def add(self, friend: FriendLogin) -> None:
        for i, existing in enumerate(self._friends):
            if existing.slot == friend.slot:
                self._friends[i] = friend
                return
        if len(self._friends) >= self.max_friends:
            raise RosterFull(f"A barkada holds at most {self.max_friends} friends")
        self._friends.append(friend)

    def remove(self, user_id: str) -> bool:
        before = len(self._friends)
        self._friends = [f for f in self._friends if f.user_id != user_id]
        return len(self._friends) != before

    def access_tokens(self) -> List[str]:
        return [f.access_token for f in self._friends]

    def clear(self) -> None:
        self._friends = []


# ==================================================
# POPUP LOGIN
# ==================================================

OpenPopup = Callable[[str, PopupAuthBridge], Optional[PopupWindow]]


async def authenticate_friend(
        api: BarkadaApiClient,
        friend_slot: str,
        open_popup: OpenPopup,
        *,
        poll_interval: float = 1.0,
        timeout: float = 300.0,
) -> Optional[FriendLogin]:
    """
    Log one friend in through a popup.

    `open_popup(url, bridge)` opens the window and routes its messages to
    `bridge.post_message`. Returns None when the user closed the popup or the
    attempt timed out.
    """
    auth = await api.get_auth_url(friend_slot)

    bridge = PopupAuthBridge(poll_interval=poll_interval, timeout=timeout)
    popup = open_popup(auth["auth_url"], bridge)
    if popup is not None:
        bridge.attach(popup)

    result = await bridge.wait()

    if result.outcome is PopupOutcome.ERROR:
        raise PopupAuthError(result.error)
    if result.cancelled:
        logger.info("Login for %s ended without credentials: %s", friend_slot, result.outcome.value)
        return None

    data = await api.handle_callback(result.code, result.state, friend_slot)
    return FriendLogin(
        slot=data.get("friend_slot", friend_slot),
        user=data["user"],
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token"),
        api_token=data.get("api_token"),
    )
