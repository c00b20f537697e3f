# barkada/oauth.py
"""
Multi-login Spotify OAuth.

Each browser session can hold several authenticated Spotify identities at
once, one per "friend slot". Pending states and tokens are namespaced by slot
in the session store so concurrent logins do not clobber each other.
"""

import enum
import logging
import secrets
import string
from datetime import timedelta
from typing import Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from . import crud, spotify_auth
from .auth import create_app_token
from .config import get_settings
from .errors import MissingCode, NoRefreshToken, StateMismatch
from .models import utcnow
from .session_store import (
    SessionStore,
    DEFAULT_SLOT,
    STATE_KEY,
    STATE_KEY_PREFIX,
    GROUP_USER_PREFIX,
    GLOBAL_TOKEN_KEYS,
    USER_ID_KEY,
    ACCESS_TOKEN_KEY,
    REFRESH_TOKEN_KEY,
    EXPIRES_AT_KEY,
    state_key,
    group_user_key,
)

logger = logging.getLogger(__name__)

STATE_LENGTH = 16
SLOT_DELIMITER = "_"
_STATE_ALPHABET = string.ascii_letters + string.digits


class CallbackStage(str, enum.Enum):
    RECEIVED = "received"
    VALIDATING_STATE = "validating_state"
    EXCHANGING_CODE = "exchanging_code"
    FETCHING_PROFILE = "fetching_profile"
    UPSERTING_USER = "upserting_user"
    PERSISTING_SESSION = "persisting_session"
    COMPLETE = "complete"


def generate_state(length: int = STATE_LENGTH) -> str:
    """Random alphanumeric state; never contains the slot delimiter."""
    return "".join(secrets.choice(_STATE_ALPHABET) for _ in range(length))


def resolve_slot(state: Optional[str], friend_slot: Optional[str]) -> Tuple[Optional[str], str]:
    """
    Split `state` into (actual_state, slot). A slot embedded in the state
    wins over the explicit parameter.
    """
    slot = friend_slot or DEFAULT_SLOT
    if state and SLOT_DELIMITER in state:
        actual_state, embedded = state.split(SLOT_DELIMITER, 1)
        return actual_state, embedded or slot
    return state, slot


# ----------------------------------------------------------
# AUTHORIZATION INITIATOR
# ----------------------------------------------------------

async def get_authorization_url(store: SessionStore, session_id: str, friend_slot: Optional[str] = None) -> dict:
    slot = friend_slot or DEFAULT_SLOT
    state = generate_state()

    # overwrites any pending login for this slot
    await store.put(session_id, state_key(slot), state)

    return {
        "auth_url": spotify_auth.build_auth_url(state),
        "state": state,
        "friend_slot": slot,
    }


# ----------------------------------------------------------
# CALLBACK HANDLER
# ----------------------------------------------------------

def _enter(stage: CallbackStage, slot: str) -> None:
    logger.debug("OAuth callback [%s] stage=%s", slot, stage.value)


async def handle_callback(
        db: AsyncSession,
        store: SessionStore,
        session_id: str,
        code: Optional[str],
        state: Optional[str],
        friend_slot: Optional[str] = None,
) -> dict:
    actual_state, slot = resolve_slot(state, friend_slot)
    _enter(CallbackStage.RECEIVED, slot)
    logger.info(
        "Multi-login callback received: code=%s slot=%s",
        "present" if code else "missing", slot,
    )

    if not code:
        raise MissingCode()

    _enter(CallbackStage.VALIDATING_STATE, slot)
    stored_state = await store.get(session_id, state_key(slot))
    if stored_state is None:
        # unslotted key; nothing here writes it, so only a pre-seeded legacy value is read
        stored_state = await store.get(session_id, STATE_KEY)

    if not actual_state or actual_state != stored_state:
        logger.warning("State validation failed for friend slot %s", slot)
        if get_settings().oauth_strict_state:
            raise StateMismatch()

    _enter(CallbackStage.EXCHANGING_CODE, slot)
    tokens = await spotify_auth.exchange_code_for_token(code)

    _enter(CallbackStage.FETCHING_PROFILE, slot)
    profile = await spotify_auth.get_user_profile(tokens.access_token)

    _enter(CallbackStage.UPSERTING_USER, slot)
    user = await crud.upsert_user_from_profile(db, profile)

    _enter(CallbackStage.PERSISTING_SESSION, slot)
    expires_at = (utcnow() + timedelta(seconds=tokens.expires_in)).isoformat()
    await _store_tokens(
        store, session_id, slot,
        user_id=user.id,
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_at=expires_at,
        new_entry=True,
    )

    api_token = create_app_token(user)

    # single-use state
    await store.delete(session_id, state_key(slot))
    await store.delete(session_id, STATE_KEY)

    _enter(CallbackStage.COMPLETE, slot)
    logger.info("Friend slot %s authenticated as %s", slot, user.spotify_id)

    return {
        "access_token": tokens.access_token,
        "refresh_token": tokens.refresh_token,
        "api_token": api_token,
        "expires_in": tokens.expires_in,
        "user": {
            "id": user.spotify_id,
            "display_name": user.display_name,
            "email": user.email,
            "spotify_id": user.spotify_id,
            "images": [{"url": user.avatar_url}] if user.avatar_url else [],
            "country": profile.country,
            "followers": profile.followers,
        },
        "friend_slot": slot,
    }


async def _store_tokens(
        store: SessionStore,
        session_id: str,
        slot: Optional[str],
        *,
        user_id: Optional[int],
        access_token: str,
        refresh_token: Optional[str],
        expires_at: str,
        new_entry: bool = False,
) -> None:
    if user_id is not None:
        await store.put(session_id, USER_ID_KEY, user_id)
    await store.put(session_id, ACCESS_TOKEN_KEY, access_token)
    await store.put(session_id, REFRESH_TOKEN_KEY, refresh_token)
    await store.put(session_id, EXPIRES_AT_KEY, expires_at)

    if slot is None:
        return

    key = group_user_key(slot)
    entry = {} if new_entry else dict(await store.get(session_id, key) or {})
    entry.update({
        "access_token": access_token,
        "refresh_token": refresh_token,
        "token_expires_at": expires_at,
        "friend_slot": slot,
    })
    if user_id is not None:
        entry["user_id"] = user_id
    if new_entry:
        entry["added_at"] = utcnow().isoformat()
    await store.put(session_id, key, entry)


# ----------------------------------------------------------
# TOKEN REFRESH
# ----------------------------------------------------------

async def refresh_tokens(
        store: SessionStore,
        session_id: str,
        refresh_token: Optional[str] = None,
        friend_slot: Optional[str] = None,
) -> dict:
    previous = refresh_token
    if not previous and friend_slot:
        entry = await store.get(session_id, group_user_key(friend_slot)) or {}
        previous = entry.get("refresh_token")
    if not previous:
        previous = await store.get(session_id, REFRESH_TOKEN_KEY)

    if not previous:
        raise NoRefreshToken()

    tokens = await spotify_auth.refresh_access_token(previous)
    # Spotify may omit a rotated refresh token; the old one stays valid
    new_refresh = tokens.refresh_token or previous
    expires_at = (utcnow() + timedelta(seconds=tokens.expires_in)).isoformat()

    slot = None
    if friend_slot and await store.get(session_id, group_user_key(friend_slot)) is not None:
        slot = friend_slot

    await _store_tokens(
        store, session_id, slot,
        user_id=None,
        access_token=tokens.access_token,
        refresh_token=new_refresh,
        expires_at=expires_at,
    )

    return {
        "access_token": tokens.access_token,
        "refresh_token": new_refresh,
        "expires_in": tokens.expires_in,
    }


# ----------------------------------------------------------
# SESSION TOKENS / ROSTER / LOGOUT
# ----------------------------------------------------------

async def get_session_access_token(store: SessionStore, session_id: str, friend_slot: Optional[str] = None) -> Optional[str]:
    if friend_slot:
        entry = await store.get(session_id, group_user_key(friend_slot)) or {}
        return entry.get("access_token")
    return await store.get(session_id, ACCESS_TOKEN_KEY)


async def list_group_users(db: AsyncSession, store: SessionStore, session_id: str) -> list:
    users = []
    for key in sorted(await store.keys(session_id)):
        if not key.startswith(GROUP_USER_PREFIX):
            continue
        entry = await store.get(session_id, key)
        if not entry:
            continue
        user = await crud.get_user(db, entry.get("user_id"))
        if user is None:
            continue
        users.append({
            "id": user.spotify_id,
            "display_name": user.display_name,
            "email": user.email,
            "avatar_url": user.avatar_url,
            "friend_slot": entry.get("friend_slot"),
            "access_token": entry.get("access_token"),
            "added_at": entry.get("added_at"),
        })
    return users


async def clear_group_session(store: SessionStore, session_id: str) -> int:
    return await store.delete_prefixed(session_id, GROUP_USER_PREFIX, STATE_KEY_PREFIX)


async def logout(db: AsyncSession, store: SessionStore, session_id: str, user=None) -> None:
    if user is not None:
        await crud.revoke_app_tokens(db, user)
        logger.info("Revoked API tokens of user %s", user.id)

    await store.delete_prefixed(session_id, GROUP_USER_PREFIX, STATE_KEY_PREFIX)
    for key in GLOBAL_TOKEN_KEYS + (STATE_KEY,):
        await store.delete(session_id, key)
