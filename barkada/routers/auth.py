# barkada/routers/auth.py

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from .. import oauth
from ..auth import get_optional_user
from ..database import get_db
from ..models import User
from ..schemas import CallbackRequest, RefreshRequest, envelope
from ..session_store import SessionStore, get_session_store, get_browser_session

router = APIRouter(prefix="/v1/auth", tags=["auth"])


# ============================================================
# LOGIN / CALLBACK / REFRESH
# ============================================================

@router.get("/login")
async def auth_login(
        friend_slot: Optional[str] = None,
        store: SessionStore = Depends(get_session_store),
        sid: str = Depends(get_browser_session),
):
    result = await oauth.get_authorization_url(store, sid, friend_slot)
    return envelope(result)


@router.post("/callback")
async def auth_callback(
        payload: Optional[CallbackRequest] = None,
        db: AsyncSession = Depends(get_db),
        store: SessionStore = Depends(get_session_store),
        sid: str = Depends(get_browser_session),
):
    payload = payload or CallbackRequest()
    result = await oauth.handle_callback(
        db, store, sid, payload.code, payload.state, payload.friend_slot
    )
    return envelope(result)


@router.post("/refresh")
async def auth_refresh(
        payload: Optional[RefreshRequest] = None,
        store: SessionStore = Depends(get_session_store),
        sid: str = Depends(get_browser_session),
):
    payload = payload or RefreshRequest()
    result = await oauth.refresh_tokens(store, sid, payload.refresh_token, payload.friend_slot)
    return envelope(result)


@router.post("/logout")
async def auth_logout(
        user: Optional[User] = Depends(get_optional_user),
        db: AsyncSession = Depends(get_db),
        store: SessionStore = Depends(get_session_store),
        sid: str = Depends(get_browser_session),
):
    await oauth.logout(db, store, sid, user)
    return envelope(message="Logged out successfully")


# ============================================================
# MULTI-LOGIN BARKADA
# ============================================================

@router.get("/barkada/users")
async def barkada_users(
        db: AsyncSession = Depends(get_db),
        store: SessionStore = Depends(get_session_store),
        sid: str = Depends(get_browser_session),
):
    users = await oauth.list_group_users(db, store, sid)
    return envelope(users)


@router.post("/barkada/clear")
async def barkada_clear(
        store: SessionStore = Depends(get_session_store),
        sid: str = Depends(get_browser_session),
):
    await oauth.clear_group_session(store, sid)
    return envelope(message="Barkada session cleared")
