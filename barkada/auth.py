# barkada/auth.py

import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from .config import get_settings
from .database import get_db
from .models import User

ALGORITHM = "HS256"

auth_scheme = HTTPBearer(auto_error=False)


def create_app_token(user: User) -> str:
    """Generate a JWT signed with PyJWT, bound to the user's token version."""
    settings = get_settings()
    payload = {
        "sub": str(user.id),
        "ver": user.token_version or 0,
        "exp": datetime.now(timezone.utc) + timedelta(days=settings.app_token_ttl_days),
    }
    return jwt.encode(payload, settings.app_secret_key, algorithm=ALGORITHM)


def decode_app_token(raw_token: str) -> dict:
    """Decode a JWT; raises HTTPException(401) when it cannot be trusted."""
    try:
        payload = jwt.decode(raw_token, get_settings().app_secret_key, algorithms=[ALGORITHM])
        payload["sub"] = int(payload["sub"])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired.")
    except (jwt.InvalidTokenError, KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token.")
    return payload


async def _user_for_token(db: AsyncSession, raw_token: str) -> User:
    payload = decode_app_token(raw_token)

    result = await db.execute(
        select(User).where(User.id == payload["sub"])
    )
    user = result.scalars().first()

    if not user:
        raise HTTPException(status_code=401, detail="User not found.")
    if payload.get("ver", 0) != (user.token_version or 0):
        raise HTTPException(status_code=401, detail="Token revoked.")

    return user


async def get_current_user(
        token: Optional[HTTPAuthorizationCredentials] = Depends(auth_scheme),
        db: AsyncSession = Depends(get_db)
) -> User:
    """Decode JWT and return the authenticated user."""
    if token is None:
        raise HTTPException(status_code=401, detail="Not authenticated.")
    return await _user_for_token(db, token.credentials)


async def get_optional_user(
        token: Optional[HTTPAuthorizationCredentials] = Depends(auth_scheme),
        db: AsyncSession = Depends(get_db)
) -> Optional[User]:
    """Like get_current_user, but anonymous or bad tokens yield None."""
    if token is None:
        return None
    try:
        return await _user_for_token(db, token.credentials)
    except HTTPException:
        return None
