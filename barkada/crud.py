# barkada/crud.py

import logging
import random
import string
from datetime import timedelta
from typing import List, Optional, Tuple

from sqlalchemy import select, func, or_, update
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import NotFound, Forbidden
from .models import User, BarkadaSession, SessionUser, utcnow
from .schemas import SpotifyProfile, SessionCreate, PlaybackSync

logger = logging.getLogger(__name__)


# ======================================================
# USERS
# ======================================================

async def get_user_by_spotify_id(db: AsyncSession, spotify_id: str) -> Optional[User]:
    """Return a user by their Spotify user ID."""
    result = await db.execute(
        select(User).where(User.spotify_id == spotify_id)
    )
    return result.scalars().first()


async def get_user(db: AsyncSession, user_id: int) -> Optional[User]:
    return await db.get(User, user_id)


async def upsert_user_from_profile(db: AsyncSession, profile: SpotifyProfile) -> User:
    """Create or update the user row keyed by Spotify id."""
    user = await get_user_by_spotify_id(db, profile.id)
    if user is None:
        user = User(spotify_id=profile.id, token_version=0)
        db.add(user)

    user.display_name = profile.display_name or profile.id
    user.email = profile.email
    user.avatar_url = profile.avatar_url
    user.spotify_data = profile.model_dump(mode="json")

    await db.commit()
    await db.refresh(user)
    return user


async def revoke_app_tokens(db: AsyncSession, user: User) -> User:
    """Invalidate every API token minted for this user so far."""
    user.token_version = (user.token_version or 0) + 1
    await db.commit()
    await db.refresh(user)
    return user


# ======================================================
# BARKADA SESSIONS
# ======================================================

SESSION_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_session_code(length: int = 6) -> str:
    """Generate a random 6-character session code."""
    return ''.join(random.choices(SESSION_CODE_ALPHABET, k=length))


async def session_code_exists(db: AsyncSession, code: str) -> bool:
    result = await db.execute(
        select(BarkadaSession.id).where(BarkadaSession.session_code == code)
    )
    return result.first() is not None


async def generate_unique_session_code(db: AsyncSession, length: int = 6) -> str:
    """Retry random generation until the code is not taken."""
    while True:
        code = generate_session_code(length)
        if not await session_code_exists(db, code):
            return code
        logger.debug("Session code collision on %s, retrying", code)


def _active_filter(now=None):
    now = now or utcnow()
    return (
        BarkadaSession.is_active.is_(True),
        or_(BarkadaSession.expires_at.is_(None), BarkadaSession.expires_at > now),
    )


async def get_active_session(db: AsyncSession, code: str) -> Optional[BarkadaSession]:
    """Fetch an open session (active flag set and not expired) by code."""
    result = await db.execute(
        select(BarkadaSession).where(
            BarkadaSession.session_code == code, *_active_filter()
        )
    )
    return result.scalars().first()


async def require_active_session(db: AsyncSession, code: str, message: str = "Session not found or expired") -> BarkadaSession:
    session = await get_active_session(db, code)
    if session is None:
        raise NotFound(message)
    return session


async def create_session(db: AsyncSession, creator: User, data: SessionCreate) -> BarkadaSession:
    """Create a session and auto-join its creator."""
    code = await generate_unique_session_code(db)

    expires_at = None
    if data.duration_hours:
        expires_at = utcnow() + timedelta(hours=data.duration_hours)

    session = BarkadaSession(
        session_code=code,
        creator_id=creator.id,
        name=data.name,
        description=data.description,
        max_participants=data.max_participants,
        is_active=True,
        expires_at=expires_at,
    )
    db.add(session)
    await db.flush()

    db.add(SessionUser(
        barkada_session_id=session.id,
        user_id=creator.id,
        joined_at=utcnow(),
        is_active=True,
    ))
    await db.commit()
    await db.refresh(session)

    logger.info("Created barkada session %s for user %s", code, creator.id)
    return session


async def get_membership(db: AsyncSession, session_id: int, user_id: int) -> Optional[SessionUser]:
    result = await db.execute(
        select(SessionUser).where(
            SessionUser.barkada_session_id == session_id,
            SessionUser.user_id == user_id,
        )
    )
    return result.scalars().first()


async def count_active_participants(db: AsyncSession, session_id: int) -> int:
    result = await db.execute(
        select(func.count(SessionUser.id)).where(
            SessionUser.barkada_session_id == session_id,
            SessionUser.is_active.is_(True),
        )
    )
    return result.scalar_one()


async def is_full(db: AsyncSession, session: BarkadaSession) -> bool:
    if not session.max_participants:
        return False
    return await count_active_participants(db, session.id) >= session.max_participants


async def get_active_participants(db: AsyncSession, session_id: int) -> List[Tuple[User, SessionUser]]:
    result = await db.execute(
        select(User, SessionUser)
        .join(SessionUser, SessionUser.user_id == User.id)
        .where(
            SessionUser.barkada_session_id == session_id,
            SessionUser.is_active.is_(True),
        )
        .order_by(SessionUser.joined_at, SessionUser.id)
    )
    return [(user, membership) for user, membership in result.all()]


async def join_session(db: AsyncSession, code: str, user_name: str, spotify_id: str) -> BarkadaSession:
    """
    Join by code. Unknown Spotify ids get a user row; former participants are
    reactivated. A full session raises Forbidden and changes nothing.
    """
    session = await require_active_session(db, code)

    user = await get_user_by_spotify_id(db, spotify_id)
    membership = await get_membership(db, session.id, user.id) if user else None

    if membership is not None and membership.is_active:
        return session

    if await is_full(db, session):
        raise Forbidden("Session is full")

    if user is None:
        user = User(spotify_id=spotify_id, display_name=user_name, token_version=0)
        db.add(user)
        await db.flush()

    if membership is None:
        db.add(SessionUser(
            barkada_session_id=session.id,
            user_id=user.id,
            joined_at=utcnow(),
            is_active=True,
        ))
    else:
        membership.is_active = True

    await db.commit()
    await db.refresh(session)
    return session


async def leave_session(db: AsyncSession, code: str, user: User) -> None:
    """Soft leave: the membership row stays, marked inactive."""
    session = await require_active_session(db, code, "Session not found")
    membership = await get_membership(db, session.id, user.id)
    if membership is None or not membership.is_active:
        raise NotFound("You are not a participant of this session")

    membership.is_active = False
    await db.commit()


async def end_session(db: AsyncSession, code: str, user: User) -> BarkadaSession:
    """Close a session and deactivate all participants; creator only."""
    session = await require_active_session(db, code, "Session not found")
    if session.creator_id != user.id:
        raise Forbidden("Only the session creator can end this session")

    session.is_active = False
    await db.execute(
        update(SessionUser)
        .where(SessionUser.barkada_session_id == session.id)
        .values(is_active=False, updated_at=utcnow())
    )
    await db.commit()
    await db.refresh(session)
    return session


async def sync_playback(db: AsyncSession, code: str, user: User, data: PlaybackSync) -> BarkadaSession:
    session = await require_active_session(db, code, "Session not found")
    membership = await get_membership(db, session.id, user.id)
    if membership is None or not membership.is_active:
        raise NotFound("Session not found or you are not a participant")

    session.current_track = data.current_track
    session.playback_state = data.playback_state
    session.sync_data = {
        "updated_by": user.id,
        "updated_at": utcnow().isoformat() + "Z",
        "position_ms": data.position_ms,
        "is_playing": data.is_playing,
    }
    await db.commit()
    await db.refresh(session)
    return session
