# barkada/routers/sessions.py

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from .. import crud
from ..auth import get_current_user
from ..database import get_db
from ..models import User, BarkadaSession
from ..schemas import (
    SessionCreate,
    SessionJoin,
    PlaybackSync,
    SessionOut,
    ParticipantOut,
    envelope,
)

router = APIRouter(prefix="/v1/sessions", tags=["sessions"])


async def _session_out(db: AsyncSession, session: BarkadaSession) -> dict:
    participants = await crud.get_active_participants(db, session.id)
    out = SessionOut(
        id=session.id,
        session_code=session.session_code,
        creator_id=session.creator_id,
        name=session.name,
        description=session.description,
        is_active=session.is_active,
        max_participants=session.max_participants,
        expires_at=session.expires_at,
        created_at=session.created_at,
        participants=[_participant_out(u, m) for u, m in participants],
    )
    return out.model_dump(mode="json")


def _participant_out(user: User, membership) -> ParticipantOut:
    return ParticipantOut(
        id=user.id,
        spotify_id=user.spotify_id,
        display_name=user.display_name,
        avatar_url=user.avatar_url,
        joined_at=membership.joined_at,
        is_active=membership.is_active,
    )


# ============================================================
# PUBLIC
# ============================================================

@router.get("/{code}")
async def get_session(code: str, db: AsyncSession = Depends(get_db)):
    session = await crud.require_active_session(db, code)
    creator = await crud.get_user(db, session.creator_id)

    return envelope({
        "id": session.id,
        "session_code": session.session_code,
        "name": session.name,
        "description": session.description,
        "creator": {
            "name": creator.display_name if creator else None,
            "avatar_url": creator.avatar_url if creator else None,
        },
        "participant_count": await crud.count_active_participants(db, session.id),
        "max_participants": session.max_participants,
        "is_full": await crud.is_full(db, session),
        "created_at": session.created_at.isoformat() if session.created_at else None,
        "expires_at": session.expires_at.isoformat() if session.expires_at else None,
    })


@router.post("/{code}/join")
async def join_session(code: str, payload: SessionJoin, db: AsyncSession = Depends(get_db)):
    session = await crud.join_session(db, code, payload.user_name, payload.spotify_id)
    return envelope(await _session_out(db, session), message="Joined session successfully")


# ============================================================
# PROTECTED
# ============================================================

@router.post("", status_code=201)
async def create_session(
        payload: SessionCreate,
        user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
):
    session = await crud.create_session(db, user, payload)
    return JSONResponse(
        status_code=201,
        content=envelope(await _session_out(db, session), message="Session created successfully"),
    )


@router.get("/{code}/users")
async def get_session_users(
        code: str,
        user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
):
    session = await crud.require_active_session(db, code, "Session not found")
    participants = await crud.get_active_participants(db, session.id)
    return envelope([_participant_out(u, m).model_dump(mode="json") for u, m in participants])


@router.post("/{code}/leave")
async def leave_session(
        code: str,
        user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
):
    await crud.leave_session(db, code, user)
    return envelope(message="Left session successfully")


@router.delete("/{code}")
async def end_session(
        code: str,
        user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
):
    await crud.end_session(db, code, user)
    return envelope(message="Session ended successfully")


@router.put("/{code}/sync")
async def sync_playback(
        code: str,
        payload: PlaybackSync,
        user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
):
    session = await crud.sync_playback(db, code, user, payload)
    return envelope(
        {
            "current_track": session.current_track,
            "playback_state": session.playback_state,
            "sync_data": session.sync_data,
        },
        message="Playback synced successfully",
    )
