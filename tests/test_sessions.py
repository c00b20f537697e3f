from datetime import timedelta

import pytest

from barkada import crud
from barkada.errors import Forbidden, NotFound
from barkada.models import BarkadaSession, User, utcnow
from barkada.schemas import SessionCreate, PlaybackSync, SpotifyProfile


async def make_user(db, spotify_id, name=None):
    profile = SpotifyProfile(id=spotify_id, display_name=name or spotify_id)
    return await crud.upsert_user_from_profile(db, profile)


async def make_session(db, creator, **kwargs):
    return await crud.create_session(db, creator, SessionCreate(name="Road trip", **kwargs))


# ======================================================
# CODES
# ======================================================

def test_generated_code_shape():
    code = crud.generate_session_code()
    assert len(code) == 6
    assert all(c in crud.SESSION_CODE_ALPHABET for c in code)


async def test_unique_codes_skip_existing(db, monkeypatch):
    creator = await make_user(db, "host")
    for code in ("AAAAAA", "BBBBBB"):
        db.add(BarkadaSession(session_code=code, creator_id=creator.id, name="seed", is_active=True))
    await db.commit()

    candidates = iter(["AAAAAA", "BBBBBB", "AAAAAA", "CCCCCC"])
    monkeypatch.setattr(crud, "generate_session_code", lambda length=6: next(candidates))

    assert await crud.generate_unique_session_code(db) == "CCCCCC"


async def test_hundred_sessions_get_distinct_codes(db):
    creator = await make_user(db, "host")
    codes = set()
    for _ in range(100):
        session = await make_session(db, creator)
        codes.add(session.session_code)
    assert len(codes) == 100


# ======================================================
# CREATE / JOIN
# ======================================================

async def test_creator_is_first_participant(db):
    creator = await make_user(db, "host", "Host")
    session = await make_session(db, creator, duration_hours=2, max_participants=4)

    participants = await crud.get_active_participants(db, session.id)
    assert [u.spotify_id for u, _ in participants] == ["host"]
    assert session.expires_at > utcnow() + timedelta(hours=1, minutes=59)


async def test_join_respects_capacity(db):
    creator = await make_user(db, "host")
    session = await make_session(db, creator, max_participants=2)

    await crud.join_session(db, session.session_code, "Ben", "ben")
    with pytest.raises(Forbidden):
        await crud.join_session(db, session.session_code, "Cat", "cat")

    assert await crud.count_active_participants(db, session.id) == 2
    assert await crud.get_user_by_spotify_id(db, "cat") is None


async def test_rejoin_is_a_no_op_for_active_participant(db):
    creator = await make_user(db, "host")
    session = await make_session(db, creator, max_participants=2)
    await crud.join_session(db, session.session_code, "Ben", "ben")

    # full, but Ben is already in
    await crud.join_session(db, session.session_code, "Ben", "ben")
    assert await crud.count_active_participants(db, session.id) == 2


async def test_join_creates_unknown_user(db):
    creator = await make_user(db, "host")
    session = await make_session(db, creator)

    await crud.join_session(db, session.session_code, "Dee", "dee")

    user = await crud.get_user_by_spotify_id(db, "dee")
    assert user.display_name == "Dee"
    assert await crud.get_membership(db, session.id, user.id) is not None


async def test_join_unknown_code(db):
    with pytest.raises(NotFound):
        await crud.join_session(db, "NOPE00", "Ann", "ann")


async def test_expired_session_is_not_found(db):
    creator = await make_user(db, "host")
    session = await make_session(db, creator)
    session.expires_at = utcnow() - timedelta(minutes=1)
    await db.commit()

    assert await crud.get_active_session(db, session.session_code) is None
    with pytest.raises(NotFound):
        await crud.join_session(db, session.session_code, "Ben", "ben")


# ======================================================
# LEAVE / END / SYNC
# ======================================================

async def test_leave_is_soft_and_rejoin_reactivates(db):
    creator = await make_user(db, "host")
    ben = await make_user(db, "ben")
    session = await make_session(db, creator)
    await crud.join_session(db, session.session_code, "Ben", "ben")

    await crud.leave_session(db, session.session_code, ben)

    membership = await crud.get_membership(db, session.id, ben.id)
    assert membership is not None
    assert membership.is_active is False
    assert await crud.count_active_participants(db, session.id) == 1

    await crud.join_session(db, session.session_code, "Ben", "ben")
    await db.refresh(membership)
    assert membership.is_active is True


async def test_leave_when_not_participant(db):
    creator = await make_user(db, "host")
    stranger = await make_user(db, "stranger")
    session = await make_session(db, creator)

    with pytest.raises(NotFound):
        await crud.leave_session(db, session.session_code, stranger)


async def test_only_creator_can_end(db):
    creator = await make_user(db, "host")
    ben = await make_user(db, "ben")
    session = await make_session(db, creator)
    await crud.join_session(db, session.session_code, "Ben", "ben")

    with pytest.raises(Forbidden):
        await crud.end_session(db, session.session_code, ben)

    ended = await crud.end_session(db, session.session_code, creator)

    assert ended.is_active is False
    assert await crud.count_active_participants(db, session.id) == 0
    assert await crud.get_active_session(db, session.session_code) is None


async def test_sync_records_who_and_where(db):
    creator = await make_user(db, "host")
    session = await make_session(db, creator)

    synced = await crud.sync_playback(
        db, session.session_code, creator,
        PlaybackSync(current_track={"id": "t1"}, position_ms=42000, is_playing=True),
    )

    assert synced.current_track == {"id": "t1"}
    assert synced.sync_data["updated_by"] == creator.id
    assert synced.sync_data["position_ms"] == 42000
    assert synced.sync_data["is_playing"] is True


async def test_sync_requires_membership(db):
    creator = await make_user(db, "host")
    stranger = await make_user(db, "stranger")
    session = await make_session(db, creator)

    with pytest.raises(NotFound):
        await crud.sync_playback(db, session.session_code, stranger, PlaybackSync())


async def test_upsert_updates_existing_row(db):
    first = await make_user(db, "u1", "Ann")
    second = await crud.upsert_user_from_profile(
        db, SpotifyProfile(id="u1", display_name="Ann B.", images=[{"url": "http://img"}])
    )

    assert first.id == second.id
    assert second.display_name == "Ann B."
    assert second.avatar_url == "http://img"
    assert isinstance(second, User)
