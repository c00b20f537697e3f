# barkada/routers/user.py

from typing import Optional

from fastapi import APIRouter, Depends, Query

from .. import spotify_api
from ..auth import get_current_user
from ..schemas import envelope
from .deps import spotify_access_token

router = APIRouter(
    prefix="/v1/user",
    tags=["user"],
    dependencies=[Depends(get_current_user)],
)


@router.get("/profile")
async def get_profile(token: str = Depends(spotify_access_token)):
    return envelope(await spotify_api.get_me(token))


@router.get("/top-tracks")
async def get_top_tracks(
        limit: int = Query(20, ge=1, le=50),
        time_range: str = Query("medium_term", pattern="^(short|medium|long)_term$"),
        token: str = Depends(spotify_access_token),
):
    return envelope(await spotify_api.get_top_tracks(token, limit=limit, time_range=time_range))


@router.get("/top-artists")
async def get_top_artists(
        limit: int = Query(20, ge=1, le=50),
        time_range: str = Query("medium_term", pattern="^(short|medium|long)_term$"),
        token: str = Depends(spotify_access_token),
):
    return envelope(await spotify_api.get_top_artists(token, limit=limit, time_range=time_range))


@router.get("/recently-played")
async def get_recently_played(
        limit: int = Query(20, ge=1, le=50),
        after: Optional[int] = None,
        before: Optional[int] = None,
        token: str = Depends(spotify_access_token),
):
    data = await spotify_api.get_recently_played(token, limit=limit, after=after, before=before)
    return envelope(data)


@router.get("/saved-tracks")
async def get_saved_tracks(
        limit: int = Query(20, ge=1, le=50),
        offset: int = Query(0, ge=0),
        token: str = Depends(spotify_access_token),
):
    return envelope(await spotify_api.get_saved_tracks(token, limit=limit, offset=offset))


@router.get("/following")
async def get_following(
        limit: int = Query(20, ge=1, le=50),
        after: Optional[str] = None,
        token: str = Depends(spotify_access_token),
):
    return envelope(await spotify_api.get_following(token, limit=limit, after=after))
