# barkada/routers/playlists.py

import logging

from fastapi import APIRouter, Depends, Query

from .. import spotify_api
from ..auth import get_current_user
from ..errors import MissingInput, UpstreamAuthFailure, UpstreamRequestFailed
from ..schemas import GroupPlaylistCreate, envelope
from .deps import spotify_access_token

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/v1/playlists",
    tags=["playlists"],
    dependencies=[Depends(get_current_user)],
)


@router.get("")
async def list_playlists(
        limit: int = Query(20, ge=1, le=50),
        offset: int = Query(0, ge=0),
        token: str = Depends(spotify_access_token),
):
    return envelope(await spotify_api.get_playlists(token, limit=limit, offset=offset))


@router.post("/create-group")
async def create_group_playlist(payload: GroupPlaylistCreate):
    """Create a private playlist in the given user's account and fill it."""
    if not payload.access_token:
        raise MissingInput("Access token required")

    try:
        me = await spotify_api.get_me(payload.access_token)
    except UpstreamRequestFailed as exc:
        raise UpstreamAuthFailure("Failed to get user info", upstream_status=exc.status_code) from exc

    try:
        playlist = await spotify_api.create_playlist(
            payload.access_token,
            me["id"],
            payload.playlist_name,
            payload.description,
            public=False,
        )
    except UpstreamRequestFailed as exc:
        raise UpstreamAuthFailure("Failed to create playlist", upstream_status=exc.status_code) from exc

    if payload.track_uris:
        try:
            await spotify_api.add_tracks_to_playlist(
                payload.access_token, playlist["id"], payload.track_uris
            )
        except UpstreamRequestFailed as exc:
            # the playlist exists; report it even if filling it failed
            logger.warning("Failed to add tracks to playlist %s: %s", playlist["id"], exc)

    return envelope(playlist)


@router.get("/{playlist_id}")
async def playlist_details(playlist_id: str, token: str = Depends(spotify_access_token)):
    return envelope(await spotify_api.get_playlist(token, playlist_id))


@router.get("/{playlist_id}/tracks")
async def playlist_tracks(
        playlist_id: str,
        limit: int = Query(50, ge=1, le=100),
        offset: int = Query(0, ge=0),
        token: str = Depends(spotify_access_token),
):
    data = await spotify_api.get_playlist_tracks(token, playlist_id, limit=limit, offset=offset)
    return envelope(data)
