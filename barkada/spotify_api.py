'''
Client layer for Spotify Web API resource calls.
 - Every call needs a user's bearer token.
 - Non-2xx replies raise UpstreamRequestFailed carrying Spotify's status.
 - Network failures raise UpstreamUnavailable.
'''

import logging
from typing import Any, Dict, List, Optional

import httpx

from . import spotify_auth
from .errors import UpstreamRequestFailed, UpstreamUnavailable

logger = logging.getLogger(__name__)


def _to_url(path_or_url: str) -> str:
    if path_or_url.startswith("http"):
        return path_or_url
    return f"{spotify_auth.API_BASE_URL}/{path_or_url.lstrip('/')}"


async def sp_request(
        method: str,
        access_token: str,
        path_or_url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        failure_message: str = "Spotify request failed",
) -> Any:
    headers = {"Authorization": f"Bearer {access_token}"}
    params = {k: v for k, v in (params or {}).items() if v is not None}

    try:
        async with spotify_auth.http_client() as client:
            res = await client.request(
                method, _to_url(path_or_url), headers=headers, params=params, json=json
            )
    except httpx.RequestError as exc:
        logger.error("Spotify %s %s failed: %s", method, path_or_url, exc)
        raise UpstreamUnavailable() from exc

    if not res.is_success:
        logger.warning(
            "Spotify %s %s answered %s: %s", method, path_or_url, res.status_code, res.text
        )
        raise UpstreamRequestFailed(failure_message, upstream_status=res.status_code)

    if not res.content:
        return None
    return res.json()


async def sp_get(access_token: str, path_or_url: str, *, params=None, failure_message="Spotify request failed"):
    return await sp_request(
        "GET", access_token, path_or_url, params=params, failure_message=failure_message
    )


# ----------------------------------------------------------
# PROFILE & TOP ITEMS
# ----------------------------------------------------------

async def get_me(access_token: str) -> Dict[str, Any]:
    return await sp_get(access_token, "me", failure_message="Failed to fetch user profile")


async def get_top_tracks(access_token: str, limit: int = 20, time_range: str = "medium_term"):
    return await sp_get(
        access_token,
        "me/top/tracks",
        params={"limit": limit, "time_range": time_range},
        failure_message="Failed to fetch top tracks",
    )


async def get_top_artists(access_token: str, limit: int = 20, time_range: str = "medium_term"):
    return await sp_get(
        access_token,
        "me/top/artists",
        params={"limit": limit, "time_range": time_range},
        failure_message="Failed to fetch top artists",
    )


async def get_recently_played(access_token: str, limit: int = 20, after=None, before=None):
    return await sp_get(
        access_token,
        "me/player/recently-played",
        params={"limit": limit, "after": after, "before": before},
        failure_message="Failed to fetch recently played tracks",
    )


async def get_saved_tracks(access_token: str, limit: int = 20, offset: int = 0):
    return await sp_get(
        access_token,
        "me/tracks",
        params={"limit": limit, "offset": offset},
        failure_message="Failed to fetch saved tracks",
    )


async def get_following(access_token: str, limit: int = 20, after=None):
    return await sp_get(
        access_token,
        "me/following",
        params={"type": "artist", "limit": limit, "after": after},
        failure_message="Failed to fetch following",
    )


# ----------------------------------------------------------
# PLAYLISTS
# ----------------------------------------------------------

async def get_playlists(access_token: str, limit: int = 20, offset: int = 0):
    return await sp_get(
        access_token,
        "me/playlists",
        params={"limit": limit, "offset": offset},
        failure_message="Failed to fetch playlists",
    )


async def get_playlist(access_token: str, playlist_id: str):
    return await sp_get(
        access_token, f"playlists/{playlist_id}", failure_message="Failed to fetch playlist details"
    )


async def get_playlist_tracks(access_token: str, playlist_id: str, limit: int = 50, offset: int = 0):
    return await sp_get(
        access_token,
        f"playlists/{playlist_id}/tracks",
        params={"limit": limit, "offset": offset},
        failure_message="Failed to fetch playlist tracks",
    )


async def create_playlist(access_token: str, user_id: str, name: str, description: str = "", public: bool = False):
    return await sp_request(
        "POST",
        access_token,
        f"users/{user_id}/playlists",
        json={"name": name, "description": description, "public": public},
        failure_message="Failed to create playlist",
    )


async def add_tracks_to_playlist(access_token: str, playlist_id: str, uris: List[str]):
    # Spotify accepts at most 100 uris per request
    result = None
    for start in range(0, len(uris), 100):
        result = await sp_request(
            "POST",
            access_token,
            f"playlists/{playlist_id}/tracks",
            json={"uris": uris[start:start + 100]},
            failure_message="Failed to add tracks to playlist",
        )
    return result
