import logging
from typing import Optional
from urllib.parse import urlencode

import httpx

from .config import get_settings
from .errors import (
    TokenExchangeFailed,
    RefreshFailed,
    ProfileFetchFailed,
    UpstreamUnavailable,
)
from .schemas import SpotifyProfile, TokenResponse

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://accounts.spotify.com/authorize"
TOKEN_URL = "https://accounts.spotify.com/api/token"
API_BASE_URL = "https://api.spotify.com/v1"

SCOPES = [
    "user-read-private",
    "user-read-email",
    "user-top-read",
    "user-read-recently-played",
    "user-library-read",
    "user-follow-read",
    "playlist-read-private",
    "playlist-read-collaborative",
    "playlist-modify-public",
    "playlist-modify-private",
    "user-read-playback-state",
    "user-modify-playback-state",
    "streaming",
]

# Tests swap this for an httpx.MockTransport.
_transport: Optional[httpx.AsyncBaseTransport] = None


def http_client() -> httpx.AsyncClient:
    """Every outbound Spotify call goes through a client built here."""
    return httpx.AsyncClient(
        timeout=get_settings().spotify_http_timeout,
        transport=_transport,
    )


# ----------------------------------------------------------
# STEP 1: Build Spotify Authorization URL
# ----------------------------------------------------------

def build_auth_url(state: str) -> str:
    settings = get_settings()
    params = {
        "response_type": "code",
        "client_id": settings.spotify_client_id,
        "scope": " ".join(SCOPES),
        "redirect_uri": settings.spotify_redirect_uri,
        "state": state,
        "show_dialog": "true",
    }
    return f"{AUTHORIZE_URL}?{urlencode(params)}"


# ----------------------------------------------------------
# STEP 2: Exchange Authorization Code for Access Token
# ----------------------------------------------------------

async def exchange_code_for_token(code: str) -> TokenResponse:
    settings = get_settings()
    data = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": settings.spotify_redirect_uri,
        "client_id": settings.spotify_client_id,
        "client_secret": settings.spotify_client_secret,
    }

    res = await _post_token(data)
    if not res.is_success:
        logger.error(
            "Token exchange failed: status=%s body=%s", res.status_code, res.text
        )
        raise TokenExchangeFailed(
            upstream_status=res.status_code, details=_safe_json(res)
        )
    return TokenResponse.model_validate(res.json())


# ----------------------------------------------------------
# STEP 3: Refresh token
# ----------------------------------------------------------

async def refresh_access_token(refresh_token: str) -> TokenResponse:
    settings = get_settings()
    data = {
        "grant_type": "refresh_token",
        "refresh_token": refresh_token,
        "client_id": settings.spotify_client_id,
        "client_secret": settings.spotify_client_secret,
    }

    res = await _post_token(data)
    if not res.is_success:
        logger.error("Token refresh failed: status=%s body=%s", res.status_code, res.text)
        raise RefreshFailed(upstream_status=res.status_code, details=_safe_json(res))
    return TokenResponse.model_validate(res.json())


# ----------------------------------------------------------
# STEP 4: Get Spotify Profile using Access Token
# ----------------------------------------------------------

async def get_user_profile(access_token: str) -> SpotifyProfile:
    headers = {"Authorization": f"Bearer {access_token}"}

    try:
        async with http_client() as client:
            res = await client.get(f"{API_BASE_URL}/me", headers=headers)
    except httpx.RequestError as exc:
        logger.error("Spotify profile request failed: %s", exc)
        raise UpstreamUnavailable() from exc

    if not res.is_success:
        logger.error(
            "User profile fetch failed: status=%s body=%s", res.status_code, res.text
        )
        raise ProfileFetchFailed(upstream_status=res.status_code, details=_safe_json(res))
    return SpotifyProfile.model_validate(res.json())


async def _post_token(data: dict) -> httpx.Response:
    headers = {"Content-Type": "application/x-www-form-urlencoded"}
    try:
        async with http_client() as client:
            return await client.post(TOKEN_URL, headers=headers, data=data)
    except httpx.RequestError as exc:
        logger.error("Spotify token endpoint unreachable: %s", exc)
        raise UpstreamUnavailable() from exc


def _safe_json(res: httpx.Response):
    try:
        return res.json()
    except ValueError:
        return res.text or None
