# barkada/schemas.py

from typing import Optional, List, Any, Dict
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime


def envelope(data: Any = None, message: Optional[str] = None) -> Dict[str, Any]:
    """Success envelope shared by every JSON endpoint."""
    body: Dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    if message is not None:
        body["message"] = message
    return body


# ================================================
# SPOTIFY PAYLOADS (only the fields we consume)
# ================================================

class SpotifyImage(BaseModel):
    model_config = ConfigDict(extra="allow")

    url: Optional[str] = None


class SpotifyProfile(BaseModel):
    """`GET /v1/me`. Unknown fields are kept and passed through."""
    model_config = ConfigDict(extra="allow")

    id: str
    display_name: Optional[str] = None
    email: Optional[str] = None
    images: List[SpotifyImage] = []
    country: Optional[str] = None
    followers: Optional[Dict[str, Any]] = None

    @property
    def avatar_url(self) -> Optional[str]:
        return self.images[0].url if self.images else None


class TokenResponse(BaseModel):
    """Token endpoint reply for both grant types."""
    model_config = ConfigDict(extra="allow")

    access_token: str
    token_type: Optional[str] = None
    expires_in: int = 3600
    refresh_token: Optional[str] = None
    scope: Optional[str] = None


# ================================================
# USER SCHEMAS
# ================================================

class UserOut(BaseModel):
    """Returned to frontend. Notice: Spotify tokens are NOT included."""
    id: int
    spotify_id: str
    display_name: Optional[str] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# ================================================
# AUTH REQUESTS
# ================================================

class CallbackRequest(BaseModel):
    # all optional so that a missing code reaches the handler as MissingCode
    code: Optional[str] = None
    state: Optional[str] = None
    friend_slot: Optional[str] = None


class RefreshRequest(BaseModel):
    refresh_token: Optional[str] = None
    friend_slot: Optional[str] = None


# ================================================
# BARKADA SESSION SCHEMAS
# ================================================

class SessionCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=500)
    max_participants: Optional[int] = Field(default=None, ge=2, le=50)
    duration_hours: Optional[int] = Field(default=None, ge=1, le=24)


class SessionJoin(BaseModel):
    user_name: str = Field(min_length=1, max_length=255)
    spotify_id: str = Field(min_length=1)


class PlaybackSync(BaseModel):
    current_track: Optional[Dict[str, Any]] = None
    playback_state: Optional[Dict[str, Any]] = None
    position_ms: Optional[int] = None
    is_playing: Optional[bool] = None


class ParticipantOut(BaseModel):
    id: int
    spotify_id: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    joined_at: datetime
    is_active: bool


class SessionOut(BaseModel):
    id: int
    session_code: str
    creator_id: int
    name: str
    description: Optional[str] = None
    is_active: bool
    max_participants: Optional[int] = None
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    participants: List[ParticipantOut] = []


# ================================================
# ANALYTICS / PLAYLISTS
# ================================================

class GroupAnalysisRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_tokens: List[str] = Field(default_factory=list, alias="userTokens")
    session_id: Optional[str] = Field(default=None, alias="sessionId")


class GroupPlaylistCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    access_token: Optional[str] = Field(default=None, alias="accessToken")
    playlist_name: str = Field(default="Barkada Hits", alias="playlistName")
    description: str = ""
    track_uris: List[str] = Field(default_factory=list, alias="trackUris")
