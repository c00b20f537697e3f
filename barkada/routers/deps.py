from typing import Optional

from fastapi import Depends

from .. import oauth
from ..errors import Unauthorized
from ..session_store import SessionStore, get_session_store, get_browser_session


async def spotify_access_token(
        friend_slot: Optional[str] = None,
        store: SessionStore = Depends(get_session_store),
        sid: str = Depends(get_browser_session),
) -> str:
    """Spotify token of this browser session (or of one friend slot)."""
    token = await oauth.get_session_access_token(store, sid, friend_slot)
    if not token:
        raise Unauthorized()
    return token
