# barkada/routers/analytics.py

import asyncio
import logging

from fastapi import APIRouter, Depends, Query

from .. import spotify_api
from ..aggregator import analyze_group
from ..auth import get_current_user
from ..errors import MissingInput
from ..schemas import GroupAnalysisRequest, envelope
from .deps import spotify_access_token

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/v1/analytics",
    tags=["analytics"],
    dependencies=[Depends(get_current_user)],
)


@router.get("/listening-habits")
async def listening_habits(
        time_range: str = Query("medium_term", pattern="^(short|medium|long)_term$"),
        token: str = Depends(spotify_access_token),
):
    """Top tracks, top artists and recent plays; a failed part comes back null."""
    results = await asyncio.gather(
        spotify_api.get_top_tracks(token, limit=50, time_range=time_range),
        spotify_api.get_top_artists(token, limit=50, time_range=time_range),
        spotify_api.get_recently_played(token, limit=50),
        return_exceptions=True,
    )
    names = ("top_tracks", "top_artists", "recently_played")

    data = {}
    for name, result in zip(names, results):
        if isinstance(result, Exception):
            logger.warning("Listening habits: %s unavailable: %s", name, result)
            result = None
        data[name] = result
    return envelope(data)


@router.post("/barkada")
async def analyze_barkada(payload: GroupAnalysisRequest):
    if not payload.user_tokens:
        raise MissingInput("No user tokens provided")

    result = await analyze_group(payload.user_tokens, payload.session_id)
    return envelope(result)
