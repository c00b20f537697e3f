import asyncio
import logging
from collections import Counter
from datetime import datetime, timezone
from typing import List, Dict, Any, Optional

from . import spotify_api

logger = logging.getLogger(__name__)

MAX_CONCURRENT_USERS = 6
TOP_ITEMS_LIMIT = 20
SHARED_PER_USER = 5
PLAYLIST_PER_USER = 5
PLAYLIST_MAX_LENGTH = 30


# ---------------------------
# Public entry point
# ---------------------------

async def analyze_group(
        tokens: List[str],
        session_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Fetch every user's listening data in parallel and compare it.

    A user whose fetch fails in any way is left out; the analysis itself
    never fails because of one bad token.
    """
    semaphore = asyncio.Semaphore(MAX_CONCURRENT_USERS)

    async def bounded(index: int, token: str):
        async with semaphore:
            return await fetch_user_data(index, token)

    results = await asyncio.gather(
        *(bounded(i, t) for i, t in enumerate(tokens))
    )
    users = [r for r in results if r is not None]

    logger.info("Barkada analysis: %d of %d users fetched", len(users), len(tokens))
    return build_analysis(users, session_id)


async def fetch_user_data(index: int, token: str) -> Optional[Dict[str, Any]]:
    try:
        top_tracks, top_artists, profile = await asyncio.gather(
            spotify_api.get_top_tracks(token, limit=TOP_ITEMS_LIMIT),
            spotify_api.get_top_artists(token, limit=TOP_ITEMS_LIMIT),
            spotify_api.get_me(token),
        )
    except Exception as exc:
        logger.warning("Failed to fetch data for user token #%d: %s", index, exc)
        return None

    return {
        "user": profile,
        "top_tracks": top_tracks or {"items": []},
        "top_artists": top_artists or {"items": []},
    }


def build_analysis(users: List[Dict[str, Any]], session_id: Optional[str] = None) -> Dict[str, Any]:
    shared = []
    artists = []
    genres = []

    if len(users) >= 2:
        shared = find_shared_tracks(users)
        artists = find_common_artists(users)
        genres = find_common_genres(users)

    return {
        "users": users,
        "shared_tracks": shared,
        "common_artists": artists,
        "recommended_playlist": recommend_playlist(users, shared) if len(users) >= 2 else [],
        "compatibility_score": compatibility_score(len(users), len(shared), len(artists)),
        "insights": generate_insights(users, shared, artists),
        "session_id": session_id,
        "analyzed_at": datetime.now(timezone.utc).isoformat(),
        "summary": {
            "total_users": len(users),
            "shared_tracks_count": len(shared),
            "common_genres": genres,
        },
    }


# ---------------------------
# Overlap
# ---------------------------

def _items(user: Dict[str, Any], kind: str) -> List[Dict[str, Any]]:
    return (user.get(kind) or {}).get("items") or []


def find_shared_tracks(users: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Pivot on the first user's top tracks; for each user keep up to five pivot
    tracks they also have, then drop structural duplicates.
    """
    if not users:
        return []

    pivot = _items(users[0], "top_tracks")
    combined = []

    for user in users:
        ids = {t.get("id") for t in _items(user, "top_tracks")}
        matches = [t for t in pivot if t.get("id") in ids]
        combined.extend(matches[:SHARED_PER_USER])

    unique = []
    for track in combined:
        if track not in unique:
            unique.append(track)
    return unique


def find_common_artists(users: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Artists appearing in the top artists of at least two users."""
    counts = Counter()
    first_seen = {}

    for user in users:
        seen_here = set()
        for artist in _items(user, "top_artists"):
            artist_id = artist.get("id")
            if not artist_id or artist_id in seen_here:
                continue
            seen_here.add(artist_id)
            counts[artist_id] += 1
            first_seen.setdefault(artist_id, artist)

    return [
        {**first_seen[artist_id], "listeners": n}
        for artist_id, n in counts.most_common()
        if n >= 2
    ]


def find_common_genres(users: List[Dict[str, Any]], limit: int = 10) -> List[str]:
    counts = Counter()
    for user in users:
        user_genres = {
            g.lower()
            for artist in _items(user, "top_artists")
            for g in artist.get("genres") or []
        }
        counts.update(user_genres)
    return [g for g, n in counts.most_common() if n >= 2][:limit]


# ---------------------------
# Presentation helpers
# ---------------------------

def compatibility_score(user_count: int, shared_tracks: int, common_artists: int) -> int:
    """Monotonic in both overlap counts, capped at 100."""
    if user_count < 2:
        return 0
    return min(100, 40 + 12 * shared_tracks + 6 * common_artists)


def recommend_playlist(users: List[Dict[str, Any]], shared: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    playlist = list(shared)
    seen = {t.get("id") for t in playlist}

    for user in users:
        added = 0
        for track in _items(user, "top_tracks"):
            if added >= PLAYLIST_PER_USER:
                break
            if track.get("id") in seen:
                continue
            seen.add(track.get("id"))
            playlist.append(track)
            added += 1

    return playlist[:PLAYLIST_MAX_LENGTH]


def _name(user: Dict[str, Any]) -> str:
    profile = user.get("user") or {}
    return profile.get("display_name") or profile.get("id") or "Someone"


def generate_insights(users, shared, artists) -> List[str]:
    if len(users) < 2:
        return []

    insights = []
    if len(users) == 2:
        insights.append(
            f"{_name(users[0])} and {_name(users[1])} have {len(shared)} songs in common!"
        )
    else:
        insights.append(f"Your group of {len(users)} shares {len(shared)} songs!")

    if artists:
        insights.append(f"Your group loves {artists[0].get('name', 'the same artists')}!")
    else:
        insights.append("Your group has wonderfully diverse taste!")
    return insights
