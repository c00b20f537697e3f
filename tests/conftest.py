import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SPOTIFY_CLIENT_ID"] = "test-client-id"
os.environ["SPOTIFY_CLIENT_SECRET"] = "test-client-secret"
os.environ["SPOTIFY_REDIRECT_URI"] = "http://127.0.0.1:8000/callback"
os.environ["APP_SECRET_KEY"] = "test-secret-key-that-is-long-enough-for-hs256"
os.environ["OAUTH_STRICT_STATE"] = "true"

from urllib.parse import parse_qsl

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import NullPool

from barkada.config import get_settings

get_settings.cache_clear()

from barkada import database, spotify_auth  # noqa: E402
from barkada import models  # noqa: E402,F401
from barkada.database import Base, get_db  # noqa: E402
from barkada.main import app  # noqa: E402
from barkada.models import User  # noqa: E402
from barkada.session_store import InMemorySessionStore, get_session_store  # noqa: E402


# ======================================================
# FAKE SPOTIFY
# ======================================================

def track(track_id, name=None, artist="Artist"):
    return {
        "id": track_id,
        "name": name or f"Track {track_id}",
        "uri": f"spotify:track:{track_id}",
        "artists": [{"id": f"ar-{artist}", "name": artist}],
    }


def artist(artist_id, name=None, genres=()):
    return {"id": artist_id, "name": name or artist_id, "genres": list(genres)}


class FakeSpotify:
    """Answers accounts.spotify.com and api.spotify.com from in-memory tables."""

    def __init__(self):
        self.requests = []
        self.codes = {}          # code -> (status, json)
        self.refreshes = {}      # refresh token -> (status, json)
        self.profiles = {}       # access token -> profile json
        self.top_tracks = {}     # access token -> [track]
        self.top_artists = {}    # access token -> [artist]
        self.unreachable = set() # access tokens whose calls raise ConnectError
        self.failing_paths = {}  # path -> status
        self.created_playlists = []
        self.added_tracks = []

    # ----- setup helpers -----

    def add_login(self, code, access_token, refresh_token, profile, expires_in=3600):
        body = {
            "access_token": access_token,
            "token_type": "Bearer",
            "expires_in": expires_in,
        }
        if refresh_token is not None:
            body["refresh_token"] = refresh_token
        self.codes[code] = (200, body)
        self.profiles[access_token] = profile

    def add_user(self, access_token, profile, tracks=(), artists=()):
        self.profiles[access_token] = profile
        self.top_tracks[access_token] = list(tracks)
        self.top_artists[access_token] = list(artists)

    @property
    def token_requests(self):
        return [r for r in self.requests if r.url.path == "/api/token"]

    # ----- transport -----

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.url.host == "accounts.spotify.com" and path == "/api/token":
            form = dict(parse_qsl(request.content.decode()))
            if form.get("grant_type") == "authorization_code":
                status, body = self.codes.get(form.get("code"), (400, {"error": "invalid_grant"}))
            else:
                status, body = self.refreshes.get(
                    form.get("refresh_token"), (400, {"error": "invalid_grant"})
                )
            return httpx.Response(status, json=body)

        token = request.headers.get("Authorization", "")[len("Bearer "):]
        if token in self.unreachable:
            raise httpx.ConnectError("connection refused", request=request)
        if path in self.failing_paths:
            return httpx.Response(self.failing_paths[path], json={"error": {"status": self.failing_paths[path]}})
        if token not in self.profiles:
            return httpx.Response(401, json={"error": {"status": 401, "message": "Invalid access token"}})

        profile = self.profiles[token]
        if path == "/v1/me":
            return httpx.Response(200, json=profile)
        if path == "/v1/me/top/tracks":
            return httpx.Response(200, json={"items": self.top_tracks.get(token, [])})
        if path == "/v1/me/top/artists":
            return httpx.Response(200, json={"items": self.top_artists.get(token, [])})
        if path == "/v1/me/player/recently-played":
            return httpx.Response(200, json={"items": []})
        if path == f"/v1/users/{profile['id']}/playlists" and request.method == "POST":
            playlist = {"id": f"pl-{len(self.created_playlists) + 1}", "owner": {"id": profile["id"]}}
            self.created_playlists.append(playlist)
            return httpx.Response(201, json=playlist)
        if path.startswith("/v1/playlists/") and path.endswith("/tracks") and request.method == "POST":
            self.added_tracks.append(request)
            return httpx.Response(201, json={"snapshot_id": "snap"})
        if path == "/v1/me/playlists":
            return httpx.Response(200, json={"items": [], "total": 0})
        return httpx.Response(404, json={"error": {"status": 404}})


@pytest.fixture
def spotify(monkeypatch):
    fake = FakeSpotify()
    monkeypatch.setattr(spotify_auth, "_transport", httpx.MockTransport(fake.handler))
    return fake


@pytest.fixture
def lenient_state(monkeypatch):
    monkeypatch.setenv("OAUTH_STRICT_STATE", "false")
    get_settings.cache_clear()
    yield
    monkeypatch.setenv("OAUTH_STRICT_STATE", "true")
    get_settings.cache_clear()


# ======================================================
# DATABASE / STORE
# ======================================================

def _engine(path):
    return create_async_engine(f"sqlite+aiosqlite:///{path}", poolclass=NullPool)


@pytest.fixture
async def db(tmp_path):
    engine = _engine(tmp_path / "unit.db")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    maker = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    async with maker() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def store():
    return InMemorySessionStore()


async def count_users(session, spotify_id=None):
    stmt = select(func.count(User.id))
    if spotify_id is not None:
        stmt = stmt.where(User.spotify_id == spotify_id)
    return (await session.execute(stmt)).scalar_one()


# ======================================================
# HTTP
# ======================================================

@pytest.fixture
def api_sessionmaker(tmp_path, monkeypatch):
    engine = _engine(tmp_path / "api.db")
    monkeypatch.setattr(database, "engine", engine)
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
def client(api_sessionmaker, store, spotify):
    async def override_get_db():
        async with api_sessionmaker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_store] = lambda: store

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def login(client, spotify, slot, spotify_id, name=None, access_token=None, refresh_token=None, code=None):
    """Run login + callback for one friend slot through the HTTP API."""
    access_token = access_token or f"AT-{spotify_id}"
    code = code or f"code-{spotify_id}"
    profile = {"id": spotify_id, "display_name": name or spotify_id, "email": f"{spotify_id}@example.com"}
    spotify.add_login(code, access_token, refresh_token or f"RT-{spotify_id}", profile)

    auth = client.get("/v1/auth/login", params={"friend_slot": slot}).json()["data"]
    res = client.post(
        "/v1/auth/callback",
        json={"code": code, "state": auth["state"], "friend_slot": slot},
    )
    assert res.status_code == 200, res.text
    return res.json()["data"]


def bearer(api_token):
    return {"Authorization": f"Bearer {api_token}"}
