import pytest

from barkada.config import Settings, get_settings


@pytest.fixture
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_reads_typed_values_from_environment(monkeypatch, fresh_settings):
    monkeypatch.setenv("OAUTH_STRICT_STATE", "0")
    monkeypatch.setenv("SESSION_COOKIE_SECURE", "yes")
    monkeypatch.setenv("SPOTIFY_HTTP_TIMEOUT", "2.5")
    monkeypatch.setenv("SESSION_TTL_HOURS", "2")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = get_settings()

    assert settings.oauth_strict_state is False
    assert settings.session_cookie_secure is True
    assert settings.spotify_http_timeout == 2.5
    assert settings.session_ttl_seconds == 7200
    assert settings.log_level == "DEBUG"


def test_cors_origins_are_comma_separated(monkeypatch, fresh_settings):
    monkeypatch.setenv("CORS_ORIGINS", "http://localhost:3000, https://barkada.app,")

    assert get_settings().cors_origin_list == ["http://localhost:3000", "https://barkada.app"]


def test_invalid_number_is_rejected(monkeypatch):
    monkeypatch.setenv("APP_TOKEN_TTL_DAYS", "a week")

    with pytest.raises(ValueError):
        Settings()


def test_settings_are_cached(fresh_settings):
    assert get_settings() is get_settings()
