# barkada/config.py

import logging
from functools import lru_cache
from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration read from the environment (and `.env`)."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    spotify_client_id: str = ""
    spotify_client_secret: str = ""
    spotify_redirect_uri: str = "http://127.0.0.1:8000/callback"
    spotify_http_timeout: float = 10.0

    database_url: str = "sqlite+aiosqlite:///./barkada.db"
    sql_echo: bool = False

    app_secret_key: str = "dev-secret-change-me"
    app_token_ttl_days: int = 7

    # Reject callbacks whose state does not match the stored one.
    # Lenient mode only logs the mismatch.
    oauth_strict_state: bool = True

    session_cookie_name: str = "barkada_sid"
    session_cookie_secure: bool = False
    # idle lifetime of a browser session, also the cookie max-age
    session_ttl_hours: int = 24

    # Origin the popup page posts its message to. Empty means the page's own origin.
    popup_target_origin: str = ""

    # comma separated
    cors_origins: str = "*"
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.upper()

    @property
    def cors_origin_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def session_ttl_seconds(self) -> int:
        return self.session_ttl_hours * 3600


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance; call `get_settings.cache_clear()` after changing the environment."""
    return Settings()


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=level or get_settings().log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
