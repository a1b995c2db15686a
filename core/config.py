"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for BusTrack happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. jwt_secret -> JWT_SECRET). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Dev mode (DEBUG=true) generates missing
      signing secrets and falls back to a local SQLite database with a warning;
      production mode refuses to start without them.

Security notes:
  Signing secrets shorter than 32 chars are rejected outright, and the access
  and refresh secrets must differ so a token of one kind can never verify as
  the other.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
fleet/, or storage/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("bustrack.config")

_DEV_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'bustrack_dev.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured" in the fields below.
    database_url: str = ""

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    jwt_secret: str = ""
    jwt_refresh_secret: str = ""
    access_token_expire_seconds: int = 15 * 60
    refresh_token_expire_seconds: int = 7 * 24 * 60 * 60
    token_issuer: str = "bustrack-sv"
    token_audience: str = "bustrack-api"
    token_clock_tolerance_seconds: int = 30

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    bcrypt_rounds: int = 10

    # ------------------------------------------------------------------
    # Rate limiting (limits library notation, sliding window per client IP)
    # ------------------------------------------------------------------

    rate_limit_storage_uri: str = "memory://"
    login_rate_limit: str = "5 per 15 minutes"
    register_rate_limit: str = "3 per hour"
    api_rate_limit: str = "100 per 15 minutes"

    # ------------------------------------------------------------------
    # Fleet
    # ------------------------------------------------------------------

    pagination_strategy: Literal["offset", "cursor"] = "offset"

    # ------------------------------------------------------------------
    # Registration and HTTP
    # ------------------------------------------------------------------

    self_registration_enabled: bool = True
    cors_origins: list[str] = ["http://localhost:5173"]
    allowed_hosts: list[str] = ["*"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_production_safety(self) -> "Settings":
        """Enforce secret and database policy.

        Dev mode (DEBUG=true): auto-generate missing signing secrets and use
            a local SQLite file when DATABASE_URL is unset. Tokens will not
            survive a restart -- acceptable for local dev.

        Production mode: refuse to start if either secret or DATABASE_URL is
            missing. Hard-coded fallbacks are never used outside dev mode.
        """
        for name in ("jwt_secret", "jwt_refresh_secret"):
            if getattr(self, name):
                continue
            if not self.debug:
                raise ValueError(
                    f"{name.upper()} is required in production mode. "
                    "Set it in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
            setattr(self, name, secrets.token_hex(32))
            logger.warning("Using auto-generated %s. Tokens will not persist across restarts.", name.upper())

        if len(self.jwt_secret) < 32 or len(self.jwt_refresh_secret) < 32:
            raise ValueError("JWT_SECRET and JWT_REFRESH_SECRET must be at least 32 characters.")
        if self.jwt_secret == self.jwt_refresh_secret:
            raise ValueError("JWT_SECRET and JWT_REFRESH_SECRET must be different.")

        if not self.database_url:
            if not self.debug:
                raise ValueError("DATABASE_URL is required in production mode.")
            self.database_url = _DEV_DB_URL
            logger.warning("DATABASE_URL not set, using local SQLite database at %s", _DEV_DB_URL)

        if not 4 <= self.bcrypt_rounds <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31.")
        if self.access_token_expire_seconds <= 0 or self.refresh_token_expire_seconds <= 0:
            raise ValueError("Token lifetimes must be positive.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    All modules should call get_settings() rather than constructing Settings()
    directly, except tests that need a one-off configuration.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
