"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for HerdCare happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() at the
application edge and pass the Settings object down.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  Explicit injection: only api/main.py and the rate-limit providers in
      api/limiter.py call get_settings(). AuthService and the request gate
      receive the Settings instance (or the one secret they need) as an
      argument, so business logic never does an ambient lookup.

  @model_validator(mode="after"): cross-field validation of the two signing
      secrets after all fields are resolved from the environment.

Security notes:
  [S1] ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET are both mandatory. A
       missing secret is a startup failure, not a per-request error.
  [S2] Each secret must be at least 32 characters (HS256 key entropy).
  [S3] The two secrets must differ, so a leaked access-token secret cannot be
       used to mint refresh tokens.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("herdcare.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'herdcare.db'}"

_MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Field names map to upper-cased env vars: access_token_secret reads from
    ACCESS_TOKEN_SECRET, database_url from DATABASE_URL, and so on.
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
    database_url: str = _DEFAULT_DB_URL
    # Upper bound for a single persistence call (SQLite busy timeout and
    # connection-pool checkout). Exceeding it surfaces StorageUnavailable.
    storage_timeout_seconds: float = 5.0

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured"; the validator below
    # refuses to start in that case.
    access_token_secret: str = ""
    refresh_token_secret: str = ""
    access_token_expire_seconds: int = 15 * 60
    refresh_token_expire_seconds: int = 7 * 24 * 60 * 60

    # ------------------------------------------------------------------
    # Passwords and cookies
    # ------------------------------------------------------------------

    password_hash_rounds: int = 12
    secure_cookies: bool = False

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    cors_origins: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]
    allowed_hosts: list[str] = ["*"]
    login_rate_limit: str = "10/minute"
    register_rate_limit: str = "5/minute"

    # ------------------------------------------------------------------
    # Background maintenance
    # ------------------------------------------------------------------

    session_purge_interval_seconds: int = 60 * 60

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_token_secrets(self) -> "Settings":
        """Enforce the signing-secret policy [S1][S2][S3].

        Unlike a single session key, there is no safe auto-generated fallback
        here: a random refresh secret would silently invalidate every stored
        session on restart. Both secrets must come from the environment.
        """
        for name in ("access_token_secret", "refresh_token_secret"):
            value = getattr(self, name)
            if not value:
                raise ValueError(
                    f"{name.upper()} is required. "
                    "Set it in your environment or .env file before starting HerdCare."
                )
            if len(value) < _MIN_SECRET_LENGTH:
                raise ValueError(f"{name.upper()} must be at least {_MIN_SECRET_LENGTH} characters.")
        if self.access_token_secret == self.refresh_token_secret:
            raise ValueError("ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET must be different.")
        if self.access_token_expire_seconds <= 0 or self.refresh_token_expire_seconds <= 0:
            raise ValueError("Token lifetimes must be positive.")
        if self.debug:
            logger.warning("DEBUG mode enabled -- do not run this configuration in production.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables, or construct Settings(...)
    directly and pass it where it is needed.
    """
    return Settings()
