"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for HonestInvoice auth happen here. No module
should call os.getenv() or os.environ.get() directly -- import get_settings()
instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Dev mode generates a key with a warning,
      production mode refuses to start without one.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. Session tokens are
  HS256-signed with it; a short key weakens every issued session.

  In production mode (DEBUG not set or false), a missing SECRET_KEY is a hard
  startup failure. A random per-process key would silently invalidate every
  persisted session on restart.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
billing/, ratelimit/, or storage/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("honestinvoice.config")

_PROJECT_ROOT = Path(__file__).resolve().parent.parent


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
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""

    # ------------------------------------------------------------------
    # Identity provider (Google Identity Services)
    # ------------------------------------------------------------------

    # Empty client id means no assertion can ever pass the audience check.
    google_client_id: str = ""
    identity_tokeninfo_url: str = "https://oauth2.googleapis.com/tokeninfo"
    identity_issuers: list[str] = ["accounts.google.com", "https://accounts.google.com"]

    # Base URL of the verification boundary service (api/), used by
    # auth.client.HttpVerifierClient.
    verification_base_url: str = "http://localhost:8000"

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    session_ttl_seconds: int = 24 * 60 * 60
    refresh_threshold_seconds: int = 60 * 60
    idle_timeout_seconds: int = 30 * 60
    idle_poll_seconds: int = 60

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    auth_attempts_per_hour: int = 5
    invoice_creation_per_hour: int = 20
    payment_attempts_per_hour: int = 3
    api_calls_per_minute: int = 60
    # False = fail open on storage errors (availability over strict throttling).
    rate_limit_fail_closed: bool = False
    # Server-side limit on the verification endpoint (slowapi syntax).
    verify_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    backend_db_url: str = f"sqlite:///{_PROJECT_ROOT / 'auth' / 'honestinvoice_auth.db'}"
    local_store_path: str = str(_PROJECT_ROOT / "storage" / "honestinvoice_local.db")

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Persisted sessions will not survive restart -- acceptable for dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. " "Sessions will not persist across restarts."
                )
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    All modules should call get_settings() rather than constructing Settings()
    directly, except tests that need a one-off override.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
