"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Credgate happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() once at
the composition root (api/main.py lifespan, main.py) and pass the Settings
object into the components that need it.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  Immutable value object: Settings is frozen. The signing key, TTLs and
      password policy are fixed for the process lifetime; rotating the key
      means restarting the process (which invalidates every issued token --
      there is no revocation list to keep in sync).

  @model_validator(mode="before"): fills in a dev-only SECRET_KEY before the
      model is frozen. The "after" validator then enforces the invariants
      that must hold in every mode.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. JWT signing relies on
  key entropy -- a short key weakens every session token.

  In production (DEBUG not set or false), a missing SECRET_KEY is a hard
  startup failure.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("credgate.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'credgate_users.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. Field names map to upper-cased
    env var names (e.g. `token_expire_seconds` reads TOKEN_EXPIRE_SECONDS).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    environment: Literal["development", "production"] = "development"
    debug: bool = False
    # Empty string is the sentinel for "not configured". The validators
    # below either generate a dev key or raise, so callers never see "".
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    token_expire_seconds: int = 30 * 24 * 60 * 60
    cookie_expire_days: int = 30

    # ------------------------------------------------------------------
    # Password policy
    # ------------------------------------------------------------------

    password_min_length: int = 5
    password_max_length: int = 12
    bcrypt_rounds: int = 12

    # ------------------------------------------------------------------
    # Password reset + outbound mail
    # ------------------------------------------------------------------

    reset_token_expire_minutes: int = 10
    # Empty host means "no SMTP relay configured"; build_mailer() falls back
    # to the logging mailer, which is only allowed in debug mode.
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    from_email: str = "noreply@credgate.local"
    from_name: str = "Credgate"
    email_timeout_seconds: float = 10.0

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    auth_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Host handling
    # ------------------------------------------------------------------

    # Host headers accepted by TrustedHostMiddleware. ALLOWED_HOSTS is a JSON
    # list, e.g. '["auth.example.com"]'.
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    # Scheme and host the mailed reset link points at. Empty means "the host
    # the request came in on", which TrustedHostMiddleware has already vetted.
    public_base_url: str = ""

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="before")
    @classmethod
    def fill_dev_secret_key(cls, data: Any) -> Any:
        """Generate a throwaway SECRET_KEY in debug mode.

        Tokens signed with a generated key do not survive a restart --
        acceptable for local development, never for production.
        """
        if not isinstance(data, dict):
            return data
        debug = str(data.get("debug", "")).strip().lower() in ("1", "true", "yes", "on")
        if not data.get("secret_key") and debug:
            data = {**data, "secret_key": secrets.token_hex(32)}
            logger.warning("WARNING: Using auto-generated SECRET_KEY. Sessions will not persist across restarts.")
        return data

    @model_validator(mode="after")
    def validate_settings(self) -> "Settings":
        """Enforce SECRET_KEY and password policy invariants."""
        if not self.secret_key:
            raise ValueError(
                "SECRET_KEY is required in production mode. "
                "Set SECRET_KEY in your environment or .env file. "
                "To run in development mode, set DEBUG=true."
            )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if self.password_min_length < 1 or self.password_min_length > self.password_max_length:
            raise ValueError("PASSWORD_MIN_LENGTH must be between 1 and PASSWORD_MAX_LENGTH.")
        # bcrypt hashes at most 72 bytes; refuse a policy that allows more.
        if self.password_max_length > 72:
            raise ValueError("PASSWORD_MAX_LENGTH must not exceed 72 (bcrypt input limit).")
        if not 4 <= self.bcrypt_rounds <= 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31.")
        if self.token_expire_seconds <= 0 or self.reset_token_expire_minutes <= 0:
            raise ValueError("Token lifetimes must be positive.")
        if not self.allowed_hosts:
            raise ValueError("ALLOWED_HOSTS must list at least one host.")
        if self.public_base_url and not self.public_base_url.startswith(("http://", "https://")):
            raise ValueError("PUBLIC_BASE_URL must start with http:// or https://.")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    Call this at the composition root only and hand the result to the
    components that need it.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
