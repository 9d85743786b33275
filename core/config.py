"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Notebox happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  Explicit wiring: services (TokenService, TOTPService, OAuthBroker) never call
      get_settings() themselves. The application lifespan reads Settings once
      and passes the values each service needs into its constructor, so there
      is no package-level signing-key state to mutate or leak between tests.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Dev mode generates a SECRET_KEY with a
      warning, production mode refuses to start without one.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. JWT signing relies on
  key entropy -- a short key weakens every session token.

  secure_cookies defaults to False so the UI works over plain HTTP in local
  development. Production deployments behind TLS must set SECURE_COOKIES=true.

Layer rule: core/ is the kernel. This module may not import from api/, web/,
auth/, notes/, or files/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("notebox.config")


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
    app_name: str = "Notebox"
    version: str = "0.1.0"
    log_level: str = "INFO"
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    database_url: str = "sqlite:///notebox.db"

    # ------------------------------------------------------------------
    # Server
    # ------------------------------------------------------------------

    host: str = "127.0.0.1"
    port: int = 8000
    allowed_hosts: list[str] = ["*"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:8000", "http://127.0.0.1:8000"]

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    token_expire_seconds: int = 24 * 3600
    session_cookie_max_age: int = 24 * 3600

    # ------------------------------------------------------------------
    # TOTP
    # ------------------------------------------------------------------

    totp_issuer: str = "Notebox"
    # Adjacent 30-second steps accepted on either side of the current one.
    totp_valid_window: int = 1
    # When True, /auth/totp/enable stores the secret but leaves the account
    # unprotected until the first successful /auth/totp/verify.
    totp_require_confirmation: bool = False

    # ------------------------------------------------------------------
    # OAuth providers (optional -- empty string means provider is disabled)
    # ------------------------------------------------------------------

    google_client_id: str = ""
    google_client_secret: str = ""
    google_redirect_url: str = "http://localhost:8000/auth/google/callback"
    github_client_id: str = ""
    github_client_secret: str = ""
    github_redirect_url: str = "http://localhost:8000/auth/github/callback"
    oauth_timeout_seconds: float = 10.0

    # ------------------------------------------------------------------
    # File uploads
    # ------------------------------------------------------------------

    upload_dir: str = "uploads"
    max_upload_bytes: int = 10 * 1024 * 1024

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    rate_limit_enabled: bool = True
    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("Using auto-generated SECRET_KEY. Sessions will not persist across restarts.")
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

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
