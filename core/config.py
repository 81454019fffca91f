"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for taskwarden happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Two layers:
  Settings (pydantic-settings BaseSettings): reads environment variables and an
      optional .env file, coerces types, and validates at startup. Field names
      map to env var names (e.g. jwt_issuer -> JWT_ISSUER).

  AuthConfig (frozen dataclass): the immutable record the auth core actually
      consumes. Built once from Settings in the API lifespan and injected into
      TokenCodec, PasswordHasher and SecretPolicy. The core never calls
      get_settings() itself, so tests can construct AuthConfig directly.

Security notes:
  [M6] SECRET_KEY shorter than 32 chars is rejected outright. HS256 signing
       relies on key entropy -- a short key weakens every issued token.

  [M7] In production mode (DEBUG not set or false), a missing SECRET_KEY is a
       hard startup failure. There is no built-in fallback key.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or tasks/.
"""

from __future__ import annotations

import logging
import re
import secrets
from dataclasses import dataclass, field
from datetime import timedelta
from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("taskwarden.config")

# "<n>" is seconds; otherwise a single unit suffix. Mirrors the compact
# duration strings operators already use for JWT lifetimes ("24h", "7d").
_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhdw]?)\s*$")
_UNIT_SECONDS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400, "w": 604800}


def parse_duration(value: str) -> timedelta:
    """Parse a compact duration string ("90", "45s", "30m", "24h", "7d", "2w").

    Raises ValueError for anything else, including zero-length durations.
    """
    match = _DURATION_RE.match(str(value).lower())
    if match is None:
        raise ValueError(f"invalid duration {value!r}; expected e.g. '3600', '30m', '24h', '7d'")
    seconds = int(match.group(1)) * _UNIT_SECONDS[match.group(2)]
    if seconds <= 0:
        raise ValueError(f"duration {value!r} must be positive")
    return timedelta(seconds=seconds)


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
    # Tokens
    # ------------------------------------------------------------------

    jwt_expires_in: str = "24h"
    jwt_refresh_expires_in: str = "7d"
    jwt_issuer: str = "task-manager-api"
    jwt_audience: str = "task-manager-users"

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    # bcrypt accepts cost 4..31; each step doubles the work.
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)
    password_min_length: int = Field(default=8, ge=1, le=128)
    password_require_uppercase: bool = True
    password_require_lowercase: bool = True
    password_require_digit: bool = True
    password_require_special: bool = True

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("jwt_expires_in", "jwt_refresh_expires_in")
    @classmethod
    def validate_duration(cls, value: str) -> str:
        """Reject unparseable token lifetimes at startup rather than at first login."""
        parse_duration(value)
        return value

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce SECRET_KEY policy [M7].

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Tokens will not survive restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters [M6].
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("Using auto-generated SECRET_KEY. Issued tokens will not survive a restart.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self


@dataclass(frozen=True)
class PasswordRules:
    """Strength rules applied to new passwords before they are hashed."""

    min_length: int = 8
    require_uppercase: bool = True
    require_lowercase: bool = True
    require_digit: bool = True
    require_special: bool = True


@dataclass(frozen=True)
class AuthConfig:
    """Process-wide, read-only auth configuration.

    Constructed once at startup (see AuthConfig.from_settings) and passed to
    the auth components' constructors. Never mutated afterwards.
    """

    secret_key: str
    issuer: str = "task-manager-api"
    audience: str = "task-manager-users"
    access_ttl: timedelta = timedelta(hours=24)
    refresh_ttl: timedelta = timedelta(days=7)
    algorithm: str = "HS256"
    bcrypt_rounds: int = 12
    password_rules: PasswordRules = field(default_factory=PasswordRules)

    @classmethod
    def from_settings(cls, settings: Settings) -> "AuthConfig":
        return cls(
            secret_key=settings.secret_key,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            access_ttl=parse_duration(settings.jwt_expires_in),
            refresh_ttl=parse_duration(settings.jwt_refresh_expires_in),
            bcrypt_rounds=settings.bcrypt_rounds,
            password_rules=PasswordRules(
                min_length=settings.password_min_length,
                require_uppercase=settings.password_require_uppercase,
                require_lowercase=settings.password_require_lowercase,
                require_digit=settings.password_require_digit,
                require_special=settings.password_require_special,
            ),
        )


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    This is the official FastAPI pattern for config.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
