"""
Application configuration from environment variables.

All settings have sensible defaults for local development.
A .env file in the project root is loaded automatically (if present).

Settings are read once into a frozen :class:`Settings` object by
:func:`load_settings` and handed to :func:`authgate.main.create_app`;
nothing else in the package reads the environment.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv

from authgate.security.passwords import hash_password, is_password_hash

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = PROJECT_ROOT / "data"

DEV_JWT_SECRET = "dev-secret-change-me-in-production-0123456789"
DEV_PASSWORD = "admin123"

VERSION = "1.0.0"

_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when the environment holds an invalid or missing setting."""


@dataclass(frozen=True)
class RateLimitTier:
    max_requests: int
    window_seconds: int


@dataclass(frozen=True)
class Settings:
    jwt_secret: str
    environment: str = "development"
    log_level: str = "INFO"
    db_path: str = str(DATA_DIR / "authgate.db")

    # ── JWT ────────────────────────────────────────────────────────────
    jwt_algorithm: str = "HS256"
    access_token_ttl: timedelta = timedelta(minutes=15)
    refresh_token_ttl: timedelta = timedelta(days=7)

    # ── Bootstrap identity ─────────────────────────────────────────────
    auth_username: str = "admin"
    # Always a bcrypt hash; plaintext passwords are hashed in load_settings.
    auth_password_hash: str | None = None
    auth_totp_secret: str | None = None

    # ── TOTP ───────────────────────────────────────────────────────────
    totp_valid_window: int = 1
    totp_issuer: str = "authgate"

    # ── Rate limiting ──────────────────────────────────────────────────
    general_limit: RateLimitTier = field(default_factory=lambda: RateLimitTier(5, 10))
    login_limit: RateLimitTier = field(default_factory=lambda: RateLimitTier(5, 60))
    refresh_limit: RateLimitTier = field(default_factory=lambda: RateLimitTier(5, 60))
    # Peers whose forwarding headers name the real client (e.g. a reverse proxy).
    trusted_proxies: tuple[str, ...] = ()

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


# ── Parsing helpers ───────────────────────────────────────────────────────


def _int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


def _tier(prefix: str, default: RateLimitTier) -> RateLimitTier:
    return RateLimitTier(
        max_requests=_int(f"{prefix}_MAX", default.max_requests, minimum=1),
        window_seconds=_int(f"{prefix}_WINDOW", default.window_seconds, minimum=1),
    )


def _csv(name: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in os.getenv(name, "").split(",") if part.strip())


def _resolve_password_hash() -> str | None:
    """Turn AUTH_PASSWORD_HASH / AUTH_PASSWORD into one canonical bcrypt hash."""
    supplied_hash = os.getenv("AUTH_PASSWORD_HASH", "").strip()
    if supplied_hash:
        if not is_password_hash(supplied_hash):
            raise ConfigError("AUTH_PASSWORD_HASH must be a bcrypt hash ($2a$/$2b$/$2y$)")
        return supplied_hash

    plaintext = os.getenv("AUTH_PASSWORD", "")
    if plaintext:
        try:
            return hash_password(plaintext)
        except ValueError as exc:
            raise ConfigError(f"AUTH_PASSWORD is not usable: {exc}") from None
    return None


# ── Loading ───────────────────────────────────────────────────────────────


def load_settings(env_file: Path | None = None) -> Settings:
    """Read the environment (plus an optional .env file) into Settings."""
    load_dotenv(env_file or PROJECT_ROOT / ".env")

    environment = os.getenv("ENVIRONMENT", "development")
    if environment not in ("development", "production", "test"):
        raise ConfigError(f"ENVIRONMENT must be development, production or test, got {environment!r}")

    jwt_secret = os.getenv("JWT_SECRET", "")
    if not jwt_secret:
        if environment == "production":
            raise ConfigError("JWT_SECRET is required in production")
        jwt_secret = DEV_JWT_SECRET

    password_hash = _resolve_password_hash()
    if password_hash is None:
        if environment == "production":
            raise ConfigError("AUTH_PASSWORD_HASH or AUTH_PASSWORD is required in production")
        logger.warning("No AUTH_PASSWORD configured, using the development default password")
        password_hash = hash_password(DEV_PASSWORD)

    username = os.getenv("AUTH_USERNAME", "admin").strip().lower()
    if not username:
        raise ConfigError("AUTH_USERNAME cannot be empty")

    defaults = Settings(jwt_secret=jwt_secret)
    return Settings(
        jwt_secret=jwt_secret,
        environment=environment,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        db_path=os.getenv("DB_PATH", defaults.db_path),
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
        access_token_ttl=timedelta(minutes=_int("ACCESS_TOKEN_EXPIRE_MINUTES", 15, minimum=1)),
        refresh_token_ttl=timedelta(days=_int("REFRESH_TOKEN_EXPIRE_DAYS", 7, minimum=1)),
        auth_username=username,
        auth_password_hash=password_hash,
        auth_totp_secret=os.getenv("AUTH_2FA_SECRET") or None,
        totp_valid_window=_int("TOTP_VALID_WINDOW", 1),
        totp_issuer=os.getenv("TOTP_ISSUER", "authgate"),
        general_limit=_tier("RATE_LIMIT_GENERAL", defaults.general_limit),
        login_limit=_tier("RATE_LIMIT_LOGIN", defaults.login_limit),
        refresh_limit=_tier("RATE_LIMIT_REFRESH", defaults.refresh_limit),
        trusted_proxies=_csv("TRUSTED_PROXIES"),
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level, format=_LOG_FORMAT)
