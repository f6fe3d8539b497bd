"""Application settings with environment-based simple classes."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Final

from dotenv import load_dotenv

# Public selector env var (keep neutral name to avoid collisions)
ENV_VAR: Final[str] = "APP_ENV"  # 'development' | 'testing' | 'production'

# Loads .env during development (no-op when absent)
load_dotenv()

MINUTE: Final[int] = 60
HOUR: Final[int] = 60 * MINUTE
DAY: Final[int] = 24 * HOUR


def env_bool(name: str, default: bool = False) -> bool:
    """Parse a boolean flag from an environment variable.

    Parameters
    ----------
    name: str
        Environment variable to inspect.
    default: bool, optional
        Value returned when the variable is unset. Defaults to ``False``.

    Returns
    -------
    bool
        ``True`` if the value resembles ``{"1", "true", "yes", "y", "on"}``
        ignoring case; otherwise ``False`` or ``default`` when missing.
    """
    val = os.getenv(name)
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "y", "on"}


def env_int(name: str, default: int) -> int:
    """Parse an integer from an environment variable.

    Parameters
    ----------
    name: str
        Environment variable to inspect.
    default: int
        Value returned when the variable is unset or blank.

    Returns
    -------
    int
        Parsed integer.

    Raises
    ------
    ValueError
        If the variable is set but is not an integer.
    """
    val = os.getenv(name)
    if val is None or not val.strip():
        return default
    try:
        return int(val.strip())
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer, got {val!r}") from exc


class BaseConfig:
    """Base configuration shared across environments.

    Attributes
    ----------
    SECRET_KEY: str
        Flask secret. Defaults to a development placeholder and should be
        overridden in production.
    JWT_SECRET_KEY: str
        Symmetric key used by ``flask-jwt-extended`` to sign every token.
    SQLALCHEMY_DATABASE_URI: str
        Database connection string consumed by SQLAlchemy.
    REDIS_URL: str | None
        When set, a Redis client is created and pinged at startup.
    SESSION_STORE: str
        ``"memory"`` (default) or ``"redis"`` session backend.
    LOG_LEVEL: str
        Root logging verbosity (``INFO`` by default).
    LOG_FORMAT: str
        ``"json"`` (default) or ``"text"`` for human-readable local output.

    Notes
    -----
    Durations are expressed in seconds so they can be overridden from the
    environment without parsing. :func:`session_settings_from_config` and
    friends turn them into typed settings objects.
    """

    # Secrets / security
    SECRET_KEY = os.getenv("SECRET_KEY", "CHANGE_ME")
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "CHANGE_ME_JWT")
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

    # DB
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///./dev.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = env_bool("SQLALCHEMY_ECHO", False)

    # Redis (optional)
    REDIS_URL = os.getenv("REDIS_URL") or None
    SESSION_STORE = os.getenv("SESSION_STORE", "memory").strip().lower()

    # Flask & JSON
    JSON_SORT_KEYS = False
    PROPAGATE_EXCEPTIONS = False

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT = os.getenv("LOG_FORMAT", "json").strip().lower()

    # Tokens & sessions (seconds)
    JWT_ACCESS_TOKEN_EXPIRY = env_int("JWT_ACCESS_TOKEN_EXPIRY", 15 * MINUTE)
    JWT_REFRESH_TOKEN_EXPIRY = env_int("JWT_REFRESH_TOKEN_EXPIRY", 7 * DAY)
    SESSION_TIMEOUT = env_int("SESSION_TIMEOUT", 7 * DAY)
    TOKEN_ROTATION_INTERVAL = env_int("TOKEN_ROTATION_INTERVAL", 15 * MINUTE)
    ENABLE_TOKEN_ROTATION = env_bool("ENABLE_TOKEN_ROTATION", True)
    SESSION_CLEANUP_INTERVAL = env_int("SESSION_CLEANUP_INTERVAL", HOUR)
    MAX_SESSIONS_PER_USER = env_int("MAX_SESSIONS_PER_USER", 5)

    # Login lockout
    LOCKOUT_MAX_FAILED_ATTEMPTS = env_int("LOCKOUT_MAX_FAILED_ATTEMPTS", 5)
    LOCKOUT_DURATION = env_int("LOCKOUT_DURATION", 15 * MINUTE)
    LOCKOUT_CLEANUP_INTERVAL = env_int("LOCKOUT_CLEANUP_INTERVAL", HOUR)

    # Email verification tokens
    EMAIL_VERIFICATION_EXPIRY_HOURS = env_int("EMAIL_VERIFICATION_EXPIRY_HOURS", 24)
    PASSWORD_RESET_EXPIRY_HOURS = env_int("PASSWORD_RESET_EXPIRY_HOURS", 1)
    EMAIL_VERIFICATION_MAX_TOKENS = env_int("EMAIL_VERIFICATION_MAX_TOKENS", 5)
    TOKEN_CLEANUP_INTERVAL = env_int("TOKEN_CLEANUP_INTERVAL", HOUR)
    FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

    # Background sweeps (disabled in tests)
    START_BACKGROUND_SWEEPS = env_bool("START_BACKGROUND_SWEEPS", True)

    # Mail (SMTP). Without SMTP_HOST the mailer logs instead of sending.
    SMTP_HOST = os.getenv("SMTP_HOST") or None
    SMTP_PORT = env_int("SMTP_PORT", 587)
    SMTP_USER = os.getenv("SMTP_USER") or None
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD") or None
    SMTP_USE_TLS = env_bool("SMTP_USE_TLS", True)
    MAIL_FROM = os.getenv("MAIL_FROM") or None
    MAIL_FROM_NAME = os.getenv("MAIL_FROM_NAME", "authcore")

    # Flask built-ins
    DEBUG = False
    TESTING = False


class DevelopmentConfig(BaseConfig):
    """Configuration tailored for local development.

    Notes
    -----
    Enables debug mode by default and honors ``SQLALCHEMY_ECHO`` for verbose
    SQL logging when requested.
    """

    DEBUG = env_bool("FLASK_DEBUG", True)
    SQLALCHEMY_ECHO = env_bool("SQLALCHEMY_ECHO", False)


class TestingConfig(BaseConfig):
    """Configuration for automated test runs.

    Notes
    -----
    - Forces ``TESTING`` mode and disables debug logs.
    - Uses an in-memory SQLite database unless ``TEST_DATABASE_URL`` is set.
    - Never starts background sweep threads.
    """

    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    SQLALCHEMY_ECHO = env_bool("SQLALCHEMY_ECHO", False)
    PROPAGATE_EXCEPTIONS = True
    REDIS_URL = None
    SESSION_STORE = "memory"
    START_BACKGROUND_SWEEPS = False
    JWT_SECRET_KEY = "testing-secret-key-with-enough-length-for-hs256"
    SMTP_HOST = None


class ProductionConfig(BaseConfig):
    """Configuration defaults for production deployments.

    Notes
    -----
    Keeps debug and SQL echoing disabled while relying on WSGI-level log
    configuration for noise control.
    """

    DEBUG = False
    SQLALCHEMY_ECHO = False
    PROPAGATE_EXCEPTIONS = False


# Map names -> classes (simple, explicit)
CONFIG_MAP: Mapping[str, type[BaseConfig]] = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}


def get_config() -> type[BaseConfig]:
    """Return the configuration class inferred from ``APP_ENV``.

    Returns
    -------
    type[BaseConfig]
        Class to pass to :meth:`flask.Config.from_object`.

    Notes
    -----
    Falls back to :class:`DevelopmentConfig` when ``APP_ENV`` is unset or
    unknown.
    """
    name = os.getenv(ENV_VAR, "development").strip().lower()
    return CONFIG_MAP.get(name, DevelopmentConfig)


# --------------------------------------------------------------------------- #
# Typed settings consumed by the service layer
# --------------------------------------------------------------------------- #


@dataclass(frozen=True, slots=True)
class SessionSettings:
    """
    Session and token lifetime settings.

    :param session_timeout: Lifetime of a session from creation.
    :param token_rotation_interval: Remaining-lifetime threshold under which
        ``validate_session`` reports ``needs_refresh``.
    :param access_token_expiry: Access token lifetime.
    :param refresh_token_expiry: Refresh token lifetime.
    :param enable_token_rotation: Issue a new refresh token on every refresh.
    :param cleanup_interval: Period of the expired-session sweep.
    :param max_sessions_per_user: Cap checked at session creation.
    """

    session_timeout: timedelta = timedelta(days=7)
    token_rotation_interval: timedelta = timedelta(minutes=15)
    access_token_expiry: timedelta = timedelta(minutes=15)
    refresh_token_expiry: timedelta = timedelta(days=7)
    enable_token_rotation: bool = True
    cleanup_interval: timedelta = timedelta(hours=1)
    max_sessions_per_user: int = 5


@dataclass(frozen=True, slots=True)
class LockoutSettings:
    """
    Brute-force protection settings.

    :param max_failed_attempts: Failures that trigger a lockout.
    :param lockout_duration: How long a lockout lasts.
    :param cleanup_interval: Period of the expired-lockout sweep.
    """

    max_failed_attempts: int = 5
    lockout_duration: timedelta = timedelta(minutes=15)
    cleanup_interval: timedelta = timedelta(hours=1)


@dataclass(frozen=True, slots=True)
class VerificationSettings:
    """
    Email verification / password reset token settings.

    :param token_expiry_hours: Default lifetime of a verification token.
    :param password_reset_expiry_hours: Default lifetime of a reset token.
    :param max_tokens_per_user: Cap of active, unused tokens per user.
    :param cleanup_interval: Period of the expired-token sweep.
    :param frontend_url: Base URL used to build verification links.
    """

    token_expiry_hours: int = 24
    password_reset_expiry_hours: int = 1
    max_tokens_per_user: int = 5
    cleanup_interval: timedelta = timedelta(hours=1)
    frontend_url: str = "http://localhost:3000"


def validate_session_settings(settings: SessionSettings) -> None:
    """
    Reject non-positive durations and limits.

    :param settings: Settings to check.
    :raises ValueError: Listing every offending field.
    """
    problems: list[str] = []
    for name in (
        "session_timeout",
        "token_rotation_interval",
        "access_token_expiry",
        "refresh_token_expiry",
        "cleanup_interval",
    ):
        if getattr(settings, name) <= timedelta(0):
            problems.append(f"{name} must be positive")
    if settings.max_sessions_per_user <= 0:
        problems.append("max_sessions_per_user must be positive")
    if problems:
        raise ValueError("Invalid session configuration: " + "; ".join(problems))


def session_settings_from_config(config: Mapping[str, Any]) -> SessionSettings:
    """Build :class:`SessionSettings` from a Flask config mapping and validate it."""
    settings = SessionSettings(
        session_timeout=timedelta(seconds=int(config["SESSION_TIMEOUT"])),
        token_rotation_interval=timedelta(seconds=int(config["TOKEN_ROTATION_INTERVAL"])),
        access_token_expiry=timedelta(seconds=int(config["JWT_ACCESS_TOKEN_EXPIRY"])),
        refresh_token_expiry=timedelta(seconds=int(config["JWT_REFRESH_TOKEN_EXPIRY"])),
        enable_token_rotation=bool(config["ENABLE_TOKEN_ROTATION"]),
        cleanup_interval=timedelta(seconds=int(config["SESSION_CLEANUP_INTERVAL"])),
        max_sessions_per_user=int(config["MAX_SESSIONS_PER_USER"]),
    )
    validate_session_settings(settings)
    return settings


def lockout_settings_from_config(config: Mapping[str, Any]) -> LockoutSettings:
    """Build :class:`LockoutSettings` from a Flask config mapping."""
    settings = LockoutSettings(
        max_failed_attempts=int(config["LOCKOUT_MAX_FAILED_ATTEMPTS"]),
        lockout_duration=timedelta(seconds=int(config["LOCKOUT_DURATION"])),
        cleanup_interval=timedelta(seconds=int(config["LOCKOUT_CLEANUP_INTERVAL"])),
    )
    if settings.max_failed_attempts <= 0 or settings.lockout_duration <= timedelta(0):
        raise ValueError("Invalid lockout configuration: values must be positive")
    return settings


def verification_settings_from_config(config: Mapping[str, Any]) -> VerificationSettings:
    """Build :class:`VerificationSettings` from a Flask config mapping."""
    return VerificationSettings(
        token_expiry_hours=int(config["EMAIL_VERIFICATION_EXPIRY_HOURS"]),
        password_reset_expiry_hours=int(config["PASSWORD_RESET_EXPIRY_HOURS"]),
        max_tokens_per_user=int(config["EMAIL_VERIFICATION_MAX_TOKENS"]),
        cleanup_interval=timedelta(seconds=int(config["TOKEN_CLEANUP_INTERVAL"])),
        frontend_url=str(config["FRONTEND_URL"]).rstrip("/"),
    )
