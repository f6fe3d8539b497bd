"""Wire production adapters into the service layer and attach them to the app."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from flask import Flask, current_app

from authcore.core.config import (
    lockout_settings_from_config,
    session_settings_from_config,
    verification_settings_from_config,
)
from authcore.core.extensions import get_redis
from authcore.infra.jwt.flask_jwt_token_provider import JWTTokenProvider
from authcore.infra.mail.smtp_mailer import SMTPMailer
from authcore.infra.redis.redis_session_store import RedisSessionStore
from authcore.infra.security.werkzeug_password_hasher import WerkzeugPasswordHasher
from authcore.services._shared.ports import (
    InMemorySessionStore,
    Mailer,
    PasswordHasher,
    SessionStore,
    TokenProvider,
)
from authcore.services.audit.service import AuditLogService
from authcore.services.auth.credentials import CredentialValidator
from authcore.services.auth.login import LoginOrchestrator
from authcore.services.auth.service import AuthService
from authcore.services.email_verification.service import EmailVerificationTokenManager
from authcore.services.lockout.tracker import LockoutTracker
from authcore.services.password.service import PasswordService
from authcore.services.registration.service import RegistrationOrchestrator
from authcore.services.sessions.manager import SessionManager

log = logging.getLogger(__name__)

EXTENSION_KEY = "authcore"


@dataclass(slots=True)
class AuthContainer:
    """Every long-lived collaborator of the auth subsystem for one app."""

    tokens: TokenProvider
    hasher: PasswordHasher
    mailer: Mailer
    session_store: SessionStore
    sessions: SessionManager
    lockout: LockoutTracker
    audit: AuditLogService
    verification: EmailVerificationTokenManager
    password: PasswordService
    registration: RegistrationOrchestrator
    login: LoginOrchestrator
    auth: AuthService


def _build_session_store(app: Flask) -> SessionStore:
    backend = str(app.config.get("SESSION_STORE", "memory")).lower()
    if backend == "redis":
        return RedisSessionStore(get_redis(app))
    if backend != "memory":
        raise ValueError(f"Unknown SESSION_STORE {backend!r}; expected 'memory' or 'redis'")
    return InMemorySessionStore()


def _build_mailer(app: Flask) -> SMTPMailer:
    cfg = app.config
    return SMTPMailer(
        host=cfg.get("SMTP_HOST"),
        port=int(cfg.get("SMTP_PORT", 587)),
        user=cfg.get("SMTP_USER"),
        password=cfg.get("SMTP_PASSWORD"),
        use_tls=bool(cfg.get("SMTP_USE_TLS", True)),
        from_email=cfg.get("MAIL_FROM"),
        from_name=cfg.get("MAIL_FROM_NAME", "authcore"),
    )


def build_container(
    app: Flask,
    *,
    tokens: TokenProvider | None = None,
    hasher: PasswordHasher | None = None,
    mailer: Mailer | None = None,
    session_store: SessionStore | None = None,
) -> AuthContainer:
    """
    Build the service graph from ``app.config``.

    Keyword arguments replace the corresponding production adapter.

    :raises ValueError: Invalid session/lockout settings or session backend.
    """
    session_settings = session_settings_from_config(app.config)
    tokens = tokens or JWTTokenProvider()
    hasher = hasher or WerkzeugPasswordHasher()
    mailer = mailer or _build_mailer(app)
    store = session_store or _build_session_store(app)

    sessions = SessionManager(store=store, tokens=tokens, settings=session_settings)
    lockout = LockoutTracker(lockout_settings_from_config(app.config))
    audit = AuditLogService()
    verification = EmailVerificationTokenManager(
        settings=verification_settings_from_config(app.config), mailer=mailer
    )
    password = PasswordService(
        hasher=hasher, verification=verification, sessions=sessions, audit=audit
    )
    registration = RegistrationOrchestrator(hasher=hasher, verification=verification, audit=audit)
    login = LoginOrchestrator(
        lockout=lockout,
        credentials=CredentialValidator(hasher=hasher),
        tokens=tokens,
        audit=audit,
        sessions=sessions,
    )
    auth = AuthService(
        login=login,
        registration=registration,
        sessions=sessions,
        lockout=lockout,
        verification=verification,
        password=password,
        audit=audit,
    )
    return AuthContainer(
        tokens=tokens,
        hasher=hasher,
        mailer=mailer,
        session_store=store,
        sessions=sessions,
        lockout=lockout,
        audit=audit,
        verification=verification,
        password=password,
        registration=registration,
        login=login,
        auth=auth,
    )


def init_app(app: Flask) -> AuthContainer:
    """Build the container, store it on ``app.extensions`` and start sweeps if enabled."""
    container = build_container(app)
    app.extensions[EXTENSION_KEY] = container
    if app.config.get("START_BACKGROUND_SWEEPS", False):
        container.auth.initialize(app.app_context)
    log.debug("Auth container ready (session store: %s)", type(container.session_store).__name__)
    return container


def get_container(app: Flask | None = None) -> AuthContainer:
    """Return the container of ``app`` (default: the current app)."""
    target = app or current_app
    try:
        return target.extensions[EXTENSION_KEY]
    except KeyError as exc:
        raise RuntimeError("authcore is not initialized; call create_app() first") from exc
