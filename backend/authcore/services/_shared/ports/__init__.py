"""
authcore.services._shared.ports
===============================

Hexagonal interfaces consumed by the service layer, each shipped with an
in-process implementation used by tests (and, for sessions, by default).

Modules
-------
- :mod:`token_provider`: :class:`~.TokenProvider`, signed token issuing and verification.
- :mod:`session_store`: :class:`~.SessionStore`, session storage with id,
  refresh-token and user indices.
- :mod:`password_hasher`: :class:`~.PasswordHasher`.
- :mod:`mailer`: :class:`~.Mailer`, verification email delivery.
- :mod:`audit_sink`: :class:`~.AuditSink`, fire-and-forget audit writes.

Concrete adapters (Redis, SMTP, werkzeug, flask-jwt-extended) live under
``authcore.infra``.
"""

from __future__ import annotations

from .audit_sink import AuditEvent, AuditSink, InMemoryAuditSink
from .mailer import InMemoryMailer, Mailer, SentMail
from .password_hasher import PasswordHasher, PlainTextPasswordHasher
from .session_store import InMemorySessionStore, Session, SessionStats, SessionStore
from .token_provider import (
    ACCESS_TOKEN_TYPE,
    REFRESH_TOKEN_TYPE,
    StubTokenProvider,
    TokenProvider,
)

__all__ = [
    "ACCESS_TOKEN_TYPE",
    "REFRESH_TOKEN_TYPE",
    "AuditEvent",
    "AuditSink",
    "InMemoryAuditSink",
    "InMemoryMailer",
    "InMemorySessionStore",
    "Mailer",
    "PasswordHasher",
    "PlainTextPasswordHasher",
    "SentMail",
    "Session",
    "SessionStats",
    "SessionStore",
    "StubTokenProvider",
    "TokenProvider",
]
