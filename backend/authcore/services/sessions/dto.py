# authcore/services/sessions/dto.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from authcore.services._shared.ports import Session


@dataclass(frozen=True, slots=True)
class SessionValidationResult:
    """
    Outcome of :meth:`SessionManager.validate_session`.

    :ivar is_valid: ``True`` only for an active, unexpired session.
    :ivar reason: Why the session is invalid.
    :ivar needs_refresh: Remaining lifetime is below the rotation interval.
    :ivar time_until_expiry: Remaining lifetime for valid sessions.
    """

    is_valid: bool
    session: Session | None = None
    reason: str | None = None
    needs_refresh: bool = False
    time_until_expiry: timedelta | None = None


@dataclass(frozen=True, slots=True)
class TokenRefreshResult:
    """
    Outcome of a successful refresh.

    :ivar refresh_token: New refresh token, or ``None`` when rotation is
        disabled and the presented one stays valid.
    :ivar expires_in: Access token lifetime.
    """

    access_token: str
    refresh_token: str | None
    session: Session
    expires_in: timedelta
