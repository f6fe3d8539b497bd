# authcore/services/auth/dto.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

# ---------------------------- Input DTOs ---------------------------------- #


@dataclass(frozen=True, slots=True)
class LoginIn:
    """
    Input DTO for login.

    :param email: User email (normalized by the orchestrator).
    :type email: str
    :param password: Raw password (to be verified).
    :type password: str
    :param ip_address: Client address, for the session and the audit trail.
    :param user_agent: Client user agent, for the session and the audit trail.
    """

    email: str
    password: str
    ip_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True, slots=True)
class RefreshIn:
    """
    Input DTO for token refresh.

    :param refresh_token: Encoded refresh JWT.
    :type refresh_token: str
    """

    refresh_token: str
    ip_address: str | None = None
    user_agent: str | None = None


# --------------------------- Output DTOs ---------------------------------- #


@dataclass(frozen=True, slots=True)
class AuthenticatedUser:
    """Snapshot of the user returned after a successful login."""

    id: int
    email: str
    name: str
    role: str
    is_active: bool
    is_email_verified: bool

    @classmethod
    def from_model(cls, user: Any) -> AuthenticatedUser:
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            role=user.role_name,
            is_active=user.is_active,
            is_email_verified=user.is_email_verified,
        )


@dataclass(frozen=True, slots=True)
class TokenPairOut:
    """
    Output DTO with access and refresh tokens.

    :param access_token: Encoded access JWT.
    :type access_token: str
    :param refresh_token: Encoded refresh JWT; ``None`` after a refresh with
        rotation disabled (keep using the current one).
    :type refresh_token: str | None
    :param expires_in: Access token lifetime in seconds.
    :param session_id: Server-side session backing the pair.
    """

    access_token: str
    refresh_token: str | None
    expires_in: int
    session_id: str | None = None
    token_type: str = "Bearer"


@dataclass(frozen=True, slots=True)
class LoginOut:
    user: AuthenticatedUser
    tokens: TokenPairOut
    message: str = "Login successful"


@dataclass(frozen=True, slots=True)
class ServiceStatsOut:
    """Monitoring snapshot combining lockout and session statistics."""

    lockout_total_tracked: int
    lockout_currently_locked: int
    total_sessions: int
    sessions_per_user: dict[str, int]
    average_session_duration: float
    sessions_created_last_hour: int
    sessions_expired_last_hour: int
