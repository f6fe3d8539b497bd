# authcore/services/auth/service.py
from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import AbstractContextManager

from authcore.services._shared.base import BaseService
from authcore.services._shared.errors import SessionError
from authcore.services._shared.ports import AuditSink
from authcore.services.auth.dto import (
    LoginIn,
    LoginOut,
    RefreshIn,
    ServiceStatsOut,
    TokenPairOut,
)
from authcore.services.auth.login import LoginOrchestrator
from authcore.services.email_verification.dto import TokenResult
from authcore.services.email_verification.service import EmailVerificationTokenManager
from authcore.services.lockout.tracker import LockoutTracker
from authcore.services.password.service import PasswordService
from authcore.services.registration.dto import RegistrationIn, RegistrationOut
from authcore.services.registration.service import RegistrationOrchestrator
from authcore.services.sessions.manager import SessionManager

log = logging.getLogger(__name__)


class AuthService(BaseService):
    """
    Authentication facade (register, login, refresh, logout and password flows).

    Owns the lifecycle of the background sweeps of its collaborators:
    :meth:`initialize` starts them and :meth:`destroy` stops them.
    """

    def __init__(
        self,
        *,
        login: LoginOrchestrator,
        registration: RegistrationOrchestrator,
        sessions: SessionManager,
        lockout: LockoutTracker,
        verification: EmailVerificationTokenManager,
        password: PasswordService,
        audit: AuditSink,
    ) -> None:
        super().__init__()
        self.login_flow = login
        self.registration = registration
        self.sessions = sessions
        self.lockout = lockout
        self.verification = verification
        self.password = password
        self.audit = audit

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def initialize(
        self, context: Callable[[], AbstractContextManager[object]] | None = None
    ) -> None:
        """Start the session, lockout and token sweeps."""
        self.sessions.initialize()
        self.lockout.initialize()
        self.verification.initialize(context)
        log.info("Auth service initialized")

    def destroy(self) -> None:
        self.verification.destroy()
        self.lockout.destroy()
        self.sessions.shutdown()
        log.info("Auth service destroyed")

    # ------------------------------------------------------------------ #
    # Commands
    # ------------------------------------------------------------------ #

    def register(self, dto: RegistrationIn) -> RegistrationOut:
        return self.registration.register(dto)

    def login(self, dto: LoginIn) -> LoginOut:
        return self.login_flow.login(dto)

    def refresh_tokens(self, dto: RefreshIn) -> TokenPairOut:
        """
        Refresh a session's tokens.

        :raises SessionError: Any session or rotation failure (audited).
        """
        try:
            result = self.sessions.refresh_tokens(
                dto.refresh_token, user_agent=dto.user_agent, ip_address=dto.ip_address
            )
        except SessionError as exc:
            self.audit.record(
                user_id=None,
                action="token_refresh",
                success=False,
                description=str(exc),
                ip_address=dto.ip_address,
                user_agent=dto.user_agent,
            )
            raise

        self.audit.record(
            user_id=int(result.session.user_id) if result.session.user_id.isdigit() else None,
            action="token_refresh",
            success=True,
            ip_address=dto.ip_address,
            user_agent=dto.user_agent,
            session_id=result.session.id,
        )
        return TokenPairOut(
            access_token=result.access_token,
            refresh_token=result.refresh_token,
            expires_in=int(result.expires_in.total_seconds()),
            session_id=result.session.id,
        )

    def logout(self, user_id: int | str, *, session_id: str | None = None) -> int:
        """
        End one session (``session_id``) or every session of the user.

        A ``session_id`` owned by another user is left untouched.

        :returns: Number of sessions invalidated.
        """
        if session_id is not None:
            session = self.sessions.get_session(session_id)
            owned = session is not None and session.user_id == str(user_id)
            count = int(self.sessions.invalidate_session(session_id)) if owned else 0
        else:
            count = self.sessions.invalidate_user_sessions(str(user_id))
        self.audit.record(
            user_id=int(user_id) if str(user_id).isdigit() else None,
            action="logout",
            success=True,
            session_id=session_id,
            sessions_invalidated=count,
        )
        return count

    def request_password_reset(self, email: str, **ctx: str | None) -> TokenResult:
        return self.password.request_password_reset(email, **ctx)

    def reset_password(self, token: str, new_password: str, **ctx: str | None) -> TokenResult:
        return self.password.reset_password(token, new_password, **ctx)

    def change_password(
        self, user_id: int, current_password: str, new_password: str, **kwargs: str | None
    ) -> int:
        return self.password.change_password(user_id, current_password, new_password, **kwargs)

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def get_service_stats(self) -> ServiceStatsOut:
        lockout = self.lockout.get_stats()
        sessions = self.sessions.get_stats()
        return ServiceStatsOut(
            lockout_total_tracked=lockout.total_tracked,
            lockout_currently_locked=lockout.currently_locked,
            total_sessions=sessions.total_sessions,
            sessions_per_user=dict(sessions.sessions_per_user),
            average_session_duration=sessions.average_session_duration,
            sessions_created_last_hour=sessions.sessions_created_last_hour,
            sessions_expired_last_hour=sessions.sessions_expired_last_hour,
        )
