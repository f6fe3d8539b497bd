# authcore/services/auth/login.py
from __future__ import annotations

import logging
import math
from typing import Any

from marshmallow import ValidationError

from authcore.core.config import SessionSettings
from authcore.core.logger import redact_email
from authcore.schemas.auth import LoginSchema
from authcore.services._shared.base import BaseService
from authcore.services._shared.errors import (
    AccountLockedError,
    InvalidCredentialsError,
    SessionLimitExceededError,
    ValidationFailedError,
)
from authcore.services._shared.ports import AuditSink, TokenProvider
from authcore.services.auth.credentials import CredentialValidator
from authcore.services.auth.dto import AuthenticatedUser, LoginIn, LoginOut, TokenPairOut
from authcore.services.lockout.tracker import LockoutTracker
from authcore.services.sessions.manager import SessionManager

log = logging.getLogger(__name__)

LOGIN_ACTION = "login"


class LoginOrchestrator(BaseService):
    """
    Login state machine.

    0. Malformed email or password: :class:`ValidationFailedError`, nothing
       recorded.
    1. Locked out: :class:`AccountLockedError` (429).
    2. Unknown email or wrong password: failure recorded,
       :class:`InvalidCredentialsError`.
    3. Inactive account: failure recorded, same error and message.
    4. Success: lockout cleared, session (or bare token pair) issued,
       ``last_login_at`` updated best-effort.

    Every attempt past input validation writes exactly one audit record.

    :param lockout: Failed-attempt tracker.
    :param credentials: Email/password validator.
    :param tokens: Token issuer, used when no session manager is wired.
    :param audit: Audit sink.
    :param sessions: Optional session manager; when present, logins create sessions.
    :param settings: Token lifetimes for the session-less path.
    """

    def __init__(
        self,
        *,
        lockout: LockoutTracker,
        credentials: CredentialValidator,
        tokens: TokenProvider,
        audit: AuditSink,
        sessions: SessionManager | None = None,
        settings: SessionSettings | None = None,
    ) -> None:
        super().__init__()
        self.lockout = lockout
        self.credentials = credentials
        self.tokens = tokens
        self.audit = audit
        self.sessions = sessions
        self.settings = settings or (sessions.settings if sessions else SessionSettings())

    def login(self, dto: LoginIn) -> LoginOut:
        """
        Authenticate credentials and issue tokens.

        :param dto: Login input.
        :returns: User snapshot, token pair and message.
        :raises ValidationFailedError: Malformed email or password.
        :raises AccountLockedError: Too many failed attempts.
        :raises InvalidCredentialsError: Bad credentials or inactive account.
        :raises SessionLimitExceededError: User holds too many sessions.
        """
        try:
            LoginSchema().load({"email": dto.email.strip(), "password": dto.password})
        except ValidationError as err:
            raise ValidationFailedError("Invalid login data", err.messages) from err

        email = dto.email.strip().lower()
        ctx: dict[str, Any] = {"ip_address": dto.ip_address, "user_agent": dto.user_agent}
        log.info("Login attempt for %s", redact_email(email))

        if self.lockout.is_locked_out(email):
            remaining = self.lockout.get_remaining_lockout_time(email).total_seconds()
            minutes = math.ceil(remaining / 60)
            self.audit.record(
                user_id=None,
                action=LOGIN_ACTION,
                success=False,
                description="Account locked",
                email=email,
                **ctx,
            )
            raise AccountLockedError(
                "Account temporarily locked due to too many failed login attempts. "
                f"Please try again in {minutes} minutes.",
                retry_after=math.ceil(remaining),
            )

        with self.ro_uow() as uow:
            user = self.credentials.validate(uow.users, email, dto.password)
            snapshot = AuthenticatedUser.from_model(user) if user is not None else None

        if snapshot is None:
            raise self._fail(email, None, "Invalid email or password", ctx)
        if not snapshot.is_active:
            raise self._fail(email, snapshot.id, "Account is deactivated", ctx)

        self.lockout.clear_lockout(email)

        try:
            tokens = self._issue_tokens(snapshot, dto)
        except SessionLimitExceededError:
            self.audit.record(
                user_id=snapshot.id,
                action=LOGIN_ACTION,
                success=False,
                description="Session limit exceeded",
                **ctx,
            )
            raise

        self._touch_last_login(snapshot.id)
        self.audit.record(
            user_id=snapshot.id,
            action=LOGIN_ACTION,
            success=True,
            session_id=tokens.session_id,
            **ctx,
        )
        log.info("User logged in", extra={"user_id": str(snapshot.id)})
        return LoginOut(user=snapshot, tokens=tokens)

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _fail(
        self, email: str, user_id: int | None, reason: str, ctx: dict[str, Any]
    ) -> InvalidCredentialsError:
        """Record the failure and return the (deliberately generic) error to raise."""
        self.lockout.record_failed_attempt(email)
        self.audit.record(
            user_id=user_id,
            action=LOGIN_ACTION,
            success=False,
            description=reason,
            email=email,
            **ctx,
        )
        log.warning("Failed login for %s: %s", redact_email(email), reason)
        return InvalidCredentialsError()

    def _issue_tokens(self, user: AuthenticatedUser, dto: LoginIn) -> TokenPairOut:
        claims = {"email": user.email, "role": user.role}
        expires_in = int(self.settings.access_token_expiry.total_seconds())

        if self.sessions is not None:
            session = self.sessions.create_session(
                str(user.id),
                user_agent=dto.user_agent,
                ip_address=dto.ip_address,
                claims=claims,
            )
            return TokenPairOut(
                access_token=session.access_token,
                refresh_token=session.refresh_token,
                expires_in=expires_in,
                session_id=session.id,
            )

        return TokenPairOut(
            access_token=self.tokens.create_access_token(
                identity=user.id,
                additional_claims=claims,
                expires_delta=self.settings.access_token_expiry,
            ),
            refresh_token=self.tokens.create_refresh_token(
                identity=user.id, expires_delta=self.settings.refresh_token_expiry
            ),
            expires_in=expires_in,
        )

    def _touch_last_login(self, user_id: int) -> None:
        try:
            with self.rw_uow() as uow:
                user = uow.users.get(user_id)
                if user is not None:
                    uow.users.update(user, last_login_at=self.now_utc())
        except Exception:
            log.warning("Failed to update last login for user %s", user_id, exc_info=True)
