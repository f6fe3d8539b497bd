"""
PasswordService
===============

Password lifecycle for existing accounts:

- Reset: a ``password_reset`` token is issued for an email, then consumed
  together with the new password hash in one unit of work. Every session
  of the owner is ended afterwards.
- Change: the current password is checked through the hasher before the
  new one is stored. Sessions other than the caller's are ended.

Both flows are audited. Token delivery is left to the caller.
"""

from __future__ import annotations

import logging

from marshmallow import ValidationError

from authcore.core.logger import redact_email, redact_token
from authcore.models.email_verification_token import TokenType
from authcore.schemas.auth import ChangePasswordSchema, PasswordResetSchema
from authcore.services._shared.base import BaseService
from authcore.services._shared.errors import (
    InvalidCredentialsError,
    NotFoundError,
    ValidationFailedError,
)
from authcore.services._shared.ports import AuditSink, PasswordHasher
from authcore.services.email_verification.dto import TokenResult, VerificationTokenOut
from authcore.services.email_verification.service import EmailVerificationTokenManager
from authcore.services.sessions.manager import SessionManager

log = logging.getLogger(__name__)

RESET_ACTION = "password_reset"
CHANGE_ACTION = "password_change"


class PasswordService(BaseService):
    """
    Reset and change passwords.

    :param hasher: Password hashing port.
    :param verification: Issues and claims the reset tokens.
    :param sessions: Session manager whose sessions are ended on change.
    :param audit: Audit sink.
    """

    def __init__(
        self,
        *,
        hasher: PasswordHasher,
        verification: EmailVerificationTokenManager,
        sessions: SessionManager,
        audit: AuditSink,
    ) -> None:
        super().__init__()
        self.hasher = hasher
        self.verification = verification
        self.sessions = sessions
        self.audit = audit

    def request_password_reset(
        self,
        email: str,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> TokenResult:
        """
        Issue a ``password_reset`` token for the account behind ``email``.

        Callers should answer unknown emails the same way as known ones.
        """
        normalized = email.strip().lower()
        with self.ro_uow() as uow:
            user = uow.users.get_by_email(normalized)
            user_id = user.id if user is not None else None

        if user_id is None:
            log.info("Password reset requested for unknown email %s", redact_email(normalized))
            return TokenResult.failure("User not found", "User not found")

        return self.verification.create_token(
            user_id, TokenType.PASSWORD_RESET, ip_address=ip_address, user_agent=user_agent
        )

    def reset_password(
        self,
        token: str,
        new_password: str,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> TokenResult:
        """
        Consume a reset token and store the new password hash.

        :raises ValidationFailedError: Token or password rejected by the schema.
        :returns: Success, or the token failure (not found, used, expired).
        """
        try:
            data = PasswordResetSchema().load({"token": token, "new_password": new_password})
        except ValidationError as err:
            raise ValidationFailedError("Invalid password reset data", err.messages) from err

        log.info("Password reset with token %s", redact_token(data["token"]))
        with self.rw_uow() as uow:
            claimed = self.verification.claim_token(uow, data["token"], TokenType.PASSWORD_RESET)
            if not isinstance(claimed, TokenResult):
                uow.users.update(
                    claimed.user, password_hash=self.hasher.hash(data["new_password"])
                )
                out = VerificationTokenOut.from_model(claimed)
                user_id = claimed.user_id

        if isinstance(claimed, TokenResult):
            self.audit.record(
                user_id=None,
                action=RESET_ACTION,
                success=False,
                description=claimed.message,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            return claimed

        count = self.sessions.invalidate_user_sessions(str(user_id))
        self.audit.record(
            user_id=user_id,
            action=RESET_ACTION,
            success=True,
            ip_address=ip_address,
            user_agent=user_agent,
            sessions_invalidated=count,
        )
        log.info("Password reset", extra={"user_id": str(user_id), "count": count})
        return TokenResult(
            success=True, message="Password reset successfully", token=out, user_id=user_id
        )

    def change_password(
        self,
        user_id: int,
        current_password: str,
        new_password: str,
        *,
        keep_session_id: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> int:
        """
        Replace the password of ``user_id`` after checking the current one.

        :param keep_session_id: Session left active (usually the caller's).
        :returns: Number of other sessions invalidated.
        :raises ValidationFailedError: Payload rejected by the schema.
        :raises NotFoundError: Unknown user.
        :raises InvalidCredentialsError: ``current_password`` does not match.
        """
        try:
            data = ChangePasswordSchema().load(
                {"current_password": current_password, "new_password": new_password}
            )
        except ValidationError as err:
            raise ValidationFailedError("Invalid password change data", err.messages) from err

        with self.rw_uow() as uow:
            user = uow.users.get(user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            matched = self.hasher.verify(data["current_password"], user.password_hash)
            if matched:
                uow.users.update(user, password_hash=self.hasher.hash(data["new_password"]))

        if not matched:
            self.audit.record(
                user_id=user_id,
                action=CHANGE_ACTION,
                success=False,
                description="Current password is incorrect",
                ip_address=ip_address,
                user_agent=user_agent,
            )
            raise InvalidCredentialsError("Current password is incorrect")

        count = 0
        for session in self.sessions.get_user_sessions(str(user_id)):
            if session.id != keep_session_id:
                count += int(self.sessions.invalidate_session(session.id))

        self.audit.record(
            user_id=user_id,
            action=CHANGE_ACTION,
            success=True,
            ip_address=ip_address,
            user_agent=user_agent,
            session_id=keep_session_id,
            sessions_invalidated=count,
        )
        log.info("Password changed", extra={"user_id": str(user_id), "count": count})
        return count
