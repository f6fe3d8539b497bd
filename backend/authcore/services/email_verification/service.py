# authcore/services/email_verification/service.py
from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from contextlib import AbstractContextManager, nullcontext
from datetime import timedelta

from marshmallow import ValidationError

from authcore.core.config import VerificationSettings
from authcore.core.logger import redact_email, redact_token
from authcore.models.email_verification_token import EmailVerificationToken, TokenType
from authcore.models.user import UserStatus
from authcore.schemas.auth import VerifyTokenSchema
from authcore.services._shared.base import BaseService
from authcore.services._shared.periodic import PeriodicTask
from authcore.services._shared.ports import Mailer
from authcore.services.email_verification.dto import (
    TokenResult,
    TokenStatistics,
    VerificationTokenOut,
)
from authcore.uow.base import UnitOfWork

log = logging.getLogger(__name__)

ContextFactory = Callable[[], AbstractContextManager[object]]


class EmailVerificationTokenManager(BaseService):
    """
    One-time tokens bound to a user and a purpose.

    * At most ``max_tokens_per_user`` unused, unexpired tokens per user.
    * A token is usable once and never after ``expires_at``.
    * Consuming an ``email_verification`` token verifies the owner's email
      and activates the account in the same unit of work.

    :param settings: Lifetimes, cap, sweep period and frontend URL.
    :param mailer: Outbound mail port.
    """

    def __init__(self, *, settings: VerificationSettings | None = None, mailer: Mailer) -> None:
        super().__init__()
        self.settings = settings or VerificationSettings()
        self.mailer = mailer
        self._sweeper: PeriodicTask | None = None

    # ------------------------------------------------------------------ #
    # Tokens
    # ------------------------------------------------------------------ #

    def _default_hours(self, token_type: TokenType) -> int:
        if token_type is TokenType.PASSWORD_RESET:
            return self.settings.password_reset_expiry_hours
        return self.settings.token_expiry_hours

    def create_token(
        self,
        user_id: int,
        type: TokenType | str = TokenType.EMAIL_VERIFICATION,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
        expires_in_hours: int | None = None,
    ) -> TokenResult:
        """
        Issue a new token for ``user_id``.

        :param user_id: Owner.
        :param type: Token purpose.
        :param expires_in_hours: Lifetime override in hours.
        :returns: Success with the token, or a failure describing why.
        """
        try:
            token_type = TokenType(type)
        except ValueError:
            return TokenResult.failure("Token creation failed", f"Invalid token type: {type}")
        if expires_in_hours is not None and expires_in_hours <= 0:
            return TokenResult.failure("Token creation failed", "Expiry must be positive")

        hours = expires_in_hours or self._default_hours(token_type)
        now = self.now_utc()

        with self.rw_uow() as uow:
            user = uow.users.get(user_id)
            if user is None:
                log.warning("Token requested for unknown user %s", user_id)
                return TokenResult.failure("User not found", "User not found")
            if token_type is TokenType.EMAIL_VERIFICATION and user.email_verified_at is not None:
                return TokenResult.failure("Email is already verified", "Email is already verified")

            limit = self.settings.max_tokens_per_user
            if uow.verification_tokens.count_active_for_user(user_id, now=now) >= limit:
                log.warning("Token limit reached for user %s", user_id)
                return TokenResult.failure(
                    "Token limit exceeded", f"Maximum tokens ({limit}) reached for this user"
                )

            row = uow.verification_tokens.add(
                EmailVerificationToken(
                    token=str(uuid.uuid4()),
                    user_id=user_id,
                    type=token_type,
                    is_used=False,
                    expires_at=now + timedelta(hours=hours),
                    ip_address=ip_address,
                    user_agent=user_agent,
                )
            )
            out = VerificationTokenOut.from_model(row)

        log.info("Verification token created", extra={"user_id": str(user_id)})
        return TokenResult(
            success=True, message="Token created successfully", token=out, user_id=user_id
        )

    def claim_token(
        self,
        uow: UnitOfWork,
        token: str,
        token_type: TokenType,
        *,
        email: str | None = None,
    ) -> EmailVerificationToken | TokenResult:
        """
        Lock, check and mark used a ``token_type`` token inside ``uow``.

        The caller applies its follow-up change in the same unit of work, so
        the consumption and that change commit or roll back together. A token
        of another type, or owned by an email other than ``email``, is
        reported exactly like an unknown token.

        :returns: The consumed row, or a failure result.
        """
        row = uow.verification_tokens.get_by_token_for_update(token)
        if (
            row is None
            or row.type is not token_type
            or row.user is None
            or (email is not None and row.user.email != email)
        ):
            return TokenResult.failure("Token not found", "Invalid or expired verification token")
        if row.is_used:
            return TokenResult.failure("Token already used", "Token has already been used")

        now = self.now_utc()
        if row.is_expired(now):
            return TokenResult.failure("Token expired", "Token has expired")

        row.mark_used(now)
        return row

    def verify_token(self, token: str, email: str) -> TokenResult:
        """
        Consume an ``email_verification`` token on behalf of ``email``.

        Password reset tokens are not accepted here; they are consumed by
        the password reset flow.
        """
        try:
            data = VerifyTokenSchema().load({"token": token, "email": email})
        except ValidationError as err:
            first = next(iter(err.messages.values()), ["Invalid request"])
            message = first[0] if isinstance(first, list) and first else str(first)
            return TokenResult.failure("Token verification failed", message)

        normalized = data["email"].strip().lower()
        log.info("Verifying token %s", redact_token(data["token"]))

        with self.rw_uow() as uow:
            claimed = self.claim_token(
                uow, data["token"], TokenType.EMAIL_VERIFICATION, email=normalized
            )
            if isinstance(claimed, TokenResult):
                return claimed
            uow.users.update(
                claimed.user, email_verified_at=claimed.used_at, status=UserStatus.ACTIVE
            )
            out = VerificationTokenOut.from_model(claimed)
            user_id = claimed.user_id

        log.info("Email verified", extra={"user_id": str(user_id)})
        return TokenResult(
            success=True, message="Email verified successfully", token=out, user_id=user_id
        )

    # ------------------------------------------------------------------ #
    # Mail
    # ------------------------------------------------------------------ #

    def _display_name(self, user_id: int, email: str, name: str | None) -> str:
        if name:
            return name
        with self.ro_uow() as uow:
            user = uow.users.get(user_id)
            if user is not None and user.name:
                return user.name
            source = user.email if user is not None else email
        local = (source or "").split("@", 1)[0]
        return local or "User"

    def send_verification_email(
        self, user_id: int, token: str, email: str, name: str | None = None
    ) -> bool:
        """Send the standard verification link. Returns ``False`` on any failure."""
        return self.send_custom_verification_email(user_id, token, email, name=name)

    def send_custom_verification_email(
        self,
        user_id: int,
        token: str,
        email: str,
        *,
        name: str | None = None,
        url: str | None = None,
        expiry_hours: int | None = None,
    ) -> bool:
        """
        Send a verification link with an explicit URL and/or expiry.

        :param url: Link target; defaults to ``{frontend_url}/verify-email``.
        :param expiry_hours: Lifetime shown in the message.
        """
        try:
            sent = self.mailer.send_verification_email(
                to=email,
                token=token,
                url=url or f"{self.settings.frontend_url}/verify-email",
                name=self._display_name(user_id, email, name),
                expiry_hours=expiry_hours or self.settings.token_expiry_hours,
            )
        except Exception:
            log.exception("Failed to send verification email to %s", redact_email(email))
            return False
        if not sent:
            log.warning("Mailer refused verification email to %s", redact_email(email))
        return bool(sent)

    # ------------------------------------------------------------------ #
    # Maintenance
    # ------------------------------------------------------------------ #

    def cleanup_expired_tokens(self) -> int:
        with self.rw_uow() as uow:
            deleted = uow.verification_tokens.delete_expired(now=self.now_utc())
        log.info("Cleaned up %d expired verification tokens", deleted)
        return deleted

    def get_token_statistics(self) -> TokenStatistics:
        with self.ro_uow() as uow:
            return TokenStatistics(**uow.verification_tokens.statistics(now=self.now_utc()))

    def initialize(self, context: ContextFactory | None = None) -> None:
        """
        Start the expired-token sweep.

        :param context: Factory for the context each sweep runs in
            (``app.app_context`` outside of a request).
        """
        make_context = context or nullcontext

        def _sweep() -> None:
            with make_context():
                self.cleanup_expired_tokens()

        if self._sweeper is None:
            self._sweeper = PeriodicTask(
                "verification-token-cleanup", self.settings.cleanup_interval, _sweep
            )
        self._sweeper.start()

    def destroy(self) -> None:
        if self._sweeper is not None:
            self._sweeper.stop()
            self._sweeper = None
