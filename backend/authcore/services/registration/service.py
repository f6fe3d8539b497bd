"""
RegistrationOrchestrator
========================

Process-level service that registers a new identity:

- Validates the payload with :class:`~authcore.schemas.auth.RegisterSchema`.
- Creates a ``pending`` user with the default role in a single transaction.
- After commit, issues a verification token and mails it. Both steps are
  best-effort: a failure is logged and the registration still succeeds.
- Audits the registration.
"""

from __future__ import annotations

import logging

from marshmallow import ValidationError
from sqlalchemy.exc import IntegrityError

from authcore.core.logger import redact_email
from authcore.models.role import DEFAULT_ROLE
from authcore.models.user import User, UserStatus
from authcore.schemas.auth import RegisterSchema
from authcore.services._shared.base import BaseService
from authcore.services._shared.errors import ConflictError, ValidationFailedError
from authcore.services._shared.ports import AuditSink, PasswordHasher
from authcore.services.email_verification.service import EmailVerificationTokenManager
from authcore.services.registration.dto import (
    RegisteredUserOut,
    RegistrationIn,
    RegistrationOut,
    RegistrationRequirements,
)

log = logging.getLogger(__name__)

REGISTER_ACTION = "register"
MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 128
MAX_NAME_LENGTH = 50


class RegistrationOrchestrator(BaseService):
    """
    Orchestrates the user registration process.

    :param hasher: Password hashing port.
    :param verification: Token manager used for the verification email.
    :param audit: Audit sink.
    """

    def __init__(
        self,
        *,
        hasher: PasswordHasher,
        verification: EmailVerificationTokenManager,
        audit: AuditSink,
    ) -> None:
        super().__init__()
        self.hasher = hasher
        self.verification = verification
        self.audit = audit

    def register(self, dto: RegistrationIn) -> RegistrationOut:
        """
        Register a user.

        :param dto: Registration input.
        :type dto: :class:`RegistrationIn`
        :returns: Registration result payload.
        :rtype: :class:`RegistrationOut`
        :raises ValidationFailedError: Payload rejected by the schema.
        :raises ConflictError: The email is already registered.
        """
        try:
            data = RegisterSchema().load(dto.as_payload())
        except ValidationError as err:
            raise ValidationFailedError("Invalid registration data", err.messages) from err

        email = data["email"].strip().lower()
        name = f"{data['first_name'].strip()} {data['last_name'].strip()}"
        log.info("Registration attempt for %s", redact_email(email))

        try:
            with self.rw_uow() as uow:
                if uow.users.exists_by_email(email):
                    raise ConflictError("User", "email already exists")
                role = uow.roles.get_by_name(DEFAULT_ROLE)
                user = uow.users.add(
                    User(
                        email=email,
                        password_hash=self.hasher.hash(data["password"]),
                        name=name,
                        status=UserStatus.PENDING,
                        role_id=role.id if role is not None else None,
                    )
                )
                out = RegisteredUserOut(
                    id=user.id,
                    email=user.email,
                    name=user.name,
                    status=user.status,
                    role=role.name if role is not None else DEFAULT_ROLE,
                )
        except IntegrityError as exc:
            # Concurrent registration won the unique constraint.
            raise ConflictError("User", "email already exists") from exc

        token_created, email_sent = self._send_verification(out, dto)

        self.audit.record(
            user_id=out.id,
            action=REGISTER_ACTION,
            success=True,
            ip_address=dto.ip_address,
            user_agent=dto.user_agent,
            resource_type="user",
            resource_id=out.id,
            email=out.email,
            name=out.name,
        )
        log.info("User registered", extra={"user_id": str(out.id)})
        return RegistrationOut(
            user=out,
            verification_token_created=token_created,
            verification_email_sent=email_sent,
        )

    def _send_verification(
        self, user: RegisteredUserOut, dto: RegistrationIn
    ) -> tuple[bool, bool]:
        try:
            result = self.verification.create_token(
                user.id, ip_address=dto.ip_address, user_agent=dto.user_agent
            )
            if not result.success or result.token is None:
                log.warning("No verification token for user %s: %s", user.id, result.error)
                return False, False
            sent = self.verification.send_verification_email(
                user.id, result.token.token, user.email, user.name
            )
            return True, sent
        except Exception:
            log.exception("Verification step failed for user %s", user.id)
            return False, False

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def is_email_available(self, email: str) -> bool:
        with self.ro_uow() as uow:
            return not uow.users.exists_by_email(email)

    def get_registration_requirements(self) -> RegistrationRequirements:
        return RegistrationRequirements(
            min_password_length=MIN_PASSWORD_LENGTH,
            max_password_length=MAX_PASSWORD_LENGTH,
            max_name_length=MAX_NAME_LENGTH,
        )
