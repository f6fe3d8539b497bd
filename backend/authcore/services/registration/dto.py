"""
DTOs for RegistrationOrchestrator.

Contracts for the self-registration flow: create a pending ``User``, then
issue and mail a verification token on a best-effort basis.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from authcore.models.user import UserStatus

# --------------------------------------------------------------------------- #
# Input
# --------------------------------------------------------------------------- #


@dataclass(frozen=True, slots=True)
class RegistrationIn:
    """
    Input payload for the registration process.

    :param email: Login email (normalized to lowercase+trim).
    :type email: str
    :param password: Raw password (hashed through the password hasher).
    :type password: str
    :param first_name: Given name, at most 50 characters.
    :param last_name: Family name, at most 50 characters.
    """

    email: str
    password: str
    first_name: str
    last_name: str
    ip_address: str | None = None
    user_agent: str | None = None

    def as_payload(self) -> dict[str, Any]:
        return {
            "email": self.email,
            "password": self.password,
            "first_name": self.first_name,
            "last_name": self.last_name,
        }


# --------------------------------------------------------------------------- #
# Output
# --------------------------------------------------------------------------- #


@dataclass(frozen=True, slots=True)
class RegisteredUserOut:
    id: int
    email: str
    name: str
    status: UserStatus
    role: str


@dataclass(frozen=True, slots=True)
class RegistrationOut:
    """
    Output summary for the registration process.

    :param user: Public-safe user payload.
    :param verification_token_created: A verification token was stored.
    :param verification_email_sent: The mailer accepted the message.
    """

    user: RegisteredUserOut
    verification_token_created: bool
    verification_email_sent: bool


@dataclass(frozen=True, slots=True)
class RegistrationRequirements:
    min_password_length: int
    max_password_length: int
    max_name_length: int
    require_email_verification: bool = True
