# authcore/services/email_verification/dto.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from authcore.models.base import as_aware
from authcore.models.email_verification_token import EmailVerificationToken, TokenType


@dataclass(frozen=True, slots=True)
class VerificationTokenOut:
    """Detached view of a stored verification token."""

    token: str
    user_id: int
    type: TokenType
    expires_at: datetime
    is_used: bool

    @classmethod
    def from_model(cls, row: EmailVerificationToken) -> VerificationTokenOut:
        return cls(
            token=row.token,
            user_id=row.user_id,
            type=row.type,
            expires_at=as_aware(row.expires_at),
            is_used=row.is_used,
        )


@dataclass(frozen=True, slots=True)
class TokenResult:
    """
    Outcome of a token operation. Expected failures are reported here
    rather than raised.

    :ivar success: Whether the operation succeeded.
    :ivar message: Short outcome label (e.g. ``"Token already used"``).
    :ivar error: Client-facing error text on failure.
    """

    success: bool
    message: str
    error: str | None = None
    token: VerificationTokenOut | None = None
    user_id: int | None = None

    @classmethod
    def failure(cls, message: str, error: str) -> TokenResult:
        return cls(success=False, message=message, error=error)


@dataclass(frozen=True, slots=True)
class TokenStatistics:
    total: int
    active: int
    expired: int
    used: int
    email_verification: int
    password_reset: int
