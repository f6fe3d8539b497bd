"""One-time tokens for email verification and password reset."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from authcore.core.extensions import db

from .base import PKMixin, ReprMixin, TimestampMixin, as_aware, utcnow

if TYPE_CHECKING:
    from .user import User


class TokenType(str, Enum):
    """Purpose a verification token was issued for."""

    EMAIL_VERIFICATION = "email_verification"
    PASSWORD_RESET = "password_reset"


class EmailVerificationToken(PKMixin, ReprMixin, TimestampMixin, db.Model):
    """
    Single-use secret bound to a user and a purpose.

    A token authorizes nothing once ``is_used`` is set or ``expires_at`` has
    passed, whichever comes first.
    """

    __tablename__ = "email_verification_tokens"

    token: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[TokenType] = mapped_column(
        SAEnum(TokenType, name="enum_token_type", native_enum=True, create_constraint=True),
        nullable=False,
        default=TokenType.EMAIL_VERIFICATION,
    )
    is_used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)

    user: Mapped[User] = relationship("User")

    __table_args__ = (
        UniqueConstraint("token", name="uq_email_verification_tokens_token"),
        Index("ix_email_verification_tokens_user_id", "user_id"),
        Index("ix_email_verification_tokens_expires_at", "expires_at"),
    )

    def is_expired(self, now: datetime | None = None) -> bool:
        """Return ``True`` once ``expires_at`` is in the past."""
        now = now or utcnow()
        return as_aware(self.expires_at) < now  # type: ignore[operator]

    def mark_used(self, now: datetime | None = None) -> None:
        """Consume the token."""
        self.is_used = True
        self.used_at = now or utcnow()
