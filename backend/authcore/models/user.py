"""User model definition."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from authcore.core.extensions import db

from .base import PKMixin, ReprMixin, TimestampMixin

if TYPE_CHECKING:
    from .role import Role


class UserStatus(str, Enum):
    """Account lifecycle states."""

    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class User(PKMixin, ReprMixin, TimestampMixin, db.Model):
    """
    Authentication identity.

    Fields
    ------
    email : str
        Login email. Stored normalized (lowercase, trimmed).
    password_hash : str
        Output of the configured password hasher. Never the raw password.
    name : str
        Display name (``"first last"`` for self-registered users).
    status : UserStatus
        ``PENDING`` until the email is verified, then ``ACTIVE``. Only
        ``ACTIVE`` users may log in.
    role_id : int | None
        Assigned role; ``None`` is treated as the default ``user`` role.
    email_verified_at : datetime | None
        Set when a verification token is consumed.
    last_login_at : datetime | None
        Best-effort timestamp of the last successful login.
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(254), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(101), nullable=False)
    status: Mapped[UserStatus] = mapped_column(
        SAEnum(UserStatus, name="enum_user_status", native_enum=True, create_constraint=True),
        nullable=False,
        default=UserStatus.PENDING,
    )
    role_id: Mapped[int | None] = mapped_column(
        ForeignKey("roles.id", ondelete="SET NULL"), nullable=True
    )
    email_verified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    role: Mapped[Role | None] = relationship("Role", back_populates="users")

    __table_args__ = (
        UniqueConstraint("email", name="uq_users_email"),
        Index("ix_users_email", "email"),
    )

    @property
    def is_active(self) -> bool:
        """``True`` when the account may authenticate."""
        return self.status == UserStatus.ACTIVE

    @property
    def is_email_verified(self) -> bool:
        return self.email_verified_at is not None

    @property
    def role_name(self) -> str:
        """Role name, falling back to the default role."""
        from .role import DEFAULT_ROLE

        return self.role.name if self.role is not None else DEFAULT_ROLE

    @validates("email")
    def _normalize_email(self, key: str, value: str) -> str:
        """
        Normalize and validate email.

        :param key: Field name (``email``).
        :param value: Email to normalize.
        :returns: Normalized email (lowercased/trimmed).
        :raises ValueError: If email is missing or malformed.
        """
        if not value or not isinstance(value, str):
            raise ValueError("Email is required.")
        v = value.strip().lower()
        # Minimal sanity check; full validation happens in the schemas.
        if "@" not in v or "." not in v.split("@")[-1]:
            raise ValueError("Email format looks invalid.")
        return v

    @validates("name")
    def _normalize_name(self, key: str, value: str) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("Name is required.")
        return value.strip()
