"""Role, Permission and the role/permission association table."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Column, ForeignKey, String, Table, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from authcore.core.extensions import db

from .base import PKMixin, ReprMixin, TimestampMixin

if TYPE_CHECKING:
    from .user import User

DEFAULT_ROLE = "user"
ADMIN_ROLE = "admin"

role_permissions = Table(
    "role_permissions",
    db.metadata,
    Column("role_id", ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
)


class Permission(PKMixin, ReprMixin, TimestampMixin, db.Model):
    """
    A named capability, conventionally ``<resource>:<action>``.

    Fields
    ------
    name : str
        Unique permission name, e.g. ``users:read``.
    resource : str
        Resource the permission applies to.
    action : str
        Verb allowed on the resource.
    description : str | None
        Free text for administrators.
    """

    __tablename__ = "permissions"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    resource: Mapped[str] = mapped_column(String(50), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)

    roles: Mapped[list[Role]] = relationship(
        "Role", secondary=role_permissions, back_populates="permissions"
    )

    __table_args__ = (UniqueConstraint("name", name="uq_permissions_name"),)


class Role(PKMixin, ReprMixin, TimestampMixin, db.Model):
    """
    A named set of permissions assigned to users.

    Fields
    ------
    name : str
        Unique, lower-case role name (``user``, ``admin``).
    description : str | None
        Free text for administrators.
    is_active : bool
        Inactive roles are kept for history but not assigned.
    """

    __tablename__ = "roles"

    name: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    permissions: Mapped[list[Permission]] = relationship(
        "Permission", secondary=role_permissions, back_populates="roles", lazy="selectin"
    )
    users: Mapped[list[User]] = relationship("User", back_populates="role")

    __table_args__ = (UniqueConstraint("name", name="uq_roles_name"),)

    @validates("name")
    def _normalize_name(self, key: str, value: str) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("Role name is required.")
        return value.strip().lower()

    def has_permission(self, name: str) -> bool:
        """Return ``True`` when the role grants the permission ``name``."""
        return any(p.name == name for p in self.permissions)
