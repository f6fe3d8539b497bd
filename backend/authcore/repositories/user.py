"""User repository for persistence and credential lookups."""

from __future__ import annotations

from typing import cast

from sqlalchemy import select
from sqlalchemy.orm import joinedload

from authcore.models.user import User
from authcore.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """Persistence-only repository for :class:`User`.

    It never hashes or verifies passwords; the credential validator does
    that through the password hasher port.
    """

    model = User

    def _updatable_fields(self):
        """Fields services may assign (``password_hash`` only via the hasher)."""
        return {
            "name",
            "status",
            "role_id",
            "password_hash",
            "email_verified_at",
            "last_login_at",
        }

    # ---------------------------- Lookup helpers ----------------------------

    def get_by_email(self, email: str) -> User | None:
        """Fetch a user by email (case-insensitive).

        :param email: Email address to normalise and search.
        :type email: str
        :returns: User instance or ``None`` when not found.
        :rtype: User | None
        """
        stmt = select(User).where(User.email == email.lower().strip())
        return cast(User | None, self.session.execute(stmt).scalars().first())

    def get_by_email_with_role(self, email: str) -> User | None:
        """Fetch a user and its role in a single query.

        :param email: Email address to normalise and search.
        :type email: str
        :returns: User with ``role`` loaded, or ``None``.
        :rtype: User | None
        """
        stmt = (
            select(User)
            .options(joinedload(User.role))
            .where(User.email == email.lower().strip())
        )
        return cast(User | None, self.session.execute(stmt).scalars().first())

    def exists_by_email(self, email: str) -> bool:
        """Return ``True`` when a user with the provided email exists."""
        stmt = select(User.id).where(User.email == email.lower().strip())
        return bool(self.session.execute(stmt).first())
