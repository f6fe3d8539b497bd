"""Role repository."""

from __future__ import annotations

from typing import cast

from sqlalchemy import select

from authcore.models.role import Role
from authcore.repositories.base import BaseRepository


class RoleRepository(BaseRepository[Role]):
    """Persistence-only repository for :class:`Role`."""

    model = Role

    def get_by_name(self, name: str) -> Role | None:
        """Fetch a role by its (case-insensitive) name."""
        stmt = select(Role).where(Role.name == name.strip().lower())
        return cast(Role | None, self.session.execute(stmt).scalars().first())

