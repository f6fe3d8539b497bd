"""Idempotent seed helpers for the default roles and permissions."""

from __future__ import annotations

import logging
from typing import Any, TypeVar, cast

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import select
from sqlalchemy.orm import Session

from authcore.models.role import ADMIN_ROLE, DEFAULT_ROLE, Permission, Role

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

PERMISSION_FIXTURES: list[dict[str, str]] = [
    {"name": "users:read", "resource": "users", "action": "read", "description": "View users"},
    {"name": "users:create", "resource": "users", "action": "create", "description": "Create users"},
    {"name": "users:update", "resource": "users", "action": "update", "description": "Edit users"},
    {"name": "users:delete", "resource": "users", "action": "delete", "description": "Delete users"},
    {"name": "roles:read", "resource": "roles", "action": "read", "description": "View roles"},
    {"name": "roles:create", "resource": "roles", "action": "create", "description": "Create roles"},
    {"name": "roles:update", "resource": "roles", "action": "update", "description": "Edit roles"},
    {"name": "roles:delete", "resource": "roles", "action": "delete", "description": "Delete roles"},
    {"name": "system:audit", "resource": "system", "action": "audit", "description": "Read audit logs"},
    {
        "name": "system:settings",
        "resource": "system",
        "action": "settings",
        "description": "Change system settings",
    },
]

ROLE_FIXTURES: list[dict[str, Any]] = [
    {
        "name": DEFAULT_ROLE,
        "description": "Regular user",
        "permissions": ["users:read"],
    },
    {
        "name": ADMIN_ROLE,
        "description": "Administrator with every permission",
        "permissions": [p["name"] for p in PERMISSION_FIXTURES],
    },
]


def _session(database: SQLAlchemy) -> Session:
    return cast(Session, database.session)


def _touch(summary: dict[str, dict[str, int]], table: str, created: bool) -> None:
    entry = summary.setdefault(table, {"created": 0, "existing": 0})
    if created:
        entry["created"] += 1
    else:
        entry["existing"] += 1


def _get_or_create(
    session: Session,
    model: type[T],
    *,
    defaults: dict[str, Any] | None = None,
    **filters: Any,
) -> tuple[T, bool]:
    """Fetch ``model`` by ``filters`` or create it using ``defaults``."""
    instance = session.execute(select(model).filter_by(**filters)).scalar_one_or_none()
    if instance is not None:
        return instance, False
    params = dict(defaults or {})
    params.update(filters)
    instance = cast(T, model(**params))
    session.add(instance)
    return instance, True


def seed_roles(database: SQLAlchemy, *, verbose: bool = False) -> dict[str, dict[str, int]]:
    """
    Create the default permissions and roles, then link them.

    Running it twice creates nothing new; missing role/permission links are
    added to existing roles.

    :param database: Flask-SQLAlchemy handle.
    :param verbose: Log every created row.
    :returns: ``{table: {"created": n, "existing": m}}``.
    """
    if verbose:
        LOGGER.info("Seeding roles and permissions...")
    session = _session(database)
    summary: dict[str, dict[str, int]] = {}

    try:
        by_name: dict[str, Permission] = {}
        for fixture in PERMISSION_FIXTURES:
            perm, created = _get_or_create(
                session,
                Permission,
                defaults={
                    "resource": fixture["resource"],
                    "action": fixture["action"],
                    "description": fixture["description"],
                },
                name=fixture["name"],
            )
            by_name[perm.name] = perm
            _touch(summary, "permissions", created)
            if created and verbose:
                LOGGER.info("Created permission %s", perm.name)

        session.flush()

        for fixture in ROLE_FIXTURES:
            role, created = _get_or_create(
                session,
                Role,
                defaults={"description": fixture["description"], "is_active": True},
                name=fixture["name"],
            )
            _touch(summary, "roles", created)
            granted = {p.name for p in role.permissions}
            for perm_name in fixture["permissions"]:
                linked = perm_name not in granted
                if linked:
                    role.permissions.append(by_name[perm_name])
                _touch(summary, "role_permissions", linked)
            if created and verbose:
                LOGGER.info("Created role %s", role.name)

        session.commit()
    except Exception:
        session.rollback()
        raise
    return summary


__all__ = ["PERMISSION_FIXTURES", "ROLE_FIXTURES", "seed_roles"]
