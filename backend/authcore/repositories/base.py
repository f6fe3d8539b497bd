"""Generic repository base for SQLAlchemy 2.x.

Persistence-only concerns shared by all repositories:

- Safe sorting through a per-repository whitelist (public key -> column).
- Equality filters restricted to a whitelist.
- Updates restricted to an explicit set of updatable fields.
- No commit/rollback: the unit of work owned by the service decides.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any, Generic, TypeVar, cast

from sqlalchemy import Select, and_, func, select
from sqlalchemy.orm import InstrumentedAttribute, Session

from authcore.core.extensions import db

E = TypeVar("E")  # SQLAlchemy mapped entity type


def parse_sort_tokens(raw: Iterable[str]) -> list[tuple[str, bool]]:
    """Parse public sort tokens into ``(field, is_desc)`` tuples.

    :param raw: Public tokens like ``["-created_at", "email"]``.
    :type raw: Iterable[str]
    :returns: List of ``(field_name, is_desc)`` tokens.
    :rtype: list[tuple[str, bool]]
    """
    parsed: list[tuple[str, bool]] = []
    for token in raw:
        is_desc = token.startswith("-")
        field = (token[1:] if is_desc else token).strip()
        if field:
            parsed.append((field, is_desc))
    return parsed


def apply_sorting(
    stmt: Select[Any],
    sortable_fields: Mapping[str, InstrumentedAttribute[Any]],
    tokens: Iterable[str],
    *,
    pk_attr: InstrumentedAttribute[Any] | None,
) -> Select[Any]:
    """Apply whitelisted ``ORDER BY`` clauses plus a primary-key tiebreaker.

    Unknown sort tokens are ignored.

    :param stmt: Base selectable.
    :param sortable_fields: Public field -> ORM attribute mapping.
    :param tokens: Public sort tokens (e.g., ``["-created_at"]``).
    :param pk_attr: Primary-key attribute appended last.
    :returns: Modified select.
    """
    orders: list[Any] = []
    for field, is_desc in parse_sort_tokens(tokens):
        col = sortable_fields.get(field)
        if isinstance(col, InstrumentedAttribute):
            orders.append(col.desc() if is_desc else col.asc())
    if orders:
        stmt = stmt.order_by(*orders)
    if pk_attr is not None:
        stmt = stmt.order_by(pk_attr.asc())
    return stmt


class BaseRepository(Generic[E]):
    """Generic, persistence-only repository for a single aggregate.

    Subclasses MUST set ``model`` and MAY override ``_sortable_fields``,
    ``_filterable_fields`` and ``_updatable_fields``. Repositories never open,
    commit or roll back transactions.
    """

    #: SQLAlchemy mapped model (must be set by subclasses)
    model: type[E]

    def __init__(self, session: Session | None = None) -> None:
        """
        :param session: Session shared across the unit of work scope. Falls
            back to the Flask-scoped session when omitted.
        :type session: :class:`sqlalchemy.orm.Session` | None
        """
        self._session: Session | None = session

    @property
    def session(self) -> Session:
        """Return the injected session or the Flask-scoped one."""
        if self._session is not None:
            return self._session
        return cast(Session, db.session)

    # ------------------------------ Whitelists -------------------------------

    def _pk_attr(self) -> InstrumentedAttribute[Any] | None:
        return getattr(self.model, "id", None)

    def _sortable_fields(self) -> Mapping[str, InstrumentedAttribute[Any]]:
        return {}

    def _filterable_fields(self) -> Mapping[str, InstrumentedAttribute[Any]]:
        return {}

    def _updatable_fields(self) -> set[str]:
        return set()

    def _apply_equality_filters(
        self, stmt: Select[Any], filters: Mapping[str, Any] | None
    ) -> Select[Any]:
        """Apply equality filters for whitelisted keys only; others are ignored."""
        if not filters:
            return stmt
        allowed = self._filterable_fields()
        clauses = [allowed[k] == v for k, v in filters.items() if k in allowed]
        return stmt.where(and_(*clauses)) if clauses else stmt

    def _sanitize_update_fields(self, fields: Mapping[str, Any]) -> dict[str, Any]:
        """Return ``fields`` if every key is updatable.

        :raises ValueError: On unknown or non-updatable keys.
        """
        allowed = self._updatable_fields()
        unknown = sorted(k for k in fields if k not in allowed)
        if unknown:
            raise ValueError(f"Unknown or non-updatable fields: {unknown}")
        return dict(fields)

    # --------------------------------- CRUD ----------------------------------

    def add(self, instance: E) -> E:
        """Stage a new entity and flush to materialize the PK.

        :param instance: New entity instance.
        :returns: The same instance after ``flush()``.
        """
        self.session.add(instance)
        self.flush()
        return instance

    def get(self, entity_id: Any) -> E | None:
        """Retrieve a single entity by primary key, or ``None``."""
        pk_attr = self._pk_attr()
        if pk_attr is None:
            raise RuntimeError("BaseRepository.get requires a detectable PK attribute.")
        result = self.session.execute(select(self.model).where(pk_attr == entity_id))
        return cast(E | None, result.scalars().first())

    def count(self, **filters: Any) -> int:
        stmt = self._apply_equality_filters(select(func.count()).select_from(self.model), filters)
        return int(self.session.execute(stmt).scalar_one())

    def flush(self) -> None:
        self.session.flush()

    def update(self, instance: E, **fields: Any) -> E:
        """Assign whitelisted fields (triggers ``@validates``) and flush.

        :param instance: Entity to mutate.
        :param fields: Public mapping of fields to assign.
        :returns: The mutated instance.
        :raises ValueError: If a key is not updatable.
        """
        for k, v in self._sanitize_update_fields(fields).items():
            setattr(instance, k, v)
        self.flush()
        return instance

    def list(
        self,
        *,
        filters: Mapping[str, Any] | None = None,
        sort: Iterable[str] | None = None,
        limit: int | None = None,
    ) -> list[E]:
        """List entities with whitelisted filters and sorting."""
        stmt: Select[Any] = self._apply_equality_filters(select(self.model), filters)
        stmt = apply_sorting(stmt, self._sortable_fields(), sort or [], pk_attr=self._pk_attr())
        if limit is not None:
            stmt = stmt.limit(max(1, int(limit)))
        return cast(list[E], list(self.session.execute(stmt).scalars().all()))
