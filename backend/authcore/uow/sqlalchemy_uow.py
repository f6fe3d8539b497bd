"""
Read-write and read-only units of work over the Flask-SQLAlchemy session.
"""

from __future__ import annotations

import logging
from contextlib import suppress
from typing import Any

from sqlalchemy import event, text
from sqlalchemy.exc import InvalidRequestError, SQLAlchemyError
from sqlalchemy.orm import Session, SessionTransaction

from authcore.core.extensions import db
from authcore.repositories import (
    AuditLogRepository,
    EmailVerificationTokenRepository,
    RoleRepository,
    UserRepository,
)
from authcore.uow.base import UnitOfWork

log = logging.getLogger(__name__)

# First SQL keyword of statements the read-only guard refuses
WRITE_KEYWORDS = (
    "insert",
    "update",
    "delete",
    "merge",
    "replace",
    "create",
    "alter",
    "drop",
    "truncate",
    "grant",
    "revoke",
)


class SQLAlchemyRepositoryContainer:
    """Auth repositories bound to one session."""

    def __init__(self, *, session: Session) -> None:
        self.session = session
        self.users = UserRepository(session=session)
        self.roles = RoleRepository(session=session)
        self.verification_tokens = EmailVerificationTokenRepository(session=session)
        self.audit_logs = AuditLogRepository(session=session)


class SQLAlchemyUnitOfWork(SQLAlchemyRepositoryContainer, UnitOfWork):
    """Commit on a clean exit, roll back when the block raises or the commit fails."""

    def __init__(self) -> None:
        super().__init__(session=db.session)

    def __enter__(self) -> SQLAlchemyUnitOfWork:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self.rollback()
            return
        try:
            self.commit()
        except Exception:
            self.rollback()
            raise

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()


class _WriteGuard:
    """
    Event listeners that make a session refuse writes.

    ``before_flush`` rejects pending ORM changes; ``before_cursor_execute``
    on the connection rejects raw DML/DDL.
    """

    def __init__(self, session: Session, target: Any) -> None:
        self.session = session
        self.target = target
        self.active = False

    def _on_flush(self, session, flush_context, instances) -> None:
        if session.new or session.dirty or session.deleted:
            raise RuntimeError("Read-only UnitOfWork: ORM flush blocked.")

    def _on_execute(self, conn, cursor, statement, parameters, context, executemany) -> None:
        keyword = statement.lstrip().split(None, 1)[0].lower() if statement else ""
        if keyword.startswith(WRITE_KEYWORDS):
            raise RuntimeError(f"Read-only UnitOfWork: SQL statement blocked: {keyword.upper()}")

    def install(self) -> None:
        if self.active:
            return
        event.listen(self.session, "before_flush", self._on_flush)
        event.listen(self.target, "before_cursor_execute", self._on_execute)
        self.active = True

    def remove(self) -> None:
        if not self.active:
            return
        with suppress(InvalidRequestError):
            event.remove(self.session, "before_flush", self._on_flush)
        with suppress(InvalidRequestError):
            event.remove(self.target, "before_cursor_execute", self._on_execute)
        self.active = False


class SQLAlchemyReadOnlyUnitOfWork(SQLAlchemyRepositoryContainer, UnitOfWork):
    """
    Read-only unit of work used by lookups and statistics.

    Opens its own transaction when the session is idle, otherwise joins the
    running one (a caller's read-write block or a test's outer
    transaction). Writes are blocked by :class:`_WriteGuard` on every
    dialect; on PostgreSQL and MySQL an owned transaction is additionally
    marked ``READ ONLY``. ``commit()`` always raises.

    Parameters
    ----------
    isolation_level:
        Optional isolation level for owned transactions, e.g. ``"READ COMMITTED"``.
    enforce_db_readonly:
        Issue ``SET TRANSACTION READ ONLY`` where supported.
    """

    _DIRECTIVE_DIALECTS = ("postgresql", "mysql", "mariadb")

    def __init__(
        self,
        *,
        isolation_level: str | None = "READ COMMITTED",
        enforce_db_readonly: bool = True,
    ) -> None:
        super().__init__(session=db.session)
        self.isolation_level = isolation_level
        self.enforce_db_readonly = enforce_db_readonly
        self._owned: SessionTransaction | None = None
        self._guard: _WriteGuard | None = None

    def __enter__(self) -> SQLAlchemyReadOnlyUnitOfWork:
        try:
            self._owned = self.session.begin()
        except InvalidRequestError:
            self._owned = None

        conn = self.session.connection()
        self._guard = _WriteGuard(self.session, conn)
        self._guard.install()
        if self._owned is not None and conn.dialect.name in self._DIRECTIVE_DIALECTS:
            self._apply_directives()
        return self

    def _apply_directives(self) -> None:
        statements = []
        if self.isolation_level:
            level = self.isolation_level.upper().strip()
            statements.append(f"SET TRANSACTION ISOLATION LEVEL {level}")
        if self.enforce_db_readonly:
            statements.append("SET TRANSACTION READ ONLY")
        try:
            for stmt in statements:
                self.session.execute(text(stmt))
        except SQLAlchemyError as exc:
            log.warning("Read-only transaction directives failed (%s); guards only", exc)

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if self._owned is not None:
                self._owned.rollback()
        finally:
            self._owned = None
            if self._guard is not None:
                self._guard.remove()
                self._guard = None

    def commit(self) -> None:
        """
        :raises RuntimeError: always; this unit of work never writes.
        """
        raise RuntimeError("Read-only UnitOfWork does not allow commit().")

    def rollback(self) -> None:
        self.session.rollback()
