"""Reusable SQLAlchemy mixins and helpers shared by models (typed 2.0)."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import DateTime, Integer, func
from sqlalchemy.orm import Mapped, mapped_column


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


def as_aware(value: datetime | None) -> datetime | None:
    """Label a naive datetime as UTC.

    SQLite drops tzinfo on ``DateTime(timezone=True)`` columns, so values
    read back from it must be normalized before comparing with
    :func:`utcnow`.
    """
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


class CreatedAtMixin:
    """Provide an insert-only ``created_at`` column.

    Attributes
    ----------
    created_at:
        Timezone-aware timestamp set on insert.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )


class TimestampMixin(CreatedAtMixin):
    """Add an ``updated_at`` column refreshed on every update."""

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )


class PKMixin:
    """Expose an integer surrogate primary key column named ``id``."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True)


class ReprMixin:
    """Provide a concise ``__repr__`` including the class name and id."""

    def __repr__(self) -> str:
        cls = self.__class__.__name__
        key = getattr(self, "id", None)
        return f"<{cls} id={key}>"
