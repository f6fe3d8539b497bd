"""Repository for one-time email verification / password reset tokens."""

from __future__ import annotations

from datetime import datetime
from typing import cast

from sqlalchemy import delete, func, select

from authcore.models.email_verification_token import EmailVerificationToken, TokenType
from authcore.repositories.base import BaseRepository


class EmailVerificationTokenRepository(BaseRepository[EmailVerificationToken]):
    """Persistence-only repository for :class:`EmailVerificationToken`."""

    model = EmailVerificationToken

    def get_by_token(self, token: str) -> EmailVerificationToken | None:
        """Fetch a token row by its secret value."""
        stmt = select(EmailVerificationToken).where(EmailVerificationToken.token == token)
        return cast(EmailVerificationToken | None, self.session.execute(stmt).scalars().first())

    def get_by_token_for_update(self, token: str) -> EmailVerificationToken | None:
        """Same as :meth:`get_by_token` but row-locked where the dialect allows."""
        stmt = (
            select(EmailVerificationToken)
            .where(EmailVerificationToken.token == token)
            .with_for_update()
        )
        return cast(EmailVerificationToken | None, self.session.execute(stmt).scalars().first())

    def count_active_for_user(self, user_id: int, *, now: datetime) -> int:
        """Count unused, unexpired tokens held by ``user_id`` (all types)."""
        stmt = select(func.count(EmailVerificationToken.id)).where(
            EmailVerificationToken.user_id == user_id,
            EmailVerificationToken.is_used.is_(False),
            EmailVerificationToken.expires_at > now,
        )
        return int(self.session.execute(stmt).scalar_one())

    def delete_expired(self, *, now: datetime) -> int:
        """Delete every token whose ``expires_at`` is before ``now``.

        :returns: Number of rows removed.
        """
        stmt = (
            delete(EmailVerificationToken)
            .where(EmailVerificationToken.expires_at < now)
            .execution_options(synchronize_session="fetch")
        )
        result = self.session.execute(stmt)
        return int(result.rowcount or 0)

    def statistics(self, *, now: datetime) -> dict[str, int]:
        """Aggregate counts for monitoring.

        ``active`` means unused and unexpired; ``expired`` counts unused
        tokens past their expiry; ``used`` counts consumed tokens.
        """
        t = EmailVerificationToken

        def _count(*where) -> int:
            stmt = select(func.count(t.id)).where(*where)
            return int(self.session.execute(stmt).scalar_one())

        return {
            "total": _count(),
            "active": _count(t.is_used.is_(False), t.expires_at > now),
            "expired": _count(t.is_used.is_(False), t.expires_at <= now),
            "used": _count(t.is_used.is_(True)),
            "email_verification": _count(t.type == TokenType.EMAIL_VERIFICATION),
            "password_reset": _count(t.type == TokenType.PASSWORD_RESET),
        }
