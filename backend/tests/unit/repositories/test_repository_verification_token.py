"""Unit tests for EmailVerificationTokenRepository."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from authcore.models.email_verification_token import EmailVerificationToken, TokenType
from authcore.repositories.email_verification_token import EmailVerificationTokenRepository
from tests.factories.user import UserFactory
from tests.factories.verification_token import VerificationTokenFactory


class TestEmailVerificationTokenRepository:
    @pytest.fixture()
    def repo(self):
        return EmailVerificationTokenRepository()

    def test_get_by_token(self, repo):
        row = VerificationTokenFactory()

        assert repo.get_by_token(row.token).id == row.id
        assert repo.get_by_token_for_update(row.token).id == row.id
        assert repo.get_by_token("missing") is None

    def test_count_active_for_user(self, repo):
        user = UserFactory(pending=True)
        VerificationTokenFactory(user=user)
        VerificationTokenFactory(user=user, used=True)
        VerificationTokenFactory(user=user, expired=True)

        assert repo.count_active_for_user(user.id, now=datetime.now(UTC)) == 1

    def test_delete_expired(self, repo, session):
        keep = VerificationTokenFactory()
        VerificationTokenFactory(expired=True)
        VerificationTokenFactory(expired=True)

        assert repo.delete_expired(now=datetime.now(UTC)) == 2
        assert [r.id for r in session.query(EmailVerificationToken).all()] == [keep.id]

    def test_statistics(self, repo):
        VerificationTokenFactory()
        VerificationTokenFactory(expired=True)
        VerificationTokenFactory(used=True)
        VerificationTokenFactory(type=TokenType.PASSWORD_RESET)

        stats = repo.statistics(now=datetime.now(UTC))

        assert stats == {
            "total": 4,
            "active": 2,
            "expired": 1,
            "used": 1,
            "email_verification": 3,
            "password_reset": 1,
        }
