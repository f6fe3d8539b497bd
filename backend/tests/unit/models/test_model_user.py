"""Tests for the User model."""

from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError

from authcore.models.role import DEFAULT_ROLE
from authcore.models.user import User, UserStatus
from tests.factories.user import RoleFactory, UserFactory


class TestUser:
    def test_email_normalized_and_unique(self, session):
        u1 = User(email="  Alice@Example.com ", name="Alice", password_hash="h")
        session.add(u1)
        session.flush()
        assert u1.email == "alice@example.com"

        session.add(User(email="alice@example.com", name="Other", password_hash="h"))
        with pytest.raises(IntegrityError):
            session.flush()

    @pytest.mark.parametrize("email", ["", "no-at-sign", "a@localhost"])
    def test_invalid_emails_are_rejected(self, email):
        with pytest.raises(ValueError):
            User(email=email, name="X", password_hash="h")

    def test_name_is_trimmed_and_required(self):
        assert User(email="a@b.co", name="  Jane Doe ", password_hash="h").name == "Jane Doe"
        with pytest.raises(ValueError):
            User(email="a@b.co", name="   ", password_hash="h")

    def test_new_users_start_pending(self, session):
        user = User(email="new@example.com", name="New", password_hash="h")
        session.add(user)
        session.flush()

        assert user.status == UserStatus.PENDING
        assert user.is_active is False
        assert user.is_email_verified is False

    def test_active_factory_user(self):
        user = UserFactory()

        assert user.is_active is True
        assert user.is_email_verified is True

    def test_role_name_falls_back_to_default(self):
        assert UserFactory().role_name == DEFAULT_ROLE
        assert UserFactory(role=RoleFactory(name="Admin")).role_name == "admin"
