from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from freezegun import freeze_time

from authcore.core.config import VerificationSettings
from authcore.models.email_verification_token import EmailVerificationToken, TokenType
from authcore.models.user import User, UserStatus
from authcore.services._shared.ports import InMemoryMailer
from authcore.services.email_verification.service import EmailVerificationTokenManager
from tests.factories.user import UserFactory
from tests.factories.verification_token import VerificationTokenFactory


class TestEmailVerificationTokenManager:
    """Token issuance under a per-user cap, single-use consumption and maintenance."""

    @pytest.fixture()
    def manager(self, mailer) -> EmailVerificationTokenManager:
        return EmailVerificationTokenManager(
            settings=VerificationSettings(max_tokens_per_user=3), mailer=mailer
        )

    # -------------------------- create_token ------------------------------ #

    def test_create_token(self, manager):
        user = UserFactory(pending=True)

        result = manager.create_token(user.id, ip_address="1.2.3.4", user_agent="pytest")

        assert result.success is True
        assert result.message == "Token created successfully"
        assert result.user_id == user.id
        assert result.token.type is TokenType.EMAIL_VERIFICATION
        assert result.token.is_used is False
        lifetime = result.token.expires_at - datetime.now(UTC)
        assert timedelta(hours=23) < lifetime <= timedelta(hours=24)

    def test_password_reset_uses_its_own_default_lifetime(self, manager):
        user = UserFactory()

        result = manager.create_token(user.id, TokenType.PASSWORD_RESET)

        assert result.success is True
        assert result.token.expires_at - datetime.now(UTC) <= timedelta(hours=1)

    def test_unknown_user(self, manager):
        result = manager.create_token(999_999)

        assert result.success is False
        assert result.message == "User not found"

    def test_already_verified_user(self, manager):
        user = UserFactory()

        result = manager.create_token(user.id)

        assert result.success is False
        assert result.error == "Email is already verified"

    @pytest.mark.parametrize("hours", [0, -3])
    def test_rejects_non_positive_expiry(self, manager, hours):
        user = UserFactory(pending=True)

        result = manager.create_token(user.id, expires_in_hours=hours)

        assert result.success is False

    def test_rejects_unknown_type(self, manager):
        user = UserFactory(pending=True)

        result = manager.create_token(user.id, "magic_link")

        assert result.success is False
        assert "Invalid token type" in result.error

    def test_enforces_active_token_cap(self, manager):
        user = UserFactory(pending=True)
        for _ in range(3):
            assert manager.create_token(user.id).success is True

        result = manager.create_token(user.id)

        assert result.success is False
        assert result.message == "Token limit exceeded"
        assert result.error == "Maximum tokens (3) reached for this user"

    def test_expired_and_used_tokens_do_not_count_toward_cap(self, manager):
        user = UserFactory(pending=True)
        VerificationTokenFactory(user=user, expired=True)
        VerificationTokenFactory(user=user, used=True)
        VerificationTokenFactory(user=user)
        VerificationTokenFactory(user=user)

        assert manager.create_token(user.id).success is True
        assert manager.create_token(user.id).success is False

    # -------------------------- verify_token ------------------------------ #

    def test_verify_activates_user(self, manager, session):
        user = UserFactory(pending=True, email="verify@example.com")
        token = manager.create_token(user.id).token.token

        result = manager.verify_token(token, "Verify@Example.com")

        assert result.success is True
        assert result.message == "Email verified successfully"
        refreshed = session.get(User, user.id)
        assert refreshed.status is UserStatus.ACTIVE
        assert refreshed.email_verified_at is not None
        row = session.query(EmailVerificationToken).filter_by(token=token).one()
        assert row.is_used is True
        assert row.used_at is not None

    def test_token_is_single_use(self, manager):
        user = UserFactory(pending=True, email="once@example.com")
        token = manager.create_token(user.id).token.token
        assert manager.verify_token(token, "once@example.com").success is True

        again = manager.verify_token(token, "once@example.com")

        assert again.success is False
        assert again.message == "Token already used"
        assert again.error == "Token has already been used"

    def test_expired_token(self, manager):
        user = UserFactory(pending=True, email="late@example.com")
        with freeze_time(datetime.now(UTC) - timedelta(days=2)):
            token = manager.create_token(user.id).token.token

        result = manager.verify_token(token, "late@example.com")

        assert result.success is False
        assert result.message == "Token expired"

    def test_unknown_token_and_wrong_email_look_the_same(self, manager):
        user = UserFactory(pending=True, email="owner@example.com")
        token = manager.create_token(user.id).token.token

        unknown = manager.verify_token("does-not-exist", "owner@example.com")
        wrong_owner = manager.verify_token(token, "intruder@example.com")

        assert unknown.message == wrong_owner.message == "Token not found"
        assert unknown.error == wrong_owner.error == "Invalid or expired verification token"

    @pytest.mark.parametrize(("token", "email"), [("", "a@example.com"), ("abc", "nope")])
    def test_malformed_input(self, manager, token, email):
        result = manager.verify_token(token, email)

        assert result.success is False
        assert result.message == "Token verification failed"

    def test_password_reset_token_is_refused(self, manager, session):
        user = UserFactory(pending=True, email="reset@example.com")
        row = VerificationTokenFactory(user=user, type=TokenType.PASSWORD_RESET)

        result = manager.verify_token(row.token, "reset@example.com")

        assert result.success is False
        assert result.message == "Token not found"
        assert session.get(EmailVerificationToken, row.id).is_used is False
        assert session.get(User, user.id).status is UserStatus.PENDING

    # -------------------------- mail -------------------------------------- #

    def test_send_verification_email_falls_back_to_stored_name(self, manager, mailer):
        user = UserFactory(email="named@example.com", name="Ada Lovelace")

        assert manager.send_verification_email(user.id, "tok", "named@example.com") is True

        assert mailer.outbox[-1].name == "Ada Lovelace"
        assert mailer.outbox[-1].expiry_hours == 24

    def test_send_custom_email_overrides_url_and_expiry(self, manager, mailer):
        sent = manager.send_custom_verification_email(
            1, "tok", "x@example.com", name="X", url="https://app/confirm", expiry_hours=2
        )

        assert sent is True
        assert mailer.outbox[-1].url == "https://app/confirm"
        assert mailer.outbox[-1].expiry_hours == 2

    def test_unknown_user_name_falls_back_to_local_part(self, manager, mailer):
        manager.send_verification_email(424242, "tok", "someone@example.com")

        assert mailer.outbox[-1].name == "someone"

    def test_send_failures_return_false(self):
        refusing = EmailVerificationTokenManager(mailer=InMemoryMailer(fail=True))
        raising = EmailVerificationTokenManager(mailer=InMemoryMailer(raise_error=OSError("x")))

        assert refusing.send_verification_email(1, "t", "a@example.com", "A") is False
        assert raising.send_verification_email(1, "t", "a@example.com", "A") is False

    # -------------------------- maintenance ------------------------------- #

    def test_cleanup_and_statistics(self, manager):
        user = UserFactory(pending=True)
        VerificationTokenFactory(user=user, expired=True)
        VerificationTokenFactory(user=user, expired=True, type=TokenType.PASSWORD_RESET)
        VerificationTokenFactory(user=user, used=True)
        VerificationTokenFactory(user=user)

        stats = manager.get_token_statistics()
        assert stats.total == 4
        assert stats.active == 1
        assert stats.expired == 2
        assert stats.used == 1
        assert stats.password_reset == 1
        assert stats.email_verification == 3

        assert manager.cleanup_expired_tokens() == 2
        assert manager.get_token_statistics().total == 2

    def test_initialize_and_destroy(self, manager):
        manager.initialize()
        assert manager._sweeper is not None and manager._sweeper.running

        manager.destroy()

        assert manager._sweeper is None
