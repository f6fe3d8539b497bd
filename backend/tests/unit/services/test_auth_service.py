from __future__ import annotations

import pytest

from authcore.models.audit_log import AuditLog
from authcore.services._shared.errors import (
    InvalidCredentialsError,
    SessionError,
    StaleRefreshTokenError,
)
from authcore.services.audit.service import AuditLogService
from authcore.services.auth.credentials import CredentialValidator
from authcore.services.auth.dto import LoginIn, RefreshIn
from authcore.services.auth.login import LoginOrchestrator
from authcore.services.auth.service import AuthService
from authcore.services.email_verification.service import EmailVerificationTokenManager
from authcore.services.password.service import PasswordService
from authcore.services.registration.dto import RegistrationIn
from authcore.services.registration.service import RegistrationOrchestrator
from tests.factories.user import DEFAULT_PASSWORD, UserFactory


@pytest.fixture()
def auth(hasher, tokens, mailer, audit, session_manager, lockout) -> AuthService:
    verification = EmailVerificationTokenManager(mailer=mailer)
    return AuthService(
        login=LoginOrchestrator(
            lockout=lockout,
            credentials=CredentialValidator(hasher=hasher),
            tokens=tokens,
            audit=audit,
            sessions=session_manager,
        ),
        registration=RegistrationOrchestrator(
            hasher=hasher, verification=verification, audit=audit
        ),
        sessions=session_manager,
        lockout=lockout,
        verification=verification,
        password=PasswordService(
            hasher=hasher, verification=verification, sessions=session_manager, audit=audit
        ),
        audit=audit,
    )


def _login(auth: AuthService, email: str):
    return auth.login(LoginIn(email=email, password=DEFAULT_PASSWORD, ip_address="1.1.1.1"))


class TestAuthService:
    def test_register_verify_login_flow(self, auth, mailer):
        out = auth.register(
            RegistrationIn(
                email="flow@example.com",
                password="StrongP@ssw0rd",
                first_name="Flow",
                last_name="Test",
            )
        )
        token = mailer.outbox[-1].token

        assert auth.verification.verify_token(token, "flow@example.com").success

        login = auth.login(LoginIn(email="flow@example.com", password="StrongP@ssw0rd"))
        assert login.user.id == out.user.id
        assert login.user.is_email_verified is True

    def test_refresh_returns_rotated_pair(self, auth, audit):
        UserFactory(email="refresh@example.com")
        first = _login(auth, "refresh@example.com")

        pair = auth.refresh_tokens(RefreshIn(refresh_token=first.tokens.refresh_token))

        assert pair.refresh_token != first.tokens.refresh_token
        assert pair.session_id == first.tokens.session_id
        assert pair.expires_in == 15 * 60
        assert audit.actions()[-1] == ("token_refresh", True)

    def test_failed_refresh_is_audited(self, auth, audit):
        UserFactory(email="stale@example.com")
        first = _login(auth, "stale@example.com")
        auth.refresh_tokens(RefreshIn(refresh_token=first.tokens.refresh_token))

        with pytest.raises(StaleRefreshTokenError):
            auth.refresh_tokens(RefreshIn(refresh_token=first.tokens.refresh_token))

        assert audit.actions()[-1] == ("token_refresh", False)

    def test_logout_single_session(self, auth, session_manager):
        user = UserFactory(email="one@example.com")
        a = _login(auth, "one@example.com")
        b = _login(auth, "one@example.com")

        assert auth.logout(user.id, session_id=a.tokens.session_id) == 1

        assert session_manager.validate_session(a.tokens.session_id).is_valid is False
        assert session_manager.validate_session(b.tokens.session_id).is_valid is True

    def test_logout_ignores_session_of_another_user(self, auth, session_manager, audit):
        alice = UserFactory(email="alice@example.com")
        UserFactory(email="bob@example.com")
        bob_login = _login(auth, "bob@example.com")

        assert auth.logout(alice.id, session_id=bob_login.tokens.session_id) == 0

        assert session_manager.validate_session(bob_login.tokens.session_id).is_valid is True
        assert audit.events[-1].extra == {"sessions_invalidated": 0}

    def test_logout_everywhere(self, auth, session_manager, audit):
        user = UserFactory(email="all@example.com")
        a = _login(auth, "all@example.com")
        b = _login(auth, "all@example.com")

        assert auth.logout(user.id) == 2

        assert session_manager.validate_session(a.tokens.session_id).is_valid is False
        assert session_manager.validate_session(b.tokens.session_id).is_valid is False
        assert audit.actions()[-1] == ("logout", True)
        with pytest.raises(SessionError):
            auth.refresh_tokens(RefreshIn(refresh_token=a.tokens.refresh_token))

    def test_password_reset_then_login_with_new_password(self, auth):
        UserFactory(email="newpass@example.com")
        before = _login(auth, "newpass@example.com")
        token = auth.request_password_reset("newpass@example.com").token.token

        assert auth.reset_password(token, "Fresh-Pass9").success is True

        with pytest.raises(SessionError):
            auth.refresh_tokens(RefreshIn(refresh_token=before.tokens.refresh_token))
        with pytest.raises(InvalidCredentialsError):
            _login(auth, "newpass@example.com")
        after = auth.login(LoginIn(email="newpass@example.com", password="Fresh-Pass9"))
        assert after.tokens.session_id is not None

    def test_service_stats(self, auth):
        UserFactory(email="stats@example.com")
        _login(auth, "stats@example.com")
        with pytest.raises(InvalidCredentialsError):
            auth.login(LoginIn(email="nobody@example.com", password="x"))

        stats = auth.get_service_stats()

        assert stats.total_sessions == 1
        assert stats.lockout_total_tracked == 1
        assert stats.lockout_currently_locked == 0

    def test_initialize_and_destroy_manage_sweeps(self, auth):
        auth.initialize()
        assert auth.lockout._sweeper is not None
        assert auth.verification._sweeper is not None

        auth.destroy()

        assert auth.lockout._sweeper is None
        assert auth.verification._sweeper is None


class TestAuditLogService:
    def test_record_persists_row(self, session):
        service = AuditLogService()
        user = UserFactory()

        service.record(
            user_id=user.id,
            action="login",
            success=False,
            description="Invalid email or password",
            ip_address="9.9.9.9",
            session_id="sess-1",
            email="someone@example.com",
        )

        row = session.query(AuditLog).filter_by(action="login").one()
        assert row.success is False
        assert row.error_message == "Invalid email or password"
        assert row.session_id == "sess-1"
        assert row.resource_type == "auth"
        assert row.details == {"email": "someone@example.com"}

    def test_recent_returns_newest_first(self):
        service = AuditLogService()
        service.record(user_id=None, action="login", success=True)
        service.record(user_id=None, action="logout", success=True)

        events = service.recent(limit=10)

        assert [e.action for e in events[:2]] == ["logout", "login"]
        assert [e.action for e in service.recent(action="login")] == ["login"]

    def test_record_never_raises(self, monkeypatch):
        service = AuditLogService()

        def boom():
            raise RuntimeError("db down")

        monkeypatch.setattr(service, "rw_uow", boom)

        service.record(user_id=None, action="login", success=True)
