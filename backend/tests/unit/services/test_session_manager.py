from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta

import pytest
from freezegun import freeze_time

from authcore.core.config import SessionSettings
from authcore.services._shared.errors import (
    SessionLimitExceededError,
    SessionNotFoundError,
    StaleRefreshTokenError,
    TokenRotationError,
    TokenUserMismatchError,
)
from authcore.services._shared.ports import ACCESS_TOKEN_TYPE, InMemorySessionStore
from authcore.services.sessions.manager import SessionManager


class TestCreateSession:
    def test_creates_session_with_token_pair(self, session_manager, tokens):
        s = session_manager.create_session(
            "42", user_agent="pytest", ip_address="10.0.0.1", metadata={"a": 1}
        )

        assert s.user_id == "42"
        assert s.is_active
        assert s.expires_at - s.created_at == timedelta(days=7)
        assert s.metadata == {"a": 1}
        claims = tokens.verify(s.access_token, expected_type=ACCESS_TOKEN_TYPE)
        assert claims["sub"] == "42"
        assert session_manager.store.find_by_refresh_token(s.refresh_token).id == s.id

    def test_session_ids_are_unique(self, session_manager):
        ids = {session_manager.create_session("1").id for _ in range(5)}
        assert len(ids) == 5

    def test_enforces_per_user_cap(self, session_store, tokens):
        manager = SessionManager(
            store=session_store, tokens=tokens, settings=SessionSettings(max_sessions_per_user=2)
        )
        manager.create_session("1")
        manager.create_session("1")

        with pytest.raises(SessionLimitExceededError):
            manager.create_session("1")
        # other users are unaffected
        manager.create_session("2")

    def test_invalidated_sessions_free_the_cap(self, session_store, tokens):
        manager = SessionManager(
            store=session_store, tokens=tokens, settings=SessionSettings(max_sessions_per_user=1)
        )
        first = manager.create_session("1")
        assert manager.invalidate_session(first.id) is True

        second = manager.create_session("1")
        assert second.id != first.id

    def test_negative_custom_timeout_creates_expired_session(self, session_manager):
        s = session_manager.create_session("1", custom_timeout=timedelta(seconds=-1))

        result = session_manager.validate_session(s.id)

        assert result.is_valid is False
        assert result.reason == "Session has expired"
        assert session_manager.store.find_by_id(s.id).is_active is False


class TestValidateSession:
    def test_unknown_session(self, session_manager):
        result = session_manager.validate_session("nope")
        assert result.is_valid is False
        assert result.reason == "Session not found"

    def test_inactive_session(self, session_manager):
        s = session_manager.create_session("1")
        session_manager.invalidate_session(s.id)

        result = session_manager.validate_session(s.id)

        assert result.is_valid is False
        assert result.reason == "Session is inactive"

    def test_valid_session_touches_activity(self, session_manager):
        with freeze_time("2026-01-01 12:00:00"):
            s = session_manager.create_session("1")
        with freeze_time("2026-01-01 12:30:00"):
            result = session_manager.validate_session(s.id)

        assert result.is_valid is True
        assert result.needs_refresh is False
        assert result.time_until_expiry == timedelta(days=7) - timedelta(minutes=30)
        stored = session_manager.store.find_by_id(s.id)
        assert stored.last_activity == datetime(2026, 1, 1, 12, 30, tzinfo=UTC)

    def test_needs_refresh_close_to_expiry(self, session_manager):
        with freeze_time("2026-01-01 00:00:00"):
            s = session_manager.create_session("1", custom_timeout=timedelta(hours=1))
        with freeze_time("2026-01-01 00:50:00"):
            result = session_manager.validate_session(s.id)

        assert result.is_valid is True
        assert result.needs_refresh is True


class TestRefreshTokens:
    def test_rotation_issues_new_pair(self, session_manager):
        s = session_manager.create_session("1")

        result = session_manager.refresh_tokens(s.refresh_token, user_agent="ua", ip_address="ip")

        assert result.refresh_token is not None
        assert result.refresh_token != s.refresh_token
        assert result.access_token != s.access_token
        assert result.session.id == s.id
        assert result.expires_in == timedelta(minutes=15)
        stored = session_manager.store.find_by_id(s.id)
        assert stored.refresh_token == result.refresh_token
        assert stored.user_agent == "ua"

    def test_old_refresh_token_is_stale_after_rotation(self, session_manager):
        s = session_manager.create_session("1")
        session_manager.refresh_tokens(s.refresh_token)

        with pytest.raises(StaleRefreshTokenError):
            session_manager.refresh_tokens(s.refresh_token)

    def test_stale_token_is_both_not_found_and_rotation_error(self, session_manager):
        s = session_manager.create_session("1")
        session_manager.refresh_tokens(s.refresh_token)

        with pytest.raises(SessionNotFoundError):
            session_manager.refresh_tokens(s.refresh_token)
        with pytest.raises(TokenRotationError):
            session_manager.refresh_tokens(s.refresh_token)

    def test_without_rotation_keeps_refresh_token(self, session_store, tokens):
        manager = SessionManager(
            store=session_store,
            tokens=tokens,
            settings=SessionSettings(enable_token_rotation=False),
        )
        s = manager.create_session("1")

        result = manager.refresh_tokens(s.refresh_token)

        assert result.refresh_token is None
        assert result.access_token != s.access_token
        assert session_store.find_by_id(s.id).refresh_token == s.refresh_token
        # still usable
        manager.refresh_tokens(s.refresh_token)

    def test_access_token_is_rejected_as_refresh_token(self, session_manager):
        s = session_manager.create_session("1")

        with pytest.raises(TokenRotationError):
            session_manager.refresh_tokens(s.access_token)

    def test_garbage_token_is_rejected(self, session_manager):
        with pytest.raises(TokenRotationError):
            session_manager.refresh_tokens("not-a-token")

    def test_unknown_but_valid_refresh_token(self, session_manager, tokens):
        orphan = tokens.create_refresh_token(identity="1")

        with pytest.raises(SessionNotFoundError):
            session_manager.refresh_tokens(orphan)

    def test_inactive_session_cannot_refresh(self, session_manager):
        s = session_manager.create_session("1")
        session_manager.invalidate_session(s.id)

        with pytest.raises(SessionNotFoundError, match="no longer active"):
            session_manager.refresh_tokens(s.refresh_token)

    def test_expired_session_cannot_refresh(self, session_manager):
        with freeze_time("2026-01-01 00:00:00"):
            s = session_manager.create_session("1", custom_timeout=timedelta(minutes=30))
        with freeze_time("2026-01-01 01:00:00"), pytest.raises(SessionNotFoundError):
            session_manager.refresh_tokens(s.refresh_token)

    def test_subject_mismatch(self, session_manager, session_store):
        s = session_manager.create_session("1")
        stored = session_store.find_by_id(s.id)
        stored.user_id = "2"
        session_store.save(stored)

        with pytest.raises(TokenUserMismatchError):
            session_manager.refresh_tokens(s.refresh_token)

    def test_concurrent_refresh_has_exactly_one_winner(self, session_manager):
        s = session_manager.create_session("1")
        barrier = threading.Barrier(8)
        outcomes: list[str] = []
        lock = threading.Lock()

        def worker() -> None:
            barrier.wait()
            try:
                session_manager.refresh_tokens(s.refresh_token)
                outcome = "ok"
            except StaleRefreshTokenError:
                outcome = "stale"
            with lock:
                outcomes.append(outcome)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("ok") == 1
        assert outcomes.count("stale") == 7


class TestInvalidation:
    def test_invalidate_session_is_idempotent(self, session_manager):
        s = session_manager.create_session("1")

        assert session_manager.invalidate_session(s.id) is True
        assert session_manager.invalidate_session(s.id) is False
        assert session_manager.invalidate_session("missing") is False

    def test_invalidate_user_sessions(self, session_manager):
        a = session_manager.create_session("1")
        b = session_manager.create_session("1")
        other = session_manager.create_session("2")

        assert session_manager.invalidate_user_sessions("1") == 2

        for sid in (a.id, b.id):
            assert session_manager.validate_session(sid).is_valid is False
        assert session_manager.validate_session(other.id).is_valid is True
        assert session_manager.get_user_sessions("1") == []

    def test_stats_track_active_sessions(self, session_manager):
        session_manager.create_session("1")
        session_manager.create_session("2")
        dropped = session_manager.create_session("2")
        session_manager.invalidate_session(dropped.id)

        stats = session_manager.get_stats()

        assert stats.total_sessions == 2
        assert stats.sessions_per_user == {"1": 1, "2": 1}
        assert stats.sessions_expired_last_hour == 1


class TestLifecycle:
    def test_initialize_and_shutdown_drive_the_store(self, tokens):
        store = InMemorySessionStore()
        manager = SessionManager(store=store, tokens=tokens)
        manager.initialize()
        assert store._sweeper is not None
        manager.shutdown()
        assert store._sweeper is None
