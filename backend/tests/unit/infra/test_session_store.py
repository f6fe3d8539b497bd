"""
Contract tests shared by the in-memory and Redis session stores.

The Redis store runs against fakeredis, so both backends execute entirely
in-process.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

import fakeredis
import pytest

from authcore.infra.redis.redis_session_store import RedisSessionStore
from authcore.services._shared.ports import InMemorySessionStore, Session


def _session(user_id: str = "1", *, ttl: timedelta = timedelta(hours=1), **kw) -> Session:
    now = datetime.now(UTC)
    sid = kw.pop("id", str(uuid.uuid4()))
    return Session(
        id=sid,
        user_id=user_id,
        access_token=kw.pop("access_token", f"at-{sid}"),
        refresh_token=kw.pop("refresh_token", f"rt-{sid}"),
        created_at=kw.pop("created_at", now),
        last_activity=kw.pop("last_activity", now),
        expires_at=now + ttl,
        **kw,
    )


@pytest.fixture(params=["memory", "redis"])
def store(request):
    if request.param == "memory":
        s = InMemorySessionStore()
    else:
        r = fakeredis.FakeRedis()
        r.flushall()
        s = RedisSessionStore(r)
    yield s
    s.shutdown()


class TestSessionStoreIndices:
    def test_save_indexes_by_id_refresh_token_and_user(self, store):
        s = _session("7", metadata={"device": "phone"})
        store.save(s)

        by_id = store.find_by_id(s.id)
        assert by_id is not None
        assert by_id.user_id == "7"
        assert by_id.metadata == {"device": "phone"}
        assert store.find_by_refresh_token(s.refresh_token).id == s.id
        assert [x.id for x in store.find_by_user_id("7")] == [s.id]
        assert store.get_user_session_count("7") == 1

    def test_unknown_lookups_return_none_or_empty(self, store):
        assert store.find_by_id("missing") is None
        assert store.find_by_refresh_token("missing") is None
        assert store.find_by_user_id("nobody") == []
        assert store.get_user_session_count("nobody") == 0

    def test_resave_with_new_refresh_token_moves_reverse_index(self, store):
        s = _session("1")
        store.save(s)
        old_rt = s.refresh_token

        s.refresh_token = "rt-rotated"
        store.save(s)

        assert store.find_by_refresh_token(old_rt) is None
        assert store.find_by_refresh_token("rt-rotated").id == s.id

    def test_returned_sessions_are_copies(self, store):
        s = _session("1", metadata={"k": "v"})
        store.save(s)

        got = store.find_by_id(s.id)
        got.is_active = False
        got.metadata["k"] = "changed"

        again = store.find_by_id(s.id)
        assert again.is_active is True
        assert again.metadata == {"k": "v"}

    def test_delete_removes_every_index(self, store):
        s = _session("1")
        store.save(s)

        assert store.delete(s.id) is True
        assert store.find_by_id(s.id) is None
        assert store.find_by_refresh_token(s.refresh_token) is None
        assert store.get_user_session_count("1") == 0
        assert store.delete(s.id) is False

    def test_inactive_session_leaves_user_index(self, store):
        s = _session("1")
        store.save(s)

        s.is_active = False
        store.save(s)

        assert store.get_user_session_count("1") == 0
        assert store.find_by_user_id("1") == []
        # still reachable by id until cleanup
        assert store.find_by_id(s.id).is_active is False


class TestCompareAndSave:
    def test_saves_when_expected_token_matches(self, store):
        s = _session("1")
        store.save(s)

        s.refresh_token = "rt-next"
        assert store.compare_and_save(s, expected_refresh_token=f"rt-{s.id}") is True
        assert store.find_by_id(s.id).refresh_token == "rt-next"

    def test_rejects_when_token_was_rotated(self, store):
        s = _session("1")
        store.save(s)
        original = s.refresh_token

        first = store.find_by_id(s.id)
        first.refresh_token = "rt-winner"
        assert store.compare_and_save(first, expected_refresh_token=original) is True

        second = store.find_by_id(s.id)
        second.refresh_token = "rt-loser"
        assert store.compare_and_save(second, expected_refresh_token=original) is False
        assert store.find_by_id(s.id).refresh_token == "rt-winner"

    def test_rejects_when_session_is_gone(self, store):
        s = _session("1")
        assert store.compare_and_save(s, expected_refresh_token=s.refresh_token) is False


class TestBulkOperations:
    def test_invalidate_all_by_user_id_deactivates_and_clears_index(self, store):
        a, b = _session("1"), _session("1")
        other = _session("2")
        for s in (a, b, other):
            store.save(s)

        assert store.invalidate_all_by_user_id("1") == 2

        assert store.get_user_session_count("1") == 0
        assert store.find_by_id(a.id).is_active is False
        assert store.find_by_id(b.id).is_active is False
        assert store.find_by_id(other.id).is_active is True
        assert store.invalidate_all_by_user_id("1") == 0

    def test_update_last_activity(self, store):
        s = _session("1")
        store.save(s)
        later = datetime.now(UTC) + timedelta(minutes=5)

        assert store.update_last_activity(s.id, later) is True
        assert store.find_by_id(s.id).last_activity == later
        assert store.update_last_activity("missing") is False

    def test_cleanup_removes_expired_and_inactive(self, store):
        live = _session("1")
        expired = _session("1", ttl=timedelta(seconds=-1))
        dead = _session("2", is_active=False)
        for s in (live, expired, dead):
            store.save(s)

        assert store.cleanup_expired_sessions() == 2

        assert store.find_by_id(live.id) is not None
        assert store.find_by_id(expired.id) is None
        assert store.find_by_id(dead.id) is None
        assert [s.id for s in store.find_active_sessions()] == [live.id]

    def test_stats(self, store):
        now = datetime.now(UTC)
        store.save(_session("1", created_at=now - timedelta(minutes=10)))
        store.save(_session("1", created_at=now - timedelta(hours=3)))
        store.save(_session("2", created_at=now - timedelta(minutes=30)))
        store.save(_session("3", ttl=timedelta(minutes=-5)))

        stats = store.get_stats()

        assert stats.total_sessions == 3
        assert stats.sessions_per_user == {"1": 2, "2": 1}
        assert stats.sessions_created_last_hour == 3
        assert stats.sessions_expired_last_hour == 1
        assert stats.average_session_duration > 0


class TestSweeper:
    def test_initialize_without_interval_is_noop(self, store):
        store.initialize(None)
        store.shutdown()

    def test_initialize_starts_background_sweep(self, store):
        store.initialize(timedelta(hours=1))
        sweeper = store._sweeper
        assert sweeper is not None and sweeper.running
        store.shutdown()
        assert store._sweeper is None
