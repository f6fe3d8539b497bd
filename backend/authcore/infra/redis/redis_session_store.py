# comments in English; reST docstrings
from __future__ import annotations

import json
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import redis  # type: ignore[import-untyped]

from authcore.services._shared.periodic import PeriodicTask
from authcore.services._shared.ports import Session, SessionStats, SessionStore
from authcore.services._shared.ports.session_store import compute_stats


def _s(value: Any, default: str = "") -> str:
    if value is None:
        return default
    if isinstance(value, bytes | bytearray):
        return value.decode()
    return str(value)


@dataclass(slots=True)
class RedisSessionStore(SessionStore):
    """
    Redis-backed session store.

    Layout
    ------
    * ``sess:{id}``: hash with the session fields.
    * ``sess:rt:{refresh_token}``: session id (refresh-token index).
    * ``sess:u:{user_id}``: set of session ids (user index).
    * ``sess:all``: set of every stored session id.

    Multi-key writes use WATCH/MULTI/EXEC and retry on ``WatchError``.

    :param r: A Redis client (already connected).
    """

    r: redis.Redis
    prefix: str = "sess"
    _sweeper: PeriodicTask | None = field(default=None, init=False)

    # -------------------- keys --------------------

    def _k(self, session_id: str) -> str:
        return f"{self.prefix}:{session_id}"

    def _krt(self, refresh_token: str) -> str:
        return f"{self.prefix}:rt:{refresh_token}"

    def _ku(self, user_id: str) -> str:
        return f"{self.prefix}:u:{user_id}"

    def _kall(self) -> str:
        return f"{self.prefix}:all"

    # -------------------- codec -------------------

    @staticmethod
    def _encode(session: Session) -> dict[str, str]:
        return {
            "id": session.id,
            "user_id": session.user_id,
            "access_token": session.access_token,
            "refresh_token": session.refresh_token,
            "created_at": session.created_at.isoformat(),
            "last_activity": session.last_activity.isoformat(),
            "expires_at": session.expires_at.isoformat(),
            "is_active": "1" if session.is_active else "0",
            "user_agent": session.user_agent or "",
            "ip_address": session.ip_address or "",
            "metadata": json.dumps(session.metadata),
        }

    @staticmethod
    def _decode(h: dict[Any, Any]) -> Session:
        data = {_s(k): _s(v) for k, v in h.items()}
        return Session(
            id=data["id"],
            user_id=data["user_id"],
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            created_at=datetime.fromisoformat(data["created_at"]),
            last_activity=datetime.fromisoformat(data["last_activity"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
            is_active=data.get("is_active", "0") == "1",
            user_agent=data.get("user_agent") or None,
            ip_address=data.get("ip_address") or None,
            metadata=json.loads(data.get("metadata") or "{}"),
        )

    def _members(self, key: str, client: Any = None) -> list[str]:
        source = self.r if client is None else client
        return sorted(_s(m) for m in source.smembers(key))

    # ------------------- writes -------------------

    def _write(self, session: Session, *, expected_refresh_token: str | None) -> bool:
        key = self._k(session.id)
        while True:
            try:
                with self.r.pipeline() as p:
                    p.watch(key)
                    old_rt = _s(p.hget(key, "refresh_token")) or None
                    old_uid = _s(p.hget(key, "user_id")) or None
                    if expected_refresh_token is not None and old_rt != expected_refresh_token:
                        p.unwatch()
                        return False

                    p.multi()
                    if old_rt and old_rt != session.refresh_token:
                        p.delete(self._krt(old_rt))
                    if old_uid and old_uid != session.user_id:
                        p.srem(self._ku(old_uid), session.id)
                    p.hset(key, mapping=self._encode(session))
                    p.set(self._krt(session.refresh_token), session.id)
                    if session.is_active:
                        p.sadd(self._ku(session.user_id), session.id)
                    else:
                        p.srem(self._ku(session.user_id), session.id)
                    p.sadd(self._kall(), session.id)
                    p.execute()
                return True
            except redis.WatchError:
                continue

    def save(self, session: Session) -> None:
        self._write(session, expected_refresh_token=None)

    def compare_and_save(self, session: Session, *, expected_refresh_token: str) -> bool:
        return self._write(session, expected_refresh_token=expected_refresh_token)

    def delete(self, session_id: str) -> bool:
        key = self._k(session_id)
        while True:
            try:
                with self.r.pipeline() as p:
                    p.watch(key)
                    h = p.hgetall(key)
                    if not h:
                        p.unwatch()
                        self.r.srem(self._kall(), session_id)
                        return False
                    s = self._decode(h)
                    rt_key = self._krt(s.refresh_token)
                    owns_rt = _s(p.get(rt_key)) == session_id

                    p.multi()
                    p.delete(key)
                    if owns_rt:
                        p.delete(rt_key)
                    p.srem(self._ku(s.user_id), session_id)
                    p.srem(self._kall(), session_id)
                    p.execute()
                return True
            except redis.WatchError:
                continue

    def update_last_activity(self, session_id: str, when: datetime | None = None) -> bool:
        key = self._k(session_id)
        stamp = (when or datetime.now(UTC)).isoformat()
        while True:
            try:
                with self.r.pipeline() as p:
                    p.watch(key)
                    if not p.exists(key):
                        p.unwatch()
                        return False
                    p.multi()
                    p.hset(key, "last_activity", stamp)
                    p.execute()
                return True
            except redis.WatchError:
                continue

    def invalidate_all_by_user_id(self, user_id: str) -> int:
        key_u = self._ku(user_id)
        while True:
            try:
                with self.r.pipeline() as p:
                    p.watch(key_u)
                    live = [i for i in self._members(key_u, p) if p.exists(self._k(i))]
                    p.multi()
                    for session_id in live:
                        p.hset(self._k(session_id), "is_active", "0")
                    p.delete(key_u)
                    p.execute()
                return len(live)
            except redis.WatchError:
                continue

    # -------------------- reads -------------------

    def find_by_id(self, session_id: str) -> Session | None:
        h = self.r.hgetall(self._k(session_id))
        return self._decode(h) if h else None

    def find_by_refresh_token(self, refresh_token: str) -> Session | None:
        session_id = self.r.get(self._krt(refresh_token))
        if session_id is None:
            return None
        return self.find_by_id(_s(session_id))

    def find_by_user_id(self, user_id: str) -> list[Session]:
        key_u = self._ku(user_id)
        out: list[Session] = []
        stale: list[str] = []
        for session_id in self._members(key_u):
            s = self.find_by_id(session_id)
            if s is None:
                stale.append(session_id)
            else:
                out.append(s)
        if stale:
            self.r.srem(key_u, *stale)
        return out

    def _iter_all(self) -> Iterator[Session]:
        for session_id in self._members(self._kall()):
            s = self.find_by_id(session_id)
            if s is not None:
                yield s

    def find_active_sessions(self) -> list[Session]:
        now = datetime.now(UTC)
        return [s for s in self._iter_all() if s.is_active and not s.is_expired(now)]

    def get_user_session_count(self, user_id: str) -> int:
        return int(self.r.scard(self._ku(user_id)))

    # ------------------ maintenance ----------------

    def cleanup_expired_sessions(self) -> int:
        now = datetime.now(UTC)
        removed = 0
        for s in list(self._iter_all()):
            if (s.is_expired(now) or not s.is_active) and self.delete(s.id):
                removed += 1
        return removed

    def get_stats(self) -> SessionStats:
        return compute_stats(self._iter_all(), datetime.now(UTC))

    def initialize(self, cleanup_interval: timedelta | None = None) -> None:
        if cleanup_interval is None:
            return
        if self._sweeper is None:
            self._sweeper = PeriodicTask(
                "redis-session-cleanup", cleanup_interval, self.cleanup_expired_sessions
            )
        self._sweeper.start()

    def shutdown(self) -> None:
        if self._sweeper is not None:
            self._sweeper.stop()
            self._sweeper = None
