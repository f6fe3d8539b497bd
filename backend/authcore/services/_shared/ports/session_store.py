from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

from authcore.services._shared.periodic import PeriodicTask

log = logging.getLogger(__name__)


@dataclass(slots=True)
class Session:
    """
    Server-side record binding a user to a token pair.

    :ivar id: Opaque unique identifier (uuid4 string).
    :ivar user_id: Owning user id.
    :ivar access_token: Current access token.
    :ivar refresh_token: Current refresh token; unique across sessions.
    :ivar created_at: Creation time (UTC).
    :ivar last_activity: Last validate/refresh time (UTC).
    :ivar expires_at: Absolute expiry fixed at creation (UTC).
    :ivar is_active: ``False`` once invalidated.
    """

    id: str
    user_id: str
    access_token: str
    refresh_token: str
    created_at: datetime
    last_activity: datetime
    expires_at: datetime
    is_active: bool = True
    user_agent: str | None = None
    ip_address: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or datetime.now(UTC)) > self.expires_at

    def copy(self) -> Session:
        return replace(self, metadata=copy.deepcopy(self.metadata))


@dataclass(frozen=True, slots=True)
class SessionStats:
    """
    Monitoring snapshot of a session store.

    :ivar total_sessions: Active sessions.
    :ivar sessions_per_user: Active sessions per user id.
    :ivar average_session_duration: Mean age of active sessions, in seconds.
    :ivar sessions_created_last_hour: Sessions created in the last hour.
    :ivar sessions_expired_last_hour: Sessions that expired or were
        invalidated in the last hour and are still stored.
    """

    total_sessions: int
    sessions_per_user: dict[str, int]
    average_session_duration: float
    sessions_created_last_hour: int
    sessions_expired_last_hour: int


def compute_stats(sessions: Iterable[Session], now: datetime) -> SessionStats:
    """Aggregate :class:`SessionStats` from a snapshot of sessions."""
    hour_ago = now - timedelta(hours=1)
    per_user: dict[str, int] = {}
    total_age = 0.0
    active = 0
    created = 0
    expired = 0
    for s in sessions:
        if s.created_at > hour_ago:
            created += 1
        if s.is_active and not s.is_expired(now):
            active += 1
            total_age += (now - s.created_at).total_seconds()
            per_user[s.user_id] = per_user.get(s.user_id, 0) + 1
        elif (hour_ago < s.expires_at <= now) or (not s.is_active and s.last_activity > hour_ago):
            expired += 1
    return SessionStats(
        total_sessions=active,
        sessions_per_user=per_user,
        average_session_duration=total_age / active if active else 0.0,
        sessions_created_last_hour=created,
        sessions_expired_last_hour=expired,
    )


class SessionStore(Protocol):
    """
    Keyed session storage with three indices: id, refresh token, user id.

    Every write that touches more than one index is atomic from the
    caller's point of view. Returned sessions are copies; mutate them and
    call :meth:`save` to persist.
    """

    def save(self, session: Session) -> None:
        """
        Upsert by id, moving the refresh-token index entry if it changed.

        Saving an inactive session removes it from the user index, so it no
        longer counts toward the per-user session cap.
        """

    def compare_and_save(self, session: Session, *, expected_refresh_token: str) -> bool:
        """
        Save only if the stored session still holds ``expected_refresh_token``.

        :returns: ``False`` when the session is gone or was rotated meanwhile.
        """

    def find_by_id(self, session_id: str) -> Session | None: ...

    def find_by_refresh_token(self, refresh_token: str) -> Session | None: ...

    def find_by_user_id(self, user_id: str) -> list[Session]:
        """Live sessions of the user; invalidated ones leave the user index."""

    def find_active_sessions(self) -> list[Session]: ...

    def delete(self, session_id: str) -> bool:
        """Remove from every index. :returns: True if it existed."""

    def get_user_session_count(self, user_id: str) -> int: ...

    def update_last_activity(self, session_id: str, when: datetime | None = None) -> bool: ...

    def invalidate_all_by_user_id(self, user_id: str) -> int:
        """Deactivate every session of the user and clear the user index."""

    def cleanup_expired_sessions(self) -> int:
        """Delete expired or inactive sessions. :returns: Number removed."""

    def get_stats(self) -> SessionStats: ...

    def initialize(self, cleanup_interval: timedelta | None = None) -> None:
        """Start the periodic cleanup sweep."""

    def shutdown(self) -> None:
        """Stop the sweep and release resources."""


class InMemorySessionStore(SessionStore):
    """
    Process-local session store.

    A primary map keyed by session id plus two secondary maps (refresh
    token -> id, user id -> set of ids), all mutated under one re-entrant
    lock.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._by_refresh: dict[str, str] = {}
        self._by_user: dict[str, set[str]] = {}
        self._lock = threading.RLock()
        self._sweeper: PeriodicTask | None = None

    # ------------------------- helpers -------------------------

    @staticmethod
    def _now() -> datetime:
        return datetime.now(UTC)

    def _put(self, session: Session) -> None:
        # Caller holds the lock.
        stored = session.copy()
        previous = self._sessions.get(stored.id)
        if previous is not None and previous.refresh_token != stored.refresh_token:
            self._by_refresh.pop(previous.refresh_token, None)
        if previous is not None and previous.user_id != stored.user_id:
            self._unindex_user(previous.user_id, stored.id)
        self._sessions[stored.id] = stored
        self._by_refresh[stored.refresh_token] = stored.id
        # The user index only holds live sessions; it backs the per-user cap.
        if stored.is_active:
            self._by_user.setdefault(stored.user_id, set()).add(stored.id)
        else:
            self._unindex_user(stored.user_id, stored.id)

    def _unindex_user(self, user_id: str, session_id: str) -> None:
        ids = self._by_user.get(user_id)
        if ids is None:
            return
        ids.discard(session_id)
        if not ids:
            del self._by_user[user_id]

    # -------------------------- API ----------------------------

    def save(self, session: Session) -> None:
        with self._lock:
            self._put(session)

    def compare_and_save(self, session: Session, *, expected_refresh_token: str) -> bool:
        with self._lock:
            current = self._sessions.get(session.id)
            if current is None or current.refresh_token != expected_refresh_token:
                return False
            self._put(session)
            return True

    def find_by_id(self, session_id: str) -> Session | None:
        with self._lock:
            s = self._sessions.get(session_id)
            return s.copy() if s else None

    def find_by_refresh_token(self, refresh_token: str) -> Session | None:
        with self._lock:
            session_id = self._by_refresh.get(refresh_token)
            if session_id is None:
                return None
            s = self._sessions.get(session_id)
            return s.copy() if s else None

    def find_by_user_id(self, user_id: str) -> list[Session]:
        with self._lock:
            ids = sorted(self._by_user.get(user_id, set()))
            return [self._sessions[i].copy() for i in ids if i in self._sessions]

    def find_active_sessions(self) -> list[Session]:
        now = self._now()
        with self._lock:
            return [
                s.copy() for s in self._sessions.values() if s.is_active and not s.is_expired(now)
            ]

    def delete(self, session_id: str) -> bool:
        with self._lock:
            s = self._sessions.pop(session_id, None)
            if s is None:
                return False
            if self._by_refresh.get(s.refresh_token) == session_id:
                del self._by_refresh[s.refresh_token]
            self._unindex_user(s.user_id, session_id)
            return True

    def get_user_session_count(self, user_id: str) -> int:
        with self._lock:
            return len(self._by_user.get(user_id, ()))

    def update_last_activity(self, session_id: str, when: datetime | None = None) -> bool:
        with self._lock:
            s = self._sessions.get(session_id)
            if s is None:
                return False
            s.last_activity = when or self._now()
            return True

    def invalidate_all_by_user_id(self, user_id: str) -> int:
        with self._lock:
            ids = self._by_user.pop(user_id, set())
            for session_id in ids:
                s = self._sessions.get(session_id)
                if s is not None:
                    s.is_active = False
            return len(ids)

    def cleanup_expired_sessions(self) -> int:
        now = self._now()
        with self._lock:
            doomed = [
                sid for sid, s in self._sessions.items() if s.is_expired(now) or not s.is_active
            ]
            for sid in doomed:
                self.delete(sid)
        if doomed:
            log.info("Removed %d expired or inactive sessions", len(doomed))
        return len(doomed)

    def get_stats(self) -> SessionStats:
        with self._lock:
            snapshot = list(self._sessions.values())
            return compute_stats(snapshot, self._now())

    def initialize(self, cleanup_interval: timedelta | None = None) -> None:
        if cleanup_interval is None:
            return
        with self._lock:
            if self._sweeper is None:
                self._sweeper = PeriodicTask(
                    "session-cleanup", cleanup_interval, self.cleanup_expired_sessions
                )
            self._sweeper.start()

    def shutdown(self) -> None:
        with self._lock:
            if self._sweeper is not None:
                self._sweeper.stop()
                self._sweeper = None
            self._sessions.clear()
            self._by_refresh.clear()
            self._by_user.clear()
