# authcore/services/lockout/tracker.py
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta

from authcore.core.config import LockoutSettings
from authcore.core.logger import redact_email
from authcore.services._shared.periodic import PeriodicTask

log = logging.getLogger(__name__)


@dataclass(slots=True)
class LockoutInfo:
    """
    Failed-login bookkeeping for one identifier.

    :ivar failed_count: Consecutive failures since the last successful login.
    :ivar last_failed: Time of the most recent failure.
    :ivar locked_until: End of the current (or last) lockout, if any.
    """

    failed_count: int
    last_failed: datetime
    locked_until: datetime | None = None

    def is_locked(self, now: datetime) -> bool:
        return self.locked_until is not None and now < self.locked_until


@dataclass(frozen=True, slots=True)
class LockoutStats:
    total_tracked: int
    currently_locked: int


class LockoutTracker:
    """
    In-process brute-force protection keyed by identifier (normalized email).

    The failure counter is only reset by :meth:`clear_lockout`, so once the
    threshold has been reached every later failure locks again immediately.

    :param settings: Threshold, lockout duration and sweep period.
    """

    def __init__(self, settings: LockoutSettings | None = None) -> None:
        self.settings = settings or LockoutSettings()
        self._records: dict[str, LockoutInfo] = {}
        self._lock = threading.RLock()
        self._sweeper: PeriodicTask | None = None

    @staticmethod
    def _now() -> datetime:
        return datetime.now(UTC)

    @staticmethod
    def _key(identifier: str) -> str:
        return identifier.strip().lower()

    def record_failed_attempt(self, identifier: str) -> LockoutInfo:
        """Count a failure and lock the identifier once the threshold is reached."""
        key = self._key(identifier)
        now = self._now()
        with self._lock:
            info = self._records.get(key)
            if info is None:
                info = LockoutInfo(failed_count=0, last_failed=now)
                self._records[key] = info
            info.failed_count += 1
            info.last_failed = now
            if info.failed_count >= self.settings.max_failed_attempts and not info.is_locked(now):
                info.locked_until = now + self.settings.lockout_duration
                log.warning(
                    "Identifier %s locked for %ss",
                    redact_email(key),
                    int(self.settings.lockout_duration.total_seconds()),
                )
            log.debug("Failed login for %s, count=%d", redact_email(key), info.failed_count)
            return replace(info)

    def is_locked_out(self, identifier: str) -> bool:
        with self._lock:
            info = self._records.get(self._key(identifier))
            return info is not None and info.is_locked(self._now())

    def clear_lockout(self, identifier: str) -> None:
        with self._lock:
            if self._records.pop(self._key(identifier), None) is not None:
                log.debug("Lockout cleared for %s", redact_email(identifier))

    def get_lockout_info(self, identifier: str) -> LockoutInfo | None:
        with self._lock:
            info = self._records.get(self._key(identifier))
            return replace(info) if info else None

    def get_remaining_lockout_time(self, identifier: str) -> timedelta:
        with self._lock:
            info = self._records.get(self._key(identifier))
            if info is None or info.locked_until is None:
                return timedelta(0)
            return max(timedelta(0), info.locked_until - self._now())

    def cleanup_expired(self) -> int:
        """Drop records whose lockout has ended. :returns: Number removed."""
        now = self._now()
        with self._lock:
            expired = [
                key
                for key, info in self._records.items()
                if info.locked_until is not None and now > info.locked_until
            ]
            for key in expired:
                del self._records[key]
        if expired:
            log.debug("Cleaned up %d expired lockouts", len(expired))
        return len(expired)

    def get_stats(self) -> LockoutStats:
        now = self._now()
        with self._lock:
            locked = sum(1 for info in self._records.values() if info.is_locked(now))
            return LockoutStats(total_tracked=len(self._records), currently_locked=locked)

    def initialize(self) -> None:
        with self._lock:
            if self._sweeper is None:
                self._sweeper = PeriodicTask(
                    "lockout-cleanup", self.settings.cleanup_interval, self.cleanup_expired
                )
            self._sweeper.start()
        log.info("Lockout cleanup started")

    def destroy(self) -> None:
        with self._lock:
            if self._sweeper is not None:
                self._sweeper.stop()
                self._sweeper = None
            self._records.clear()
        log.info("Lockout tracker destroyed")
