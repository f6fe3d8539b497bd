# authcore/services/sessions/manager.py
from __future__ import annotations

import logging
import threading
import uuid
from datetime import UTC, datetime, timedelta
from typing import Any

from authcore.core.config import SessionSettings
from authcore.services._shared.errors import (
    SessionLimitExceededError,
    SessionNotFoundError,
    StaleRefreshTokenError,
    TokenRotationError,
    TokenUserMismatchError,
    TokenVerificationError,
)
from authcore.services._shared.ports import (
    REFRESH_TOKEN_TYPE,
    Session,
    SessionStats,
    SessionStore,
    TokenProvider,
)
from authcore.services.sessions.dto import SessionValidationResult, TokenRefreshResult

log = logging.getLogger(__name__)


class SessionManager:
    """
    Session lifecycle: creation under a per-user cap, validation, refresh
    with optional rotation, and invalidation.

    Refreshes of the same session serialize on a striped lock; the store's
    compare-and-save rejects a refresh whose token was rotated by another
    process in the meantime.

    :param store: Session storage backend.
    :param tokens: Token issuer/verifier.
    :param settings: Timeouts, limits and rotation flag.
    """

    LOCK_STRIPES = 64

    def __init__(
        self,
        *,
        store: SessionStore,
        tokens: TokenProvider,
        settings: SessionSettings | None = None,
    ) -> None:
        self.store = store
        self.tokens = tokens
        self.settings = settings or SessionSettings()
        self._locks = [threading.Lock() for _ in range(self.LOCK_STRIPES)]

    @staticmethod
    def now_utc() -> datetime:
        return datetime.now(UTC)

    def _lock_for(self, session_id: str) -> threading.Lock:
        return self._locks[hash(session_id) % self.LOCK_STRIPES]

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def initialize(self) -> None:
        self.store.initialize(self.settings.cleanup_interval)
        log.info("Session manager initialized")

    def shutdown(self) -> None:
        self.store.shutdown()
        log.info("Session manager shut down")

    # ------------------------------------------------------------------ #
    # Commands
    # ------------------------------------------------------------------ #

    def _issue_access(self, user_id: str, claims: dict[str, Any] | None) -> str:
        return self.tokens.create_access_token(
            identity=user_id,
            additional_claims=claims,
            expires_delta=self.settings.access_token_expiry,
        )

    def _issue_refresh(self, user_id: str) -> str:
        return self.tokens.create_refresh_token(
            identity=user_id, expires_delta=self.settings.refresh_token_expiry
        )

    def create_session(
        self,
        user_id: str,
        *,
        user_agent: str | None = None,
        ip_address: str | None = None,
        metadata: dict[str, Any] | None = None,
        custom_timeout: timedelta | None = None,
        claims: dict[str, Any] | None = None,
    ) -> Session:
        """
        Create and store a session with a fresh token pair.

        :param user_id: Owning user id.
        :param custom_timeout: Lifetime override; a negative value yields an
            already expired session.
        :param claims: Extra access-token claims (e.g. ``email``, ``role``).
        :raises SessionLimitExceededError: User already holds the maximum.
        """
        user_id = str(user_id)
        limit = self.settings.max_sessions_per_user
        if self.store.get_user_session_count(user_id) >= limit:
            raise SessionLimitExceededError(user_id, limit)

        now = self.now_utc()
        timeout = custom_timeout if custom_timeout is not None else self.settings.session_timeout
        session = Session(
            id=str(uuid.uuid4()),
            user_id=user_id,
            access_token=self._issue_access(user_id, claims),
            refresh_token=self._issue_refresh(user_id),
            created_at=now,
            last_activity=now,
            expires_at=now + timeout,
            user_agent=user_agent,
            ip_address=ip_address,
            metadata=dict(metadata or {}),
        )
        self.store.save(session)
        log.info("Session created", extra={"user_id": user_id, "session_id": session.id})
        return session

    def validate_session(self, session_id: str) -> SessionValidationResult:
        """Check a session without raising; touches ``last_activity`` on success."""
        session = self.store.find_by_id(session_id)
        if session is None:
            return SessionValidationResult(is_valid=False, reason="Session not found")
        if not session.is_active:
            return SessionValidationResult(is_valid=False, reason="Session is inactive")

        now = self.now_utc()
        if now > session.expires_at:
            self.invalidate_session(session_id)
            return SessionValidationResult(is_valid=False, reason="Session has expired")

        self.store.update_last_activity(session_id, now)
        session.last_activity = now
        remaining = session.expires_at - now
        return SessionValidationResult(
            is_valid=True,
            session=session,
            needs_refresh=remaining < self.settings.token_rotation_interval,
            time_until_expiry=remaining,
        )

    def refresh_tokens(
        self,
        refresh_token: str,
        *,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> TokenRefreshResult:
        """
        Exchange a refresh token for a new access token (and, with rotation
        enabled, a new refresh token).

        :raises TokenRotationError: Token invalid, expired or of the wrong type.
        :raises SessionNotFoundError: No live session holds the token; a validly
            signed but already rotated token raises :class:`StaleRefreshTokenError`.
        :raises TokenUserMismatchError: Token subject is not the session owner.
        """
        try:
            claims = self.tokens.verify(refresh_token, expected_type=REFRESH_TOKEN_TYPE)
        except TokenVerificationError as exc:
            log.info("Refresh rejected: %s", exc)
            raise TokenRotationError(str(exc)) from exc

        try:
            return self._rotate(refresh_token, str(claims.get("sub")), user_agent, ip_address)
        except (SessionNotFoundError, TokenUserMismatchError, TokenRotationError):
            raise
        except Exception as exc:
            log.exception("Token refresh failed")
            raise TokenRotationError(str(exc) or "Token refresh failed") from exc

    def _rotate(
        self,
        refresh_token: str,
        subject: str,
        user_agent: str | None,
        ip_address: str | None,
    ) -> TokenRefreshResult:
        found = self.store.find_by_refresh_token(refresh_token)
        if found is None:
            raise StaleRefreshTokenError()

        with self._lock_for(found.id):
            # Re-read under the lock; a concurrent refresh may have rotated it.
            session = self.store.find_by_id(found.id)
            if session is None or session.refresh_token != refresh_token:
                raise StaleRefreshTokenError()
            if not session.is_active or session.is_expired(self.now_utc()):
                raise SessionNotFoundError("Session is no longer active")
            if session.user_id != subject:
                raise TokenUserMismatchError()

            new_refresh = (
                self._issue_refresh(session.user_id)
                if self.settings.enable_token_rotation
                else None
            )
            session.access_token = self._issue_access(session.user_id, None)
            if new_refresh is not None:
                session.refresh_token = new_refresh
            session.last_activity = self.now_utc()
            session.user_agent = user_agent
            session.ip_address = ip_address

            if not self.store.compare_and_save(session, expected_refresh_token=refresh_token):
                raise StaleRefreshTokenError()

        log.info("Tokens refreshed", extra={"session_id": session.id, "user_id": session.user_id})
        return TokenRefreshResult(
            access_token=session.access_token,
            refresh_token=new_refresh,
            session=session,
            expires_in=self.settings.access_token_expiry,
        )

    def invalidate_session(self, session_id: str) -> bool:
        """
        Mark a session inactive. Idempotent.

        :returns: ``True`` if the session existed and was active.
        """
        session = self.store.find_by_id(session_id)
        if session is None or not session.is_active:
            return False
        session.is_active = False
        self.store.save(session)
        log.info("Session invalidated", extra={"session_id": session_id})
        return True

    def invalidate_user_sessions(self, user_id: str) -> int:
        count = self.store.invalidate_all_by_user_id(str(user_id))
        log.info("User sessions invalidated", extra={"user_id": str(user_id), "count": count})
        return count

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def get_session(self, session_id: str) -> Session | None:
        return self.store.find_by_id(session_id)

    def get_user_sessions(self, user_id: str) -> list[Session]:
        return self.store.find_by_user_id(str(user_id))

    def get_stats(self) -> SessionStats:
        return self.store.get_stats()
