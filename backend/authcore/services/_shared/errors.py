"""
Domain-level exceptions used within the service layer.

These exceptions are **framework-agnostic**: they never import Flask or
HTTP types. The translation to HTTP responses (RFC 7807) is handled by
``authcore/core/errors.py`` via ``BaseService.translate_exceptions()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# --------------------------------------------------------------------------- #
# Base types
# --------------------------------------------------------------------------- #


class ServiceError(Exception):
    """
    Base class for all service-level errors.

    Notes
    -----
    - These are *not* HTTP errors.
    - ``BaseService.translate_exceptions`` maps them to ``APIError``.
    """

    pass


@dataclass(slots=True)
class ValidationFailedError(ServiceError):
    """
    Raised when input is rejected before any storage is touched.

    :param message: Summary for clients.
    :param errors: Field name -> list of messages.
    """

    message: str = "Validation failed"
    errors: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class NotFoundError(ServiceError):
    """
    Raised when an entity is not found in the repository.

    :param entity: Entity name (e.g., "User").
    :type entity: str
    :param key: Identifier or search key.
    :type key: str | int
    """

    entity: str
    key: str | int

    def __str__(self) -> str:
        return f"{self.entity} not found: {self.key}"


@dataclass(slots=True)
class ConflictError(ServiceError):
    """
    Raised when a unique constraint or business rule conflict occurs.

    :param entity: Entity name (e.g., "User").
    :type entity: str
    :param detail: Short human-readable explanation.
    :type detail: str
    """

    entity: str
    detail: str

    def __str__(self) -> str:
        return f"Conflict on {self.entity}: {self.detail}"


# --------------------------------------------------------------------------- #
# Authentication
# --------------------------------------------------------------------------- #


class AuthenticationError(ServiceError):
    """Credentials or account state do not allow authentication."""


class InvalidCredentialsError(AuthenticationError):
    """
    Wrong email, wrong password, or an account that may not log in.

    The message is the same for every cause so callers cannot enumerate
    accounts or their status.
    """

    def __init__(self, message: str = "Invalid email or password") -> None:
        super().__init__(message)


class AccountLockedError(AuthenticationError):
    """
    Too many failed attempts for an identifier.

    :param retry_after: Seconds until the lockout ends.
    """

    def __init__(self, message: str, *, retry_after: int) -> None:
        super().__init__(message)
        self.retry_after = retry_after


# --------------------------------------------------------------------------- #
# Tokens
# --------------------------------------------------------------------------- #


class TokenVerificationError(ServiceError):
    """A token is malformed, badly signed or expired."""


class TokenExpiredError(TokenVerificationError):
    """The token signature is valid but ``exp`` has passed."""


class TokenTypeMismatchError(TokenVerificationError):
    """
    The token's ``type`` claim is not the one required.

    :param expected: Required type.
    :param actual: Type found in the token.
    """

    def __init__(self, expected: str, actual: str | None) -> None:
        super().__init__(f"Expected a {expected} token, got {actual or 'unknown'}")
        self.expected = expected
        self.actual = actual


# --------------------------------------------------------------------------- #
# Sessions
# --------------------------------------------------------------------------- #


class SessionError(ServiceError):
    """
    Base for session lifecycle failures.

    :param message: Human-readable message.
    :param code: Stable machine-readable code.
    """

    code = "session_error"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code


class SessionNotFoundError(SessionError):
    code = "session_not_found"

    def __init__(self, message: str = "Session not found") -> None:
        super().__init__(message)


class SessionLimitExceededError(SessionError):
    """The user already holds the maximum number of sessions."""

    code = "session_limit_exceeded"

    def __init__(self, user_id: str, limit: int) -> None:
        super().__init__(f"Maximum number of sessions ({limit}) reached for user")
        self.user_id = user_id
        self.limit = limit


class TokenRotationError(SessionError):
    """A refresh could not be completed."""

    code = "token_rotation_failed"

    def __init__(self, message: str = "Token rotation failed") -> None:
        super().__init__(message)


class StaleRefreshTokenError(SessionNotFoundError, TokenRotationError):
    """
    A correctly signed refresh token that no longer maps to a session,
    typically because it was already rotated.
    """

    code = "stale_refresh_token"

    def __init__(self, message: str = "Refresh token is no longer valid") -> None:
        SessionError.__init__(self, message)


class TokenUserMismatchError(SessionError):
    """The refresh token's subject is not the session owner."""

    code = "token_user_mismatch"

    def __init__(self, message: str = "Token user mismatch") -> None:
        super().__init__(message)
