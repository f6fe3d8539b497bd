from __future__ import annotations

from datetime import UTC, datetime

from authcore.core import errors as api_errors
from authcore.services._shared.errors import (
    AccountLockedError,
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ServiceError,
    SessionError,
    SessionLimitExceededError,
    TokenVerificationError,
    ValidationFailedError,
)
from authcore.uow.sqlalchemy_uow import (
    SQLAlchemyReadOnlyUnitOfWork,
    SQLAlchemyUnitOfWork,
)


class BaseService:
    """
    Base class for application services.

    Responsibilities
    ----------------
    * Provide helpers to run read-only and read-write units of work.
    * Centralize translation of service errors into API errors.
    * Provide a single clock (``now_utc``) so tests can freeze time.

    Notes
    -----
    Services never touch the global session directly; they always go
    through a Unit of Work.
    """

    DEFAULT_READ_ISOLATION = "READ COMMITTED"

    # -------------------------- UoW helpers ---------------------------------

    def rw_uow(self) -> SQLAlchemyUnitOfWork:
        """
        Create a read-write Unit of Work.

        :returns: Read-write UoW instance.
        :rtype: SQLAlchemyUnitOfWork
        """
        return SQLAlchemyUnitOfWork()

    def ro_uow(
        self, *, isolation: str | None = None, enforce_db_readonly: bool = True
    ) -> SQLAlchemyReadOnlyUnitOfWork:
        """
        Create a read-only Unit of Work.

        :param isolation: Transaction isolation level (e.g. "READ COMMITTED").
        :type isolation: str | None
        :param enforce_db_readonly: Apply `SET TRANSACTION READ ONLY` when supported.
        :type enforce_db_readonly: bool
        :returns: Read-only UoW instance.
        :rtype: SQLAlchemyReadOnlyUnitOfWork
        """
        return SQLAlchemyReadOnlyUnitOfWork(
            isolation_level=isolation or self.DEFAULT_READ_ISOLATION,
            enforce_db_readonly=enforce_db_readonly,
        )

    @staticmethod
    def now_utc() -> datetime:
        return datetime.now(UTC)

    # -------------------------- Error handling ------------------------------

    def translate_exceptions(self, exc: Exception) -> Exception:
        """
        Map service-level errors to API-level (HTTP) errors.

        :param exc: Exception raised within the service.
        :type exc: Exception
        :returns: Translated exception ready to be re-raised.
        :rtype: Exception
        """
        if isinstance(exc, ValidationFailedError):
            return api_errors.UnprocessableEntity(exc.message, details={"errors": exc.errors})

        if isinstance(exc, NotFoundError):
            return api_errors.NotFound(str(exc))

        if isinstance(exc, ConflictError):
            return api_errors.Conflict(str(exc))

        if isinstance(exc, AccountLockedError):
            return api_errors.TooManyRequests(
                str(exc), code="account_locked", retry_after=exc.retry_after
            )

        if isinstance(exc, SessionLimitExceededError):
            return api_errors.TooManyRequests(str(exc), code=exc.code)

        if isinstance(exc, AuthenticationError):
            return api_errors.Unauthorized(str(exc), code="invalid_credentials")

        if isinstance(exc, SessionError):
            return api_errors.Unauthorized(str(exc), code=exc.code)

        if isinstance(exc, TokenVerificationError):
            return api_errors.Unauthorized(str(exc), code="invalid_token")

        # Any other ServiceError subclass -> 400 Bad Request
        if isinstance(exc, ServiceError):
            return api_errors.APIError(message=str(exc), status_code=400, code="bad_request")

        # Fallback: return untouched (will bubble up to Flask handler)
        return exc
