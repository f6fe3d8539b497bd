"""RFC 7807 problem responses for auth failures and unexpected errors."""

from __future__ import annotations

import logging
from collections.abc import Callable
from http import HTTPStatus
from typing import Any

from flask import Flask, Response, has_request_context, jsonify, request
from marshmallow import ValidationError as MarshmallowValidationError
from sqlalchemy.exc import IntegrityError, OperationalError
from werkzeug.exceptions import HTTPException

from authcore.core.logger import ensure_request_id

log = logging.getLogger(__name__)

PROBLEM_MIMETYPE = "application/problem+json"

_STATUS_CODES = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    415: "unsupported_media_type",
    422: "unprocessable_entity",
    429: "too_many_requests",
    500: "internal_server_error",
    503: "service_unavailable",
}


def problem_details(
    status: int, code: str, message: str, details: dict[str, Any] | None = None
) -> dict[str, Any]:
    """
    Build a Problem Details body.

    ``instance`` is the request path when called inside a request; the
    correlation id is always attached.
    """
    body: dict[str, Any] = {
        "type": "about:blank",
        "title": HTTPStatus(status).phrase,
        "status": status,
        "detail": message,
        "instance": request.path if has_request_context() else None,
        "code": code,
        "request_id": ensure_request_id(),
    }
    if details:
        body["details"] = details
    return body


def problem_response(body: dict[str, Any]) -> tuple[Response, int]:
    resp = jsonify(body)
    resp.mimetype = PROBLEM_MIMETYPE
    return resp, int(body["status"])


class APIError(Exception):
    """
    Error carrying its HTTP status and a stable machine-readable ``code``.

    Parameters
    ----------
    message : str
        Client-safe summary.
    status_code : int, optional
        HTTP status, ``400`` by default.
    code : str, optional
        snake_case identifier clients branch on.
    details : dict[str, Any] | None, optional
        Extra payload such as field errors or ``retry_after``.
    """

    status_code: int = HTTPStatus.BAD_REQUEST
    code: str = "bad_request"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = int(status_code or type(self).status_code)
        self.code = code or type(self).code
        self.details = details or {}

    def to_problem(self) -> dict[str, Any]:
        return problem_details(self.status_code, self.code, self.message, self.details or None)


class NotFound(APIError):
    status_code = HTTPStatus.NOT_FOUND
    code = "not_found"

    def __init__(self, message: str = "Resource not found") -> None:
        super().__init__(message)


class Conflict(APIError):
    status_code = HTTPStatus.CONFLICT
    code = "conflict"

    def __init__(self, message: str = "Conflict") -> None:
        super().__init__(message)


class Unauthorized(APIError):
    """401; ``code`` distinguishes bad credentials from bad tokens."""

    status_code = HTTPStatus.UNAUTHORIZED
    code = "unauthorized"

    def __init__(self, message: str = "Unauthorized", code: str = "unauthorized") -> None:
        super().__init__(message, code=code)


class UnprocessableEntity(APIError):
    status_code = HTTPStatus.UNPROCESSABLE_ENTITY
    code = "validation_error"

    def __init__(
        self, message: str = "Validation failed", details: dict[str, Any] | None = None
    ) -> None:
        super().__init__(message, details=details)


class TooManyRequests(APIError):
    """429 for lockouts and per-user session caps, with an optional ``retry_after``."""

    status_code = HTTPStatus.TOO_MANY_REQUESTS
    code = "too_many_requests"

    def __init__(
        self,
        message: str = "Too many requests",
        code: str = "too_many_requests",
        retry_after: int | None = None,
    ) -> None:
        details = {"retry_after": retry_after} if retry_after is not None else None
        super().__init__(message, code=code, details=details)


def _from_api_error(err: APIError) -> dict[str, Any]:
    return err.to_problem()


def _from_http_exception(err: HTTPException) -> dict[str, Any]:
    status = int(err.code or HTTPStatus.INTERNAL_SERVER_ERROR)
    code = _STATUS_CODES.get(status, "error")
    if status == HTTPStatus.NOT_FOUND:
        message = f"Route '{request.path}' not found"
    else:
        message = (err.description or code.replace("_", " ").capitalize()).strip()
    return problem_details(status, code, message)


def _from_validation_error(err: MarshmallowValidationError) -> dict[str, Any]:
    return problem_details(
        HTTPStatus.UNPROCESSABLE_ENTITY,
        "validation_error",
        "Validation failed",
        {"errors": err.messages},
    )


def _from_integrity_error(err: IntegrityError) -> dict[str, Any]:
    # raw DB messages never reach clients
    return problem_details(HTTPStatus.CONFLICT, "conflict", "Resource conflict")


def _from_operational_error(err: OperationalError) -> dict[str, Any]:
    return problem_details(
        HTTPStatus.SERVICE_UNAVAILABLE, "service_unavailable", "Service temporarily unavailable"
    )


def _from_unexpected(err: Exception) -> dict[str, Any]:
    return problem_details(
        HTTPStatus.INTERNAL_SERVER_ERROR, "internal_server_error", "Unexpected error"
    )


_HANDLERS: list[tuple[type[Exception], Callable[[Any], dict[str, Any]]]] = [
    (APIError, _from_api_error),
    (HTTPException, _from_http_exception),
    (MarshmallowValidationError, _from_validation_error),
    (IntegrityError, _from_integrity_error),
    (OperationalError, _from_operational_error),
    (Exception, _from_unexpected),
]


def _make_handler(
    exc_type: type[Exception], build: Callable[[Any], dict[str, Any]]
) -> Callable[[Exception], tuple[Response, int]]:
    def handler(err: Exception) -> tuple[Response, int]:
        body = build(err)
        status = body["status"]
        if status >= 500:
            log.error(
                "%s: code=%s status=%s request_id=%s",
                exc_type.__name__,
                body["code"],
                status,
                body["request_id"],
                exc_info=err,
            )
        else:
            log.warning(
                "%s: code=%s status=%s detail=%s request_id=%s",
                exc_type.__name__,
                body["code"],
                status,
                body["detail"],
                body["request_id"],
            )
        return problem_response(body)

    handler.__name__ = f"handle_{exc_type.__name__}"
    return handler


def init_app(app: Flask) -> None:
    """Register a problem+json handler for every error family in ``_HANDLERS``."""
    for exc_type, build in _HANDLERS:
        app.register_error_handler(exc_type, _make_handler(exc_type, build))
