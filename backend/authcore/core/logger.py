"""Logging setup: JSON or text lines on stdout, request correlation and redaction helpers."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from flask import Flask, g, has_request_context, request

REQUEST_ID_HEADER = "X-Request-ID"
CORRELATION_HEADERS = ("X-Request-ID", "X-Correlation-ID")

# ``extra=`` keys the auth services attach; anything else stays off the payload
EXTRA_KEYS = ("user_id", "session_id", "count", "endpoint", "elapsed_ms")

TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s [%(request_id)s] %(message)s"


def ensure_request_id() -> str:
    """
    Return the correlation id of the current request.

    The first ``X-Request-ID`` / ``X-Correlation-ID`` header wins; otherwise
    a UUID4 is generated and cached on ``g``. Outside a request every call
    returns a fresh id.
    """
    if not has_request_context():
        return str(uuid4())
    cached = getattr(g, "request_id", None)
    if cached:
        return cached
    value = next(
        (request.headers[h] for h in CORRELATION_HEADERS if request.headers.get(h)),
        None,
    ) or str(uuid4())
    g.request_id = value
    return value


class RequestIdFilter(logging.Filter):
    """Stamp ``request_id`` on every record (``-`` outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = ensure_request_id() if has_request_context() else "-"
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with whitelisted extras."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "time": datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
        }
        payload.update({key: getattr(record, key) for key in EXTRA_KEYS if hasattr(record, key)})
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def redact_email(email: str | None) -> str:
    """Mask an email address for log output (``jo***@example.com``)."""
    if not email or "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


def redact_token(token: str | None) -> str:
    """Keep only the first eight characters of a secret."""
    return f"{token[:8]}..." if token else "<none>"


def _resolve_level(level: str | int) -> int | str:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else level.upper()


def configure_logging(level: str | int = "INFO", *, fmt: str = "json") -> None:
    """
    Replace the root handlers with a single stdout handler.

    :param level: Level name or number.
    :param fmt: ``"json"`` for :class:`JSONFormatter`, ``"text"`` for :data:`TEXT_FORMAT`.
    :raises ValueError: Unknown ``fmt``.
    """
    if fmt == "json":
        formatter: logging.Formatter = JSONFormatter()
    elif fmt == "text":
        formatter = logging.Formatter(TEXT_FORMAT)
    else:
        raise ValueError(f"Unknown log format {fmt!r}; expected 'json' or 'text'")

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(RequestIdFilter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(_resolve_level(level))


def init_app(app: Flask) -> None:
    """Seed the request id before each request and echo it on the response."""
    app.logger.addFilter(RequestIdFilter())

    @app.before_request
    def _seed_request_id() -> None:
        ensure_request_id()

    @app.after_request
    def _inject_response_header(response):
        response.headers.setdefault(REQUEST_ID_HEADER, ensure_request_id())
        return response


__all__ = [
    "configure_logging",
    "ensure_request_id",
    "init_app",
    "redact_email",
    "redact_token",
    "JSONFormatter",
    "RequestIdFilter",
]
