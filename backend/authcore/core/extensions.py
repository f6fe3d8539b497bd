"""Shared extension instances (SQLAlchemy, Migrate, JWT) and the Redis client."""

from __future__ import annotations

from datetime import timedelta

import redis  # type: ignore[import-untyped]
from flask import Flask, current_app
from flask_jwt_extended import JWTManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from redis.exceptions import RedisError  # type: ignore[import-untyped]
from sqlalchemy import MetaData

REDIS_EXTENSION_KEY = "redis_client"

metadata = MetaData(
    naming_convention={
        "ix": "ix_%(table_name)s_%(column_0_name)s",
        "uq": "uq_%(table_name)s_%(column_0_name)s",
        "ck": "ck_%(table_name)s_%(constraint_name)s",
        "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
        "pk": "pk_%(table_name)s",
    }
)

db: SQLAlchemy = SQLAlchemy(session_options={"autoflush": False}, metadata=metadata)
migrate = Migrate(render_as_batch=True)
jwt = JWTManager()


def _sync_jwt_lifetimes(app: Flask) -> None:
    """Default flask-jwt-extended's expiries to the auth settings (seconds)."""
    cfg = app.config
    cfg.setdefault(
        "JWT_ACCESS_TOKEN_EXPIRES", timedelta(seconds=int(cfg["JWT_ACCESS_TOKEN_EXPIRY"]))
    )
    cfg.setdefault(
        "JWT_REFRESH_TOKEN_EXPIRES", timedelta(seconds=int(cfg["JWT_REFRESH_TOKEN_EXPIRY"]))
    )


def _connect_redis(app: Flask) -> None:
    url = app.config.get("REDIS_URL")
    if not url:
        app.extensions.pop(REDIS_EXTENSION_KEY, None)
        return
    client = redis.Redis.from_url(url)
    try:
        client.ping()
    except RedisError as exc:
        raise RuntimeError(f"Failed to connect to Redis at {url!r}") from exc
    app.extensions[REDIS_EXTENSION_KEY] = client


def init_app(app: Flask) -> None:
    """Bind every extension to ``app``.

    Parameters
    ----------
    app: flask.Flask
        Application to bind. :mod:`authcore.models` is imported first so
        the metadata is complete before migrations or ``create_all`` run.

    Raises
    ------
    RuntimeError
        If ``REDIS_URL`` is set but the server does not answer a ping.
    """
    from authcore import models as _models  # noqa: F401

    db.init_app(app)
    migrate.init_app(app, db)
    _sync_jwt_lifetimes(app)
    jwt.init_app(app)
    _connect_redis(app)


def get_redis(app: Flask | None = None) -> redis.Redis:
    """Return the Redis client bound to ``app`` (default: the current app)."""
    target = app or current_app
    client = target.extensions.get(REDIS_EXTENSION_KEY)
    if client is None:
        raise RuntimeError("Redis client is not initialized. Set REDIS_URL and call init_app().")
    return client
