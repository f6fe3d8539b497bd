"""Pytest fixtures configuring an isolated transactional database layer.

Each test runs inside a SAVEPOINT-backed transaction against an in-memory
SQLite database so data changes never leak between cases. Service fixtures
wire the in-process port implementations (stub tokens, plain-text hasher,
in-memory mailer and audit sink) so no network or crypto work happens.
"""

from __future__ import annotations

import os

import pytest
from sqlalchemy import event
from sqlalchemy.orm import scoped_session, sessionmaker

from authcore.core.config import LockoutSettings, SessionSettings, TestingConfig
from authcore.core.extensions import db as _db  # Flask-SQLAlchemy instance
from authcore.factory import create_app  # application factory under test
from authcore.services._shared.ports import (
    InMemoryAuditSink,
    InMemoryMailer,
    InMemorySessionStore,
    PlainTextPasswordHasher,
    StubTokenProvider,
)
from authcore.services.lockout.tracker import LockoutTracker
from authcore.services.sessions.manager import SessionManager


@pytest.fixture(scope="session")
def app():
    """Create a Flask application configured for testing.

    Returns
    -------
    flask.Flask
        Application instance with :class:`TestingConfig` applied and logging
        noise reduced.
    """
    # Ensure env-based config does not leak into tests
    os.environ.pop("DATABASE_URL", None)
    app = create_app(TestingConfig)
    app.logger.setLevel("WARNING")
    return app


@pytest.fixture(scope="session")
def db(app):
    """Create database tables once per test session.

    Yields
    ------
    flask_sqlalchemy.SQLAlchemy
        Database extension bound to the testing application.
    """
    with app.app_context():
        _db.create_all()
        yield _db
        _db.session.remove()
        _db.drop_all()


@pytest.fixture(scope="session")
def connection(db):
    """Keep a dedicated DBAPI connection open for the whole session."""
    conn = db.engine.connect()
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture(scope="function")
def session(db, connection):
    """Provide a SQLAlchemy session wrapped in a nested transaction.

    Notes
    -----
    The fixture mirrors the SQLAlchemy 2.0 pattern for transactional tests: it
    begins a top-level transaction, starts a SAVEPOINT per test, and reinstalls
    the SAVEPOINT whenever SQLAlchemy ends one. ``db.session`` is swapped for
    the scoped session so units of work pick it up.
    """
    top_trans = connection.begin()

    SessionFactory = sessionmaker(bind=connection, future=True)
    scoped = scoped_session(SessionFactory)

    nested = connection.begin_nested()

    @event.listens_for(scoped(), "after_transaction_end")
    def _restart_savepoint(sess, trans):  # pragma: no cover
        if trans.nested and not trans._parent.nested:
            nonlocal nested
            nested = connection.begin_nested()

    original_session = db.session
    db.session.remove()
    db.session = scoped

    try:
        yield scoped
    finally:
        scoped.remove()
        db.session = original_session
        top_trans.rollback()


@pytest.fixture(scope="session")
def faker():
    """Provide a :class:`faker.Faker` instance seeded for deterministic tests."""
    from faker import Faker

    fk = Faker()
    Faker.seed(1337)
    return fk


# -- Hook up Factory Boy to pytest SQLAlchemy session --------------------------
@pytest.fixture(autouse=True)
def _factories_session(session):
    """Wire Factory Boy's session helper to the transactional session fixture."""
    from tests.factories import SQLAlchemySession

    SQLAlchemySession.set(session)
    yield


# -- In-process ports ----------------------------------------------------------
@pytest.fixture()
def tokens() -> StubTokenProvider:
    return StubTokenProvider()


@pytest.fixture()
def hasher() -> PlainTextPasswordHasher:
    return PlainTextPasswordHasher()


@pytest.fixture()
def mailer() -> InMemoryMailer:
    return InMemoryMailer()


@pytest.fixture()
def audit() -> InMemoryAuditSink:
    return InMemoryAuditSink()


@pytest.fixture()
def session_store():
    store = InMemorySessionStore()
    yield store
    store.shutdown()


@pytest.fixture()
def session_settings() -> SessionSettings:
    return SessionSettings()


@pytest.fixture()
def session_manager(session_store, tokens, session_settings) -> SessionManager:
    return SessionManager(store=session_store, tokens=tokens, settings=session_settings)


@pytest.fixture()
def lockout() -> LockoutTracker:
    tracker = LockoutTracker(LockoutSettings())
    yield tracker
    tracker.destroy()
