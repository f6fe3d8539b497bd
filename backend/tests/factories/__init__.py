"""Factory Boy base wired to the per-test SQLAlchemy session."""

from __future__ import annotations

import factory


class SQLAlchemySession:
    """Holder for the session installed by the ``session`` fixture."""

    _session = None

    @classmethod
    def set(cls, session):
        cls._session = session

    @classmethod
    def get(cls):
        """Return the registered session.

        Raises
        ------
        RuntimeError
            If a factory runs before the ``session`` fixture wired it.
        """
        if cls._session is None:
            raise RuntimeError("Factories session not set. Did you pass the 'session' fixture?")
        return cls._session


class BaseFactory(factory.alchemy.SQLAlchemyModelFactory):
    """Flush (never commit) into the transactional test session."""

    class Meta:
        abstract = True
        # Callable so the session is resolved per build, after the fixture ran.
        sqlalchemy_session_factory = SQLAlchemySession.get
        sqlalchemy_session_persistence = "flush"
