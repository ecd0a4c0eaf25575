"""
PostgreSQL connection via SQLAlchemy with psycopg3.

System of record for beats, assignments, violations, replacement history
and the audit event log. Request handlers share a thread-local scoped
session; background work (the duty ticker) opens its own via session_scope().
"""

from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker, scoped_session, declarative_base

from beatwatch.config import config

# Declarative base for every beatwatch model
Base = declarative_base()

_engine = None
_sessionmaker = None
_scoped = None


def _engine_url() -> str:
    url = config.get_database_url()
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def get_engine():
    """Get or create the SQLAlchemy engine."""
    global _engine
    if _engine is not None:
        return _engine

    url = _engine_url()
    backend = make_url(url).get_backend_name()

    if backend == "sqlite":
        _engine = create_engine(url, echo=config.DEBUG, connect_args={"check_same_thread": False})
        return _engine

    _engine = create_engine(
        url,
        echo=config.DEBUG,
        pool_pre_ping=True,
        pool_recycle=300,
        pool_reset_on_return="rollback",
    )

    # A pooled connection may come back mid-transaction after a crashed request
    @event.listens_for(_engine, "checkout")
    def reset_on_checkout(dbapi_conn, connection_record, connection_proxy):
        try:
            cursor = dbapi_conn.cursor()
            cursor.execute("ROLLBACK")
            cursor.close()
        except Exception:
            pass

    return _engine


def _get_sessionmaker():
    global _sessionmaker
    if _sessionmaker is None:
        _sessionmaker = sessionmaker(bind=get_engine(), autoflush=False)
    return _sessionmaker


def get_db_session():
    """Thread-local request session; released by close_db_session()."""
    global _scoped
    if _scoped is None:
        _scoped = scoped_session(_get_sessionmaker())
    return _scoped()


@contextmanager
def session_scope():
    """
    Independent session for work outside a request.

    The caller's services commit; anything left open is rolled back on exit.
    """
    session = _get_sessionmaker()()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


def init_db():
    """Create all tables directly (development only; use Alembic otherwise)."""
    from beatwatch import models  # noqa: F401

    Base.metadata.create_all(bind=get_engine())


def close_db_session(exception=None):
    """Roll back and discard the thread-local session at request teardown."""
    if _scoped is None:
        return
    try:
        _scoped.rollback()
    except Exception:
        pass
    finally:
        try:
            _scoped.remove()
        except Exception:
            pass


def rollback_session():
    """Start a request from a clean session even if the last one left it dirty."""
    if _scoped is None:
        return
    try:
        session = _scoped()
        if session.is_active:
            session.rollback()
    except Exception:
        try:
            _scoped.remove()
        except Exception:
            pass
