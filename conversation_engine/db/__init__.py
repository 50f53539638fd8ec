"""Database package: engine, session factory, init_db(), reset_db(), get_session()."""

import threading
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from conversation_engine.config import DATABASE_URL
from conversation_engine.db.base import Base
from conversation_engine.errors import PersistenceFailed

# Import all models so Base.metadata has all tables
from conversation_engine.db.models import (  # noqa: F401
    ConversationMessageRow,
    ConversationThreadRow,
    DraftRow,
)

_init_lock = threading.Lock()
_engine = None
_SessionLocal: sessionmaker | None = None


def _get_engine(url: str):
    """Create engine with check_same_thread=False for use from executor threads.

    In-memory SQLite gets a StaticPool so every session sees the same database.
    """
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=False, **kwargs)
    return create_engine(url, echo=False, pool_pre_ping=True)


def init_db(url: str | None = None) -> None:
    """Create engine and tables once. Later calls are no-ops."""
    global _engine, _SessionLocal
    with _init_lock:
        if _SessionLocal is not None:
            return
        _engine = _get_engine(url or DATABASE_URL)
        Base.metadata.create_all(bind=_engine)
        _SessionLocal = sessionmaker(bind=_engine, autocommit=False, autoflush=False, expire_on_commit=False)


def reset_db(url: str | None = None) -> None:
    """Dispose the current engine and start over (tests, CLI --db)."""
    global _engine, _SessionLocal
    with _init_lock:
        if _engine is not None:
            _engine.dispose()
        _engine = None
        _SessionLocal = None
    init_db(url)


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Context manager yielding a DB session. Calls init_db() on first use.

    SQLAlchemy errors are re-raised as PersistenceFailed after rollback.
    """
    init_db()
    session = _SessionLocal()
    try:
        yield session
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        raise PersistenceFailed(str(e)) from e
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
