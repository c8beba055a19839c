"""Database utilities using SQLAlchemy."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, scoped_session, sessionmaker

engine = None
_database_url = None
SessionLocal = scoped_session(sessionmaker(autocommit=False, autoflush=False))
Base = declarative_base()


def init_db(database_url: str) -> None:
    """Initialise the database engine and session factory.

    Re-initialising with a different URL disposes the previous engine so an
    application factory can be called once per configuration.
    """
    global engine, _database_url

    if engine is not None and _database_url == database_url:
        return

    if engine is not None:
        SessionLocal.remove()
        engine.dispose()

    engine = create_engine(database_url, future=True)
    _database_url = database_url
    SessionLocal.configure(bind=engine)

    # Import models to ensure they are registered with SQLAlchemy metadata
    from models import ImportedPreset, PresetRecord, SelectionHistoryEntry  # noqa: F401

    Base.metadata.create_all(bind=engine)


def reset_db() -> None:
    """Drop and recreate every table on the bound engine."""
    if engine is None:
        raise RuntimeError("Database engine is not initialized.")
    SessionLocal.remove()
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


@contextmanager
def session_scope() -> Generator:
    """Provide a transactional scope around a series of operations."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
