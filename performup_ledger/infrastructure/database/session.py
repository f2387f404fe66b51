"""Database session management with connection pooling"""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session

from performup_ledger.config import settings
from performup_ledger.domain.exceptions import OperationAbortedError


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    # Connection pool: max 20 connections, recycle after 1 hour to avoid stale connections
    return {
        "pool_pre_ping": True,  # Verify connections before using
        "pool_size": 10,
        "max_overflow": 10,
        "pool_recycle": 3600,
    }


engine = create_engine(settings.database_url, **_engine_options(settings.database_url))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Session:
    """Dependency injection for database sessions"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def unit_of_work(session_factory=SessionLocal) -> Iterator[Session]:
    """
    One atomic ledger operation: commit on success, roll back on any error.

    Storage failures surface as OperationAbortedError; domain errors propagate unchanged.
    """
    db = session_factory()
    try:
        yield db
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise OperationAbortedError(f"Operation aborted, nothing committed: {e.__class__.__name__}") from e
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
