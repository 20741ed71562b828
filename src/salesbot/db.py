"""Database connection and session management."""

import zlib
from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, sessionmaker

from salesbot.config import settings


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_size": 5, "max_overflow": 10}


engine = create_engine(settings.database_url, **_engine_kwargs(settings.database_url))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def get_db() -> Generator[Session, None, None]:
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


def init_db() -> None:
    """Create all tables directly (local/dev use; production runs Alembic)."""
    from salesbot.models import Base

    Base.metadata.create_all(engine)


def acquire_advisory_lock(session: Session, lock_name: str) -> bool:
    """Acquire a Postgres advisory lock so only one bot process posts at a time."""
    if session.get_bind().dialect.name != "postgresql":
        return True
    lock_id = zlib.crc32(lock_name.encode()) % (2**31)
    result = session.execute(text("SELECT pg_try_advisory_lock(:id)"), {"id": lock_id})
    return bool(result.scalar())


def release_advisory_lock(session: Session, lock_name: str) -> None:
    if session.get_bind().dialect.name != "postgresql":
        return
    lock_id = zlib.crc32(lock_name.encode()) % (2**31)
    session.execute(text("SELECT pg_advisory_unlock(:id)"), {"id": lock_id})
