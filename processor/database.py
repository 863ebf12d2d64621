"""Database configuration for processor."""

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from processor.config import settings

SessionFactory = Callable[[], Session]

database_url = settings.DATABASE_URL

# SQLite (tests, local runs) uses a single-thread pool that rejects sizing args
if database_url.startswith("sqlite"):
    engine = create_engine(
        database_url,
        connect_args={"check_same_thread": False},
    )
else:
    engine = create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        pool_recycle=3600,
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def get_db(session_factory: SessionFactory = SessionLocal) -> Generator[Session, None, None]:
    """Get database session as context manager."""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
