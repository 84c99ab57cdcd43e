"""Database engine and session management.

Each request gets its own session from ``get_db``; use-cases commit explicitly
and the session is always closed when the request ends.
"""
from collections.abc import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .config import Settings, settings


class Base(DeclarativeBase):
    pass


def _engine_kwargs(config: Settings) -> dict:
    if config.is_sqlite:
        # FastAPI runs sync endpoints in a thread pool.
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_size": config.DATABASE_POOL_SIZE,
        "max_overflow": config.DATABASE_MAX_OVERFLOW,
        "pool_pre_ping": True,
    }


engine = create_engine(settings.DATABASE_URL, **_engine_kwargs(settings))

SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency yielding a session that is closed after the request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
