"""SQLAlchemy engine, session factory and declarative base.

``get_db`` is the FastAPI dependency used by every router; background
workers open their own sessions through ``SessionLocal`` because a request
session is closed as soon as the response is sent.
"""

from __future__ import annotations

from collections.abc import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from sitetracker.config import get_settings

Base = declarative_base()


def build_engine(database_url: str) -> Engine:
    """Create an engine, adapting connection arguments for SQLite.

    SQLite connections are shared with the import worker threads, so the
    same-thread check is disabled; in-memory databases use a single static
    connection so every session sees the same data.
    """
    if database_url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)
    return create_engine(database_url, pool_pre_ping=True)


engine = build_engine(get_settings().DATABASE_URL)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


def get_db() -> Iterator[Session]:
    """Yield a request-scoped session and always close it afterwards."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
