"""Async SQLAlchemy engine and session configuration for the key cache."""

from __future__ import annotations

from pathlib import Path

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)


def create_cache_engine(database_url: str) -> AsyncEngine:
    """Build an async engine, creating the SQLite file's directory if needed."""
    database = make_url(database_url).database
    if database and database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)
    return create_async_engine(database_url)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build the async session factory bound to ``engine``."""
    return async_sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
