"""Database package exports."""

from fbadmin.db.base import Base
from fbadmin.db.session import create_cache_engine, create_session_factory

__all__ = ["Base", "create_cache_engine", "create_session_factory"]
