"""SQLAlchemy declarative base for the key cache database."""

from __future__ import annotations

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base with explicit constraint naming."""

    metadata = MetaData(
        naming_convention={
            "ix": "ix_%(column_0_label)s",
            "uq": "uq_%(table_name)s_%(column_0_name)s",
            "ck": "ck_%(table_name)s_%(constraint_name)s",
            "pk": "pk_%(table_name)s",
        }
    )


def import_model_modules() -> None:
    """Register the cache table on ``Base.metadata`` before create_all."""
    from fbadmin.models import public_key_cache  # noqa: F401
