"""Public-key cache ORM model."""

from __future__ import annotations

from sqlalchemy import JSON, BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from fbadmin.db.base import Base

KEYS_ROW_NAME = "keys"


class PublicKeyCache(Base):
    """Single-row table holding the last fetched key set and its fetch time."""

    __tablename__ = "public_key_cache"

    name: Mapped[str] = mapped_column(String(32), primary_key=True, default=KEYS_ROW_NAME)
    keys: Mapped[dict[str, str]] = mapped_column(JSON, nullable=False)
    fetched_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
