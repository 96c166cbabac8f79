"""Durable and in-memory storage for the provider public-key set."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from fbadmin.db.base import Base, import_model_modules
from fbadmin.db.session import create_cache_engine, create_session_factory
from fbadmin.exceptions import KeyStoreError
from fbadmin.models.public_key_cache import KEYS_ROW_NAME, PublicKeyCache
from fbadmin.types import KeySet


@dataclass(frozen=True)
class CachedKeySet:
    """Key set together with the unix time it was fetched."""

    keys: KeySet = field(default_factory=dict)
    fetched_at: int = 0

    @property
    def is_empty(self) -> bool:
        """Return True when no keys are cached."""
        return not self.keys


class KeyStore(Protocol):
    """Storage contract used by the refresher (writer) and verifier (readers)."""

    async def ensure_initialized(self) -> None:
        """Prepare storage on first use; must be idempotent."""

    async def load(self) -> CachedKeySet | None:
        """Return the last committed key set, if any."""

    async def store(self, keys: KeySet, fetched_at: int) -> CachedKeySet:
        """Replace the whole key set atomically and return what was committed."""


class InMemoryKeyStore:
    """Process-local key store for tests and non-persistent deployments."""

    def __init__(self, initial: CachedKeySet | None = None) -> None:
        self._value = initial
        self._write_lock = asyncio.Lock()

    async def ensure_initialized(self) -> None:
        """Nothing to prepare for process-local storage."""
        return None

    async def load(self) -> CachedKeySet | None:
        """Return the current key set, if any."""
        return self._value

    async def store(self, keys: KeySet, fetched_at: int) -> CachedKeySet:
        """Swap in a new key set under the write lock."""
        async with self._write_lock:
            previous = self._value.fetched_at if self._value is not None else 0
            committed = CachedKeySet(keys=dict(keys), fetched_at=max(fetched_at, previous))
            self._value = committed
            return committed


class SQLKeyStore:
    """SQLAlchemy-backed key store persisted in a single table row.

    Readers always see the previously committed row until a ``store`` call's
    transaction commits, so the key set is never observed half-written.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        engine: AsyncEngine | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._engine = engine
        self._initialized = False
        self._init_lock = asyncio.Lock()
        self._write_lock = asyncio.Lock()

    @classmethod
    def from_url(cls, database_url: str) -> SQLKeyStore:
        """Create a store owning its own engine for ``database_url``."""
        engine = create_cache_engine(database_url)
        return cls(session_factory=create_session_factory(engine), engine=engine)

    async def ensure_initialized(self) -> None:
        """Create the cache table on first use."""
        if self._initialized:
            return
        async with self._init_lock:
            if self._initialized:
                return
            import_model_modules()
            engine = self._engine or self._session_factory.kw["bind"]
            try:
                async with engine.begin() as connection:
                    await connection.run_sync(Base.metadata.create_all)
            except SQLAlchemyError as exc:
                raise KeyStoreError("Unable to initialize public key cache.") from exc
            self._initialized = True

    async def load(self) -> CachedKeySet | None:
        """Read the committed key row."""
        try:
            async with self._session_factory() as session:
                row = await session.get(PublicKeyCache, KEYS_ROW_NAME)
        except SQLAlchemyError as exc:
            raise KeyStoreError("Unable to read public key cache.") from exc
        if row is None:
            return None
        return CachedKeySet(keys=dict(row.keys), fetched_at=int(row.fetched_at))

    async def store(self, keys: KeySet, fetched_at: int) -> CachedKeySet:
        """Overwrite the key row in one transaction."""
        async with self._write_lock:
            try:
                async with self._session_factory() as session, session.begin():
                    statement = select(PublicKeyCache).where(
                        PublicKeyCache.name == KEYS_ROW_NAME
                    )
                    row = (await session.execute(statement)).scalar_one_or_none()
                    if row is None:
                        row = PublicKeyCache(
                            name=KEYS_ROW_NAME, keys=dict(keys), fetched_at=fetched_at
                        )
                        session.add(row)
                    else:
                        row.keys = dict(keys)
                        row.fetched_at = max(fetched_at, int(row.fetched_at))
                    committed = CachedKeySet(keys=dict(keys), fetched_at=int(row.fetched_at))
            except SQLAlchemyError as exc:
                raise KeyStoreError("Unable to write public key cache.") from exc
        return committed

    async def dispose(self) -> None:
        """Dispose the owned engine, if any."""
        if self._engine is not None:
            await self._engine.dispose()
