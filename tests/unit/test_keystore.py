"""Unit tests for in-memory and SQLite-backed public key stores."""

from __future__ import annotations

from pathlib import Path

import pytest

from fbadmin.core.keystore import CachedKeySet, InMemoryKeyStore, SQLKeyStore


def _sqlite_url(path: Path) -> str:
    return f"sqlite+aiosqlite:///{path}"


async def test_in_memory_store_replaces_whole_key_set() -> None:
    """A store call replaces every key rather than merging."""
    store = InMemoryKeyStore(CachedKeySet(keys={"old": "cert-old"}, fetched_at=100))

    committed = await store.store({"new": "cert-new"}, 200)
    loaded = await store.load()

    assert committed == CachedKeySet(keys={"new": "cert-new"}, fetched_at=200)
    assert loaded == committed


async def test_in_memory_store_never_moves_fetched_at_backwards() -> None:
    """Out-of-order commits keep the newest fetch time."""
    store = InMemoryKeyStore()

    await store.store({"kid-1": "cert"}, 500)
    committed = await store.store({"kid-2": "cert"}, 400)

    assert committed.fetched_at == 500
    assert committed.keys == {"kid-2": "cert"}


async def test_empty_cached_key_set_reports_empty() -> None:
    """An empty key mapping counts as no keys available."""
    assert CachedKeySet().is_empty
    assert not CachedKeySet(keys={"kid-1": "cert"}).is_empty


@pytest.mark.asyncio
async def test_sql_store_creates_directory_and_starts_empty(tmp_path: Path) -> None:
    """First use creates the database file under a missing parent directory."""
    database_path = tmp_path / "priv" / "cache" / "keys.db"
    store = SQLKeyStore.from_url(_sqlite_url(database_path))
    try:
        await store.ensure_initialized()
        await store.ensure_initialized()
        assert await store.load() is None
    finally:
        await store.dispose()

    assert database_path.parent.is_dir()


@pytest.mark.asyncio
async def test_sql_store_persists_across_instances(tmp_path: Path) -> None:
    """Keys written by one store are read back by a fresh store on the same file."""
    url = _sqlite_url(tmp_path / "keys.db")
    writer = SQLKeyStore.from_url(url)
    try:
        await writer.ensure_initialized()
        await writer.store({"kid-1": "cert-1", "kid-2": "cert-2"}, 1_700_000_000)
    finally:
        await writer.dispose()

    reader = SQLKeyStore.from_url(url)
    try:
        await reader.ensure_initialized()
        loaded = await reader.load()
    finally:
        await reader.dispose()

    assert loaded == CachedKeySet(
        keys={"kid-1": "cert-1", "kid-2": "cert-2"}, fetched_at=1_700_000_000
    )


@pytest.mark.asyncio
async def test_sql_store_overwrites_single_row(tmp_path: Path) -> None:
    """A second store drops keys absent from the new set and keeps fetched_at monotonic."""
    store = SQLKeyStore.from_url(_sqlite_url(tmp_path / "keys.db"))
    try:
        await store.ensure_initialized()
        await store.store({"kid-1": "cert-1"}, 2_000)
        replaced = await store.store({"kid-2": "cert-2"}, 3_000)
        stale_write = await store.store({"kid-3": "cert-3"}, 1_000)
        loaded = await store.load()
    finally:
        await store.dispose()

    assert replaced == CachedKeySet(keys={"kid-2": "cert-2"}, fetched_at=3_000)
    assert stale_write.fetched_at == 3_000
    assert loaded == CachedKeySet(keys={"kid-3": "cert-3"}, fetched_at=3_000)
