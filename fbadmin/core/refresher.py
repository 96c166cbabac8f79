"""Scheduled, single-flight refresh of the provider public-key cache."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

import structlog

from fbadmin.core.keystore import KeyStore
from fbadmin.exceptions import KeyFetchError, KeyStoreError
from fbadmin.types import KeySet

logger = structlog.get_logger(__name__)

KeyFetcher = Callable[[], Awaitable[KeySet]]


class KeyRefresher:
    """Decide when to fetch keys, fetch at most once at a time, keep stale keys on failure.

    Every refresh attempt re-arms a single check timer. The timer only
    re-evaluates :meth:`should_refresh`, so the remote endpoint is hit once
    per TTL rather than once per check interval.
    """

    def __init__(
        self,
        store: KeyStore,
        fetch_keys: KeyFetcher,
        ttl_seconds: int = 3600,
        check_interval_seconds: float = 10.0,
        max_wait_seconds: float = 5.0,
        min_refresh_interval_seconds: float | None = None,
        now: Callable[[], float] | None = None,
    ) -> None:
        self._store = store
        self._fetch_keys = fetch_keys
        self._ttl_seconds = ttl_seconds
        self._check_interval_seconds = check_interval_seconds
        self._max_wait_seconds = max_wait_seconds
        self._min_refresh_interval_seconds = (
            check_interval_seconds
            if min_refresh_interval_seconds is None
            else min_refresh_interval_seconds
        )
        self._last_success: float | None = None
        self._now = now or time.time
        self._inflight: asyncio.Task[bool] | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._background: set[asyncio.Task[bool]] = set()
        self._closed = False

    @property
    def refresh_in_progress(self) -> bool:
        """Return True while a remote fetch is outstanding."""
        return self._inflight is not None and not self._inflight.done()

    @property
    def check_scheduled(self) -> bool:
        """Return True while a re-check timer is armed."""
        return self._timer is not None

    async def should_refresh(self) -> bool:
        """Return True when the cache is missing, empty or older than the TTL."""
        cached = await self._store.load()
        if cached is None or cached.is_empty:
            return True
        return self._now() - cached.fetched_at > self._ttl_seconds

    def request_refresh(self) -> asyncio.Task[bool]:
        """Start a refresh unless one is already running, and return its task."""
        if self._inflight is not None and not self._inflight.done():
            return self._inflight
        task = asyncio.create_task(self._run_refresh())
        self._inflight = task
        return task

    def request_recovery_refresh(self) -> asyncio.Task[bool] | None:
        """Refresh after an unknown key or bad signature, unless keys were just fetched.

        Returns None when the last successful fetch is more recent than the
        minimum refresh interval.
        """
        if self._inflight is not None and not self._inflight.done():
            return self._inflight
        if (
            self._last_success is not None
            and self._now() - self._last_success < self._min_refresh_interval_seconds
        ):
            return None
        return self.request_refresh()

    async def refresh_now(self, wait_seconds: float | None = None) -> bool:
        """Refresh and wait a bounded time; the fetch keeps running if the wait expires.

        Returns True only when a refresh completed successfully within the wait.
        """
        timeout = self._max_wait_seconds if wait_seconds is None else wait_seconds
        task = self.request_refresh()
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        except TimeoutError:
            logger.info("public_key_refresh_detached", wait_seconds=timeout)
            return False

    async def maybe_refresh(self) -> bool:
        """Refresh only when :meth:`should_refresh` says the cache is stale."""
        try:
            stale = await self.should_refresh()
        except KeyStoreError:
            logger.exception("public_key_cache_check_failed")
            self._schedule_check()
            return False
        if not stale:
            self._schedule_check()
            return False
        return await self.refresh_now()

    async def aclose(self) -> None:
        """Cancel the timer and any outstanding refresh work."""
        self._closed = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        pending = [task for task in (self._inflight, *self._background) if task is not None]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._background.clear()
        self._inflight = None

    async def _run_refresh(self) -> bool:
        """Fetch and commit keys; failures leave the existing cache in place."""
        try:
            keys = await self._fetch_keys()
            committed = await self._store.store(keys, int(self._now()))
            self._last_success = self._now()
        except KeyFetchError as exc:
            logger.error("public_key_refresh_failed", reason=exc.detail)
            return False
        except KeyStoreError as exc:
            logger.error("public_key_cache_write_failed", reason=exc.detail)
            return False
        finally:
            self._schedule_check()

        logger.info(
            "public_keys_refreshed",
            keys_count=len(committed.keys),
            fetched_at=committed.fetched_at,
        )
        return True

    def _schedule_check(self) -> None:
        """Arm the re-check timer, superseding any previously armed one."""
        if self._closed:
            return
        if self._timer is not None:
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._check_interval_seconds, self._on_check_timer)

    def _on_check_timer(self) -> None:
        """Run a staleness check in a tracked background task."""
        self._timer = None
        if self._closed:
            return
        task = asyncio.create_task(self.maybe_refresh())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
