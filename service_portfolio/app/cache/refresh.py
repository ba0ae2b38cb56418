"""
Cache refresh manager.

Owns the cache lifecycle: initial population, periodic full refresh, manual
clear/refresh and shutdown. A refresh first probes store health, then fetches
the whole dataset with retries, and only swaps the cache content once that
fetch succeeded. A failed refresh leaves the existing cache in place.
"""

import asyncio
import time
from enum import Enum
from typing import Any, Dict, Optional

from shared.config import BaseConfig
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.retry import RetryConfig, RetryError, retry_on_exception
from shared.tracing import trace_operation

from ..persistence.base import VersionedStore
from ..portfolio.models import utc_now_iso
from .accessor import PortfolioDataAccessor


class RefreshState(str, Enum):
    """Refresh manager states."""
    IDLE = "idle"
    REFRESHING = "refreshing"


def default_retry_config() -> RetryConfig:
    """Three attempts, waiting 1s then 2s."""
    return RetryConfig(max_attempts=3, base_delay=1.0, exponential_base=2.0, jitter=False)


class CacheRefreshManager:
    """Keeps the portfolio cache populated from the store."""

    def __init__(
        self,
        accessor: PortfolioDataAccessor,
        store: VersionedStore,
        config: BaseConfig,
        metrics: Optional[MetricsCollector] = None,
        retry_config: Optional[RetryConfig] = None,
    ):
        self.accessor = accessor
        self.store = store
        self.config = config
        self.metrics = metrics
        self.retry_config = retry_config or default_retry_config()
        self.logger = get_logger("portfolio.cache.refresh")

        self.state = RefreshState.IDLE
        self.last_refresh_at: Optional[str] = None
        self.last_refresh_error: Optional[str] = None
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def enabled(self) -> bool:
        return self.config.cache_enabled

    @property
    def refresh_interval(self) -> float:
        return float(self.config.cache_refresh_interval_seconds)

    async def initialize(self):
        """Populate the cache once, then schedule periodic refreshes."""
        if not self.enabled:
            self.logger.info("Portfolio cache disabled")
            return

        await self.refresh_with_retry()

        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run_periodic(self._stop_event))
        self.logger.info("Portfolio cache initialized", refresh_interval_seconds=self.refresh_interval)

    async def _run_periodic(self, stop_event: asyncio.Event):
        while True:
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.refresh_interval)
                return
            except asyncio.TimeoutError:
                pass
            await self.refresh_with_retry()

    async def _store_healthy(self) -> bool:
        try:
            return await self.store.health_check()
        except Exception as e:
            self.logger.warning("Store health check raised", error=str(e))
            return False

    async def refresh_with_retry(self) -> bool:
        """Rebuild the cache from the store.

        Returns True when the cache content was replaced. Calls made while a
        refresh is already running return False without doing anything.
        """
        if not self.enabled:
            return False
        if self.state is RefreshState.REFRESHING:
            self.logger.info("Cache refresh already in progress, skipping")
            return False

        self.state = RefreshState.REFRESHING
        start_time = time.time()
        try:
            if not await self._store_healthy():
                self.last_refresh_error = "store health check failed"
                self.logger.warning("Store unhealthy, keeping existing cache")
                self._record_result("skipped")
                return False

            fetch = retry_on_exception((Exception,), self.retry_config)(self.accessor.data_service.fetch_all_items)
            try:
                with trace_operation("portfolio.cache.fetch", max_attempts=self.retry_config.max_attempts):
                    items = await fetch()
            except RetryError as e:
                self.last_refresh_error = str(e.last_exception)
                self.logger.error(
                    "Cache refresh failed, keeping existing cache",
                    attempts=e.attempts,
                    error=str(e.last_exception),
                )
                self._record_result("failure")
                return False

            self.accessor.cache.replace_all(self.accessor.build_entries(items))

            self.last_refresh_at = utc_now_iso()
            self.last_refresh_error = None
            self._record_result("success")
            self.logger.info("Cache refreshed", keys=len(items), duration_ms=round((time.time() - start_time) * 1000, 2))
            return True
        finally:
            self.state = RefreshState.IDLE
            if self.metrics:
                self.metrics.observe_histogram("cache_refresh_duration_seconds", time.time() - start_time)

    def _record_result(self, result: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("cache_refresh_total", result=result)
            self.metrics.set_gauge("cache_keys", self.accessor.cache.stats()["key_count"])

    async def stop(self):
        """Stop scheduling refreshes.

        A refresh already in flight is not interrupted; this waits for it and
        for the periodic task to exit.
        """
        if self._stop_event is not None:
            self._stop_event.set()
        task, self._task = self._task, None
        if task is not None:
            await task
        self.logger.info("Cache refresh stopped")

    async def clear_cache(self) -> int:
        cleared = self.accessor.cache.clear()
        if self.metrics:
            self.metrics.set_gauge("cache_keys", 0)
        self.logger.info("Cache cleared", cleared=cleared)
        return cleared

    async def force_refresh(self) -> bool:
        return await self.refresh_with_retry()

    async def shutdown(self):
        """Stop refreshing and drop the cached content."""
        await self.stop()
        self.accessor.cache.clear()
        self.logger.info("Portfolio cache shut down")

    def status(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "last_refresh_at": self.last_refresh_at,
            "last_refresh_error": self.last_refresh_error,
        }
