"""
Cache-aware read orchestration for the full portfolio document.

Reads go to the cache when it is enabled and holds entries, otherwise to the
store. Writes made through the domain functions are pushed in key by key via
``update_cache_item`` / ``delete_cache_item``. An empty namespace is left
empty by point writes so that the next read fills it from the store.
"""

from typing import Any, Dict, Iterable, List, Optional

from shared.config import BaseConfig
from shared.errors import CacheFailureError
from shared.logging import get_logger
from shared.metrics import MetricsCollector

from ..portfolio.data import PortfolioDataService
from ..portfolio.models import CacheEntry, PortfolioItem, RecordType
from ..portfolio.shaping import shape_portfolio
from .memory_cache import MemoryCacheProvider


class PortfolioDataAccessor:
    """Decides between cache and store on every full portfolio read."""

    def __init__(
        self,
        data_service: PortfolioDataService,
        cache: MemoryCacheProvider,
        config: BaseConfig,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.data_service = data_service
        self.cache = cache
        self.config = config
        self.metrics = metrics
        self.prefix = f"{config.cache_namespace}:"
        self.logger = get_logger("portfolio.cache.accessor")

    @property
    def enabled(self) -> bool:
        return self.config.cache_enabled

    def cache_key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def build_entries(self, items: Iterable[PortfolioItem]) -> Dict[str, CacheEntry]:
        """Namespaced cache entries for a set of store items."""
        return {self.cache_key(item.key): CacheEntry(type=item.type, value=item.value) for item in items}

    def cached_items(self) -> List[PortfolioItem]:
        entries = self.cache.list_by_prefix(self.prefix)
        return [
            PortfolioItem(key=key[len(self.prefix):], type=entry.type, value=entry.value)
            for key, entry in entries.items()
        ]

    def _record_read(self, source: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("portfolio_reads_total", source=source)

    def _record_key_count(self) -> None:
        if self.metrics:
            self.metrics.set_gauge("cache_keys", self.cache.stats()["key_count"])

    async def get_portfolio_data(self) -> Dict[str, Any]:
        """Shaped ``{profile, skills, experiences, projects}`` document.

        A cache holding any entry under the namespace is treated as complete.
        When it holds none, the store is read and, if the cache is still
        empty afterwards, the fetched items are written back into it.

        Raises:
            StoreUnavailableError: the cache could not serve the read and the
                store is unreachable
        """
        if not self.enabled:
            items = await self.data_service.fetch_all_items()
            self._record_read("store")
            return shape_portfolio(items)

        try:
            shaped = self._read_cache()
        except CacheFailureError as e:
            self.logger.warning("Cache read failed, falling back to store", error=e.details.get("error"))
            self._record_read("store_fallback")
            return shape_portfolio(await self.data_service.fetch_all_items())

        if shaped is not None:
            self._record_read("cache")
            return shaped

        items = await self.data_service.fetch_all_items()
        self._record_read("store")
        self._backfill(items)
        return shape_portfolio(items)

    def _read_cache(self) -> Optional[Dict[str, Any]]:
        """Shaped document from the cache, or None when the namespace is empty.

        Raises:
            CacheFailureError: the cached entries could not be read or shaped
        """
        try:
            items = self.cached_items()
            return shape_portfolio(items) if items else None
        except Exception as e:
            raise CacheFailureError("Cache read failed", {"error": str(e)}) from e

    def _backfill(self, items: List[PortfolioItem]) -> None:
        if not items or self.cache.list_by_prefix(self.prefix):
            return
        for key, entry in self.build_entries(items).items():
            self.cache.set(key, entry)
        self._record_key_count()
        self.logger.info("Cache backfilled from store", keys=len(items))

    def update_cache_item(self, key: str, value: Dict[str, Any], record_type: Optional[RecordType] = None) -> bool:
        """Write one changed record into the cache.

        No-op when the cache is disabled or holds nothing under the namespace:
        a lone entry would otherwise be served as the whole portfolio.
        """
        if not self.enabled:
            return False
        if not self.cache.list_by_prefix(self.prefix):
            self.logger.debug("Cache empty, leaving write to the next backfill", key=key)
            return False
        entry = CacheEntry(type=record_type or RecordType.from_key(key), value=value)
        self.cache.set(self.cache_key(key), entry)
        self._record_key_count()
        self.logger.debug("Cache item updated", key=key)
        return True

    def delete_cache_item(self, key: str) -> bool:
        """Drop one record from the cache; no-op when disabled."""
        if not self.enabled:
            return False
        removed = self.cache.delete(self.cache_key(key))
        self._record_key_count()
        self.logger.debug("Cache item deleted", key=key, removed=removed)
        return removed

    def get_cache_status(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "refresh_interval_seconds": self.config.cache_refresh_interval_seconds,
            "key_count": self.cache.stats()["key_count"],
        }

    def list_cache_keys(self) -> Dict[str, Dict[str, Any]]:
        return {
            key: {"type": entry.type.value, "value": entry.value}
            for key, entry in self.cache.list_by_prefix(self.prefix).items()
        }
