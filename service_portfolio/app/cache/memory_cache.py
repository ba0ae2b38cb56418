"""
In-process cache provider.

A plain dictionary: unbounded, no TTL, no eviction. Portfolio content is
small enough to hold completely. Every method is synchronous, so each call
runs without a suspension point on the event loop.
"""

from typing import Any, Dict, Mapping, Optional

from shared.logging import get_logger


class MemoryCacheProvider:
    """Namespace-friendly key/value cache kept in process memory."""

    def __init__(self):
        self._entries: Dict[str, Any] = {}
        self.logger = get_logger("portfolio.cache.memory")

    def get(self, key: str) -> Optional[Any]:
        return self._entries.get(key)

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = value

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def list_by_prefix(self, prefix: str) -> Dict[str, Any]:
        return {key: value for key, value in self._entries.items() if key.startswith(prefix)}

    def clear(self) -> int:
        cleared = len(self._entries)
        self._entries.clear()
        self.logger.debug("Cache cleared", cleared=cleared)
        return cleared

    def replace_all(self, entries: Mapping[str, Any]) -> None:
        """Swap the whole content in one step."""
        self._entries = dict(entries)

    def stats(self) -> Dict[str, int]:
        return {"key_count": len(self._entries)}
