"""
In-process versioned store.

Holds every row in a list and follows the same versioning rules as the
PostgreSQL table. Writes are serialised by an ``asyncio.Lock``; a
transaction holds the lock for its whole body and restores a snapshot of the
rows if the body raises.
"""

import asyncio
import copy
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from shared.errors import VersionNotFoundError
from shared.logging import get_logger

from ..portfolio.models import Record, RecordType, utc_now
from .base import VersionedStore


class _StoreState:
    """Rows and write lock shared by a store and its transaction views."""

    def __init__(self):
        self.rows: List[Record] = []
        self.lock = asyncio.Lock()


class InMemoryVersionedStore(VersionedStore):
    """Versioned store kept in process memory."""

    def __init__(self, _state: Optional[_StoreState] = None, _in_transaction: bool = False):
        self._state = _state or _StoreState()
        self._in_transaction = _in_transaction
        self.logger = get_logger("portfolio.persistence.memory")

    async def start(self):
        self.logger.info("In-memory store started", rows=len(self._state.rows))

    async def health_check(self) -> bool:
        return True

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["InMemoryVersionedStore"]:
        if self._in_transaction:
            # Nested unit: behaves like a savepoint.
            snapshot = copy.deepcopy(self._state.rows)
            try:
                yield self
            except BaseException:
                self._state.rows = snapshot
                raise
            return

        async with self._state.lock:
            snapshot = copy.deepcopy(self._state.rows)
            view = InMemoryVersionedStore(self._state, _in_transaction=True)
            try:
                yield view
            except BaseException:
                self._state.rows = snapshot
                self.logger.debug("Transaction rolled back")
                raise

    @asynccontextmanager
    async def _exclusive(self) -> AsyncIterator[None]:
        if self._in_transaction:
            yield
        else:
            async with self._state.lock:
                yield

    def _active_row(self, key: str) -> Optional[Record]:
        for row in self._state.rows:
            if row.key == key and row.is_active:
                return row
        return None

    @staticmethod
    def _copy(record: Record) -> Record:
        return copy.deepcopy(record)

    async def get_active(self, key: str) -> Optional[Dict[str, Any]]:
        row = self._active_row(key)
        return copy.deepcopy(row.value) if row else None

    async def list_active_records(self, record_type: RecordType) -> List[Record]:
        rows = [row for row in self._state.rows if row.type == record_type and row.is_active]
        rows.sort(key=lambda row: row.created_at)
        return [self._copy(row) for row in rows]

    async def list_all_active(self) -> List[Record]:
        # Taking the lock keeps an open transaction's partial writes out of view.
        async with self._exclusive():
            rows = [row for row in self._state.rows if row.is_active]
            rows.sort(key=lambda row: row.created_at)
            return [self._copy(row) for row in rows]

    async def set_active(self, key: str, record_type: RecordType, value: Dict[str, Any]) -> Record:
        async with self._exclusive():
            now = utc_now()
            current = self._active_row(key)
            if current is not None:
                current.is_active = False
                current.updated_at = now

            versions = [row.version for row in self._state.rows if row.key == key]
            record = Record(
                key=key,
                type=record_type,
                value=copy.deepcopy(value),
                version=max(versions, default=0) + 1,
                is_active=True,
                created_at=now,
                updated_at=now,
            )
            self._state.rows.append(record)
            return self._copy(record)

    async def deactivate(self, key: str) -> Optional[Record]:
        async with self._exclusive():
            current = self._active_row(key)
            if current is None:
                return None
            current.is_active = False
            current.updated_at = utc_now()
            return self._copy(current)

    async def deactivate_children(self, record_type: RecordType, parent_field: str, parent_id: str) -> List[Record]:
        async with self._exclusive():
            now = utc_now()
            removed = []
            for row in self._state.rows:
                if row.is_active and row.type == record_type and row.value.get(parent_field) == parent_id:
                    row.is_active = False
                    row.updated_at = now
                    removed.append(self._copy(row))
            return removed

    async def list_history(self, key: str) -> List[Record]:
        rows = [row for row in self._state.rows if row.key == key]
        rows.sort(key=lambda row: row.version, reverse=True)
        return [self._copy(row) for row in rows]

    async def activate_version(self, key: str, version: int) -> Record:
        async with self._exclusive():
            target = next(
                (row for row in self._state.rows if row.key == key and row.version == version),
                None,
            )
            if target is None:
                raise VersionNotFoundError(key, version)

            now = utc_now()
            current = self._active_row(key)
            if current is not None:
                current.is_active = False
                current.updated_at = now
            target.is_active = True
            target.updated_at = now
            return self._copy(target)

    async def counts_by_type(self) -> Dict[str, Dict[str, Any]]:
        stats: Dict[str, Dict[str, Any]] = {}
        for row in self._state.rows:
            if not row.is_active:
                continue
            entry = stats.setdefault(row.type.value, {"count": 0, "last_updated": row.updated_at})
            entry["count"] += 1
            entry["last_updated"] = max(entry["last_updated"], row.updated_at)
        return dict(sorted(stats.items()))
