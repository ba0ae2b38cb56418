"""
Versioned key-value store interface.

Every write appends a new version of a key and flips the previous active row
to inactive; deletes only deactivate. Implementations must surface backend
failures as ``StoreUnavailableError`` and never swallow them.
"""

from abc import ABC, abstractmethod
from typing import Any, AsyncContextManager, Dict, List, Optional

from ..portfolio.models import Record, RecordType


class VersionedStore(ABC):
    """Point CRUD over the ``portfolio_data`` table with per-key version history."""

    async def start(self) -> None:
        """Open connections and make sure the table exists."""

    async def stop(self) -> None:
        """Release connections."""

    @abstractmethod
    async def health_check(self) -> bool:
        """Lightweight connectivity probe."""

    @abstractmethod
    def transaction(self) -> AsyncContextManager["VersionedStore"]:
        """Yield a store bound to one all-or-nothing unit of work.

        Calling ``transaction()`` on an already bound store nests inside the
        enclosing unit.
        """

    @abstractmethod
    async def get_active(self, key: str) -> Optional[Dict[str, Any]]:
        """Value of the active record for ``key``, or None."""

    @abstractmethod
    async def list_active_records(self, record_type: RecordType) -> List[Record]:
        """Active records of one type, oldest row first."""

    @abstractmethod
    async def list_all_active(self) -> List[Record]:
        """Every active record of every type from one consistent read, oldest row first.

        A transaction committing concurrently is seen either fully or not at all.
        """

    async def list_active_by_type(self, record_type: RecordType) -> List[Dict[str, Any]]:
        """Values of the active records of one type, oldest row first."""
        return [record.value for record in await self.list_active_records(record_type)]

    @abstractmethod
    async def set_active(self, key: str, record_type: RecordType, value: Dict[str, Any]) -> Record:
        """Deactivate the current version of ``key`` and insert version max+1."""

    @abstractmethod
    async def deactivate(self, key: str) -> Optional[Record]:
        """Deactivate the active record for ``key``; None when there is none."""

    @abstractmethod
    async def deactivate_children(self, record_type: RecordType, parent_field: str, parent_id: str) -> List[Record]:
        """Deactivate every active ``record_type`` row whose value[parent_field] == parent_id."""

    @abstractmethod
    async def list_history(self, key: str) -> List[Record]:
        """All versions of ``key``, newest first."""

    @abstractmethod
    async def activate_version(self, key: str, version: int) -> Record:
        """Make ``version`` the active record of ``key``.

        Raises:
            VersionNotFoundError: no row exists for (key, version)
        """

    @abstractmethod
    async def counts_by_type(self) -> Dict[str, Dict[str, Any]]:
        """``{type: {"count": int, "last_updated": datetime}}`` over active rows."""
