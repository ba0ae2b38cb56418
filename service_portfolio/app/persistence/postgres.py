"""
PostgreSQL persistence layer for the portfolio table.
"""

import asyncio
import json
from contextlib import asynccontextmanager, contextmanager
from typing import Any, AsyncIterator, Dict, Iterator, List, Optional

import asyncpg

from shared.errors import ConflictError, StoreUnavailableError, VersionNotFoundError
from shared.logging import get_logger
from shared.retry import RetryConfig, RetryError, retry_on_exception

from ..portfolio.models import Record, RecordType
from .base import VersionedStore


SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS portfolio_data (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        key VARCHAR(100) NOT NULL,
        type VARCHAR(20) NOT NULL,
        value JSONB NOT NULL,
        version INTEGER NOT NULL DEFAULT 1,
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT clock_timestamp(),
        updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT clock_timestamp()
    );
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS idx_portfolio_data_key_active
        ON portfolio_data(key) WHERE is_active = TRUE;
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_portfolio_data_type_active
        ON portfolio_data(type, is_active) WHERE is_active = TRUE;
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_portfolio_data_version
        ON portfolio_data(key, version DESC);
    """,
)

# Errors that mean the backend could not serve the request.
UNAVAILABLE_ERRORS = (
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    OSError,
    asyncio.TimeoutError,
)


async def _init_connection(conn: asyncpg.Connection) -> None:
    await conn.set_type_codec("jsonb", encoder=json.dumps, decoder=json.loads, schema="pg_catalog")


class PostgresVersionedStore(VersionedStore):
    """Versioned store backed by the ``portfolio_data`` table."""

    def __init__(
        self,
        dsn: str,
        *,
        min_size: int = 0,
        max_size: int = 5,
        command_timeout: float = 30.0,
        acquire_timeout: float = 5.0,
        conflict_retry: Optional[RetryConfig] = None,
        _pool: Optional[asyncpg.Pool] = None,
        _connection: Optional[asyncpg.Connection] = None,
    ):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout
        self.acquire_timeout = acquire_timeout
        self.conflict_retry = conflict_retry or RetryConfig(max_attempts=3, base_delay=0.05, max_delay=1.0)
        self.pool: Optional[asyncpg.Pool] = _pool
        self._conn = _connection
        self.logger = get_logger("portfolio.persistence.postgres")

    async def start(self):
        """Start the persistence layer."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=self.command_timeout,
                timeout=self.acquire_timeout,
                init=_init_connection,
            )
            async with self.pool.acquire(timeout=self.acquire_timeout) as conn:
                for statement in SCHEMA_STATEMENTS:
                    await conn.execute(statement)

            self.logger.info("PostgreSQL persistence started")

        except UNAVAILABLE_ERRORS as e:
            self.logger.error("Failed to start PostgreSQL persistence", error=str(e))
            raise StoreUnavailableError("Failed to start PostgreSQL persistence", {"error": str(e)}) from e

    async def stop(self):
        """Stop the persistence layer."""
        if self.pool and self._conn is None:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL persistence stopped")

    @contextmanager
    def _translate_errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except asyncpg.UniqueViolationError as e:
            raise ConflictError("Concurrent write to the same key", {"operation": operation}) from e
        except UNAVAILABLE_ERRORS as e:
            self.logger.error("Store operation failed", operation=operation, error=str(e))
            raise StoreUnavailableError(f"Store operation failed: {operation}", {"error": str(e)}) from e

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[asyncpg.Connection]:
        if self._conn is not None:
            yield self._conn
            return
        if self.pool is None:
            raise StoreUnavailableError("PostgreSQL pool is not started")
        with self._translate_errors("acquire"):
            conn = await self.pool.acquire(timeout=self.acquire_timeout)
        try:
            yield conn
        finally:
            await self.pool.release(conn)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["PostgresVersionedStore"]:
        async with self._connection() as conn:
            tx = conn.transaction()
            with self._translate_errors("begin"):
                await tx.start()
            bound = PostgresVersionedStore(
                self.dsn,
                command_timeout=self.command_timeout,
                acquire_timeout=self.acquire_timeout,
                conflict_retry=self.conflict_retry,
                _pool=self.pool,
                _connection=conn,
            )
            try:
                yield bound
            except BaseException:
                with self._translate_errors("rollback"):
                    await tx.rollback()
                raise
            with self._translate_errors("commit"):
                await tx.commit()

    @staticmethod
    def _row_to_record(row) -> Record:
        return Record(
            key=row["key"],
            type=RecordType(row["type"]),
            value=row["value"],
            version=row["version"],
            is_active=row["is_active"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    async def health_check(self) -> bool:
        """Check database health."""
        try:
            async with self._connection() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except Exception:
            return False

    async def get_active(self, key: str) -> Optional[Dict[str, Any]]:
        async with self._connection() as conn:
            with self._translate_errors("get_active"):
                return await conn.fetchval(
                    "SELECT value FROM portfolio_data WHERE key = $1 AND is_active = TRUE",
                    key,
                )

    async def list_active_records(self, record_type: RecordType) -> List[Record]:
        async with self._connection() as conn:
            with self._translate_errors("list_active_records"):
                rows = await conn.fetch(
                    """
                    SELECT * FROM portfolio_data
                    WHERE type = $1 AND is_active = TRUE
                    ORDER BY created_at ASC
                    """,
                    record_type.value,
                )
        return [self._row_to_record(row) for row in rows]

    async def list_all_active(self) -> List[Record]:
        # One statement reads one snapshot under READ COMMITTED.
        async with self._connection() as conn:
            with self._translate_errors("list_all_active"):
                rows = await conn.fetch(
                    """
                    SELECT * FROM portfolio_data
                    WHERE is_active = TRUE
                    ORDER BY created_at ASC
                    """
                )
        return [self._row_to_record(row) for row in rows]

    async def set_active(self, key: str, record_type: RecordType, value: Dict[str, Any]) -> Record:
        if self._conn is not None:
            return await self._insert_version(self._conn, key, record_type, value)

        async def attempt() -> Record:
            async with self.transaction() as tx:
                return await tx._insert_version(tx._conn, key, record_type, value)

        try:
            return await retry_on_exception((ConflictError,), self.conflict_retry)(attempt)()
        except RetryError as e:
            raise e.last_exception

    async def _insert_version(self, conn: asyncpg.Connection, key: str, record_type: RecordType,
                              value: Dict[str, Any]) -> Record:
        with self._translate_errors("set_active"):
            await conn.execute(
                """
                UPDATE portfolio_data SET is_active = FALSE, updated_at = clock_timestamp()
                WHERE key = $1 AND is_active = TRUE
                """,
                key,
            )
            next_version = await conn.fetchval(
                "SELECT COALESCE(MAX(version), 0) + 1 FROM portfolio_data WHERE key = $1",
                key,
            )
            row = await conn.fetchrow(
                """
                INSERT INTO portfolio_data (key, type, value, version, is_active)
                VALUES ($1, $2, $3, $4, TRUE)
                RETURNING *
                """,
                key, record_type.value, value, next_version,
            )
        return self._row_to_record(row)

    async def deactivate(self, key: str) -> Optional[Record]:
        async with self._connection() as conn:
            with self._translate_errors("deactivate"):
                row = await conn.fetchrow(
                    """
                    UPDATE portfolio_data SET is_active = FALSE, updated_at = clock_timestamp()
                    WHERE key = $1 AND is_active = TRUE
                    RETURNING *
                    """,
                    key,
                )
        return self._row_to_record(row) if row else None

    async def deactivate_children(self, record_type: RecordType, parent_field: str, parent_id: str) -> List[Record]:
        async with self._connection() as conn:
            with self._translate_errors("deactivate_children"):
                rows = await conn.fetch(
                    """
                    UPDATE portfolio_data SET is_active = FALSE, updated_at = clock_timestamp()
                    WHERE type = $1 AND value->>$2 = $3 AND is_active = TRUE
                    RETURNING *
                    """,
                    record_type.value, parent_field, parent_id,
                )
        return [self._row_to_record(row) for row in rows]

    async def list_history(self, key: str) -> List[Record]:
        async with self._connection() as conn:
            with self._translate_errors("list_history"):
                rows = await conn.fetch(
                    "SELECT * FROM portfolio_data WHERE key = $1 ORDER BY version DESC",
                    key,
                )
        return [self._row_to_record(row) for row in rows]

    async def activate_version(self, key: str, version: int) -> Record:
        async with self.transaction() as tx:
            with self._translate_errors("activate_version"):
                await tx._conn.execute(
                    """
                    UPDATE portfolio_data SET is_active = FALSE, updated_at = clock_timestamp()
                    WHERE key = $1 AND is_active = TRUE
                    """,
                    key,
                )
                row = await tx._conn.fetchrow(
                    """
                    UPDATE portfolio_data SET is_active = TRUE, updated_at = clock_timestamp()
                    WHERE key = $1 AND version = $2
                    RETURNING *
                    """,
                    key, version,
                )
            if row is None:
                raise VersionNotFoundError(key, version)
            return self._row_to_record(row)

    async def counts_by_type(self) -> Dict[str, Dict[str, Any]]:
        async with self._connection() as conn:
            with self._translate_errors("counts_by_type"):
                rows = await conn.fetch(
                    """
                    SELECT type, COUNT(*) AS count, MAX(updated_at) AS last_updated
                    FROM portfolio_data
                    WHERE is_active = TRUE
                    GROUP BY type
                    ORDER BY type
                    """
                )
        return {row["type"]: {"count": row["count"], "last_updated": row["last_updated"]} for row in rows}
