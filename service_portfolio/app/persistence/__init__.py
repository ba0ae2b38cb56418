"""
Persistence package for the Portfolio Service.

Provides the versioned key-value store behind the ``portfolio_data`` table:
a PostgreSQL implementation for deployments and an in-process one for local
runs and tests. Both honour the same interface (``VersionedStore``).
"""

from shared.config import BaseConfig

from .base import VersionedStore
from .memory import InMemoryVersionedStore
from .postgres import PostgresVersionedStore


def create_store(config: BaseConfig) -> VersionedStore:
    """Build the store selected by ``store_backend``."""
    if config.store_backend == "memory":
        return InMemoryVersionedStore()
    if config.store_backend == "postgres":
        return PostgresVersionedStore(
            config.postgres_dsn,
            min_size=config.db_pool_min_size,
            max_size=config.db_pool_max_size,
            command_timeout=config.db_command_timeout,
            acquire_timeout=config.db_acquire_timeout,
        )
    raise ValueError(f"Unknown store backend: {config.store_backend}")


__all__ = ["VersionedStore", "InMemoryVersionedStore", "PostgresVersionedStore", "create_store"]
