"""
Connection factory utilities for the PostgreSQL-wire store backend.

Builds DSNs from Settings and opens the connection pool shared by every
worker. Nothing here is cached at module level: callers construct the pool
once at startup and hand it down explicitly.

Includes retry logic for transient failures while *establishing* connections
using tenacity. Individual store calls are never retried here.
"""

from __future__ import annotations

from typing import Mapping, Optional

import psycopg
from psycopg import Connection, IsolationLevel
from psycopg_pool import ConnectionPool, PoolTimeout
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from keyspread.config import Settings
from keyspread.domain.schema import TableSchema, build_catalog
from keyspread.store.abstract import StoreBackend
from keyspread.utils.logging import get_logger

log = get_logger(__name__)


def build_dsn(settings: Settings) -> str:
    """Compose a DSN string from settings."""
    auth = settings.db_user
    if settings.db_password:
        auth = f"{auth}:{settings.db_password}"
    return (
        f"postgresql://{auth}@{settings.db_host}:{settings.db_port}/{settings.db_name}"
        f"?sslmode={settings.db_sslmode}"
    )


def _configure_connection(conn: Connection) -> None:
    """Every pooled connection runs its transactions as SERIALIZABLE."""
    conn.isolation_level = IsolationLevel.SERIALIZABLE


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((psycopg.OperationalError, psycopg.InterfaceError)),
    reraise=True,
)
def get_sync_connection(settings: Settings, autocommit: bool = False) -> Connection:
    """
    Acquire a dedicated synchronous connection with automatic retry.

    Retries up to 3 times with exponential backoff for transient connection errors.
    Use this for one-off work such as schema creation; workers share the pool.

    Raises
    ------
    psycopg.OperationalError
        If connection fails after all retry attempts.
    """
    return psycopg.connect(build_dsn(settings), autocommit=autocommit)


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((PoolTimeout, psycopg.OperationalError)),
    reraise=True,
)
def _open_pool(pool: ConnectionPool, timeout: float) -> None:
    pool.open(wait=True, timeout=timeout)


def create_pool(settings: Settings, open_timeout: float = 30.0) -> ConnectionPool:
    """
    Open the connection pool shared by all workers.

    Parameters
    ----------
    settings : Settings
        Connection and pool sizing parameters.
    open_timeout : float
        Seconds to wait for `pool_min_size` connections before failing.

    Returns
    -------
    ConnectionPool
        An open pool; the caller owns it and must close it.
    """
    pool = ConnectionPool(
        conninfo=build_dsn(settings),
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
        configure=_configure_connection,
        open=False,
        name="keyspread",
    )
    _open_pool(pool, open_timeout)
    log.info(
        "Connection pool open",
        extra={
            "host": settings.db_host,
            "db": settings.db_name,
            "min_size": settings.pool_min_size,
            "max_size": settings.pool_max_size,
        },
    )
    return pool


def open_backend(
    settings: Settings, catalog: Optional[Mapping[str, TableSchema]] = None
) -> StoreBackend:
    """
    Build the backend selected by `settings.store_backend`.
    """
    catalog = catalog or build_catalog(
        settings.benchmark_table_name, settings.duplicate_table_count
    )
    if settings.store_backend == "memory":
        from keyspread.store.memory import MemoryBackend

        return MemoryBackend(catalog)
    if settings.store_backend == "postgres":
        from keyspread.store.postgres import PostgresBackend

        return PostgresBackend(
            create_pool(settings), catalog, max_txn_attempts=settings.txn_max_attempts
        )
    raise ValueError(f"Unknown store backend '{settings.store_backend}'")


__all__ = [
    "build_dsn",
    "create_pool",
    "get_sync_connection",
    "open_backend",
]
