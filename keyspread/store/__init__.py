"""
Store package for keyspread.

Centralizes access to the external store: the backend contract, the
in-process and PostgreSQL-wire backends, and connection setup. Keep this
layer focused on I/O; key layout lives in `keyspread.keys` and the worker
loops in `keyspread.driver`. The RecordStore client lives in
`keyspread.store.client`.
"""

from keyspread.store.abstract import (
    COMMIT_TIMESTAMP,
    Mutation,
    MutationOp,
    StoreBackend,
    Transaction,
)
from keyspread.store.db_factory import build_dsn, create_pool, get_sync_connection, open_backend
from keyspread.store.memory import MemoryBackend

__all__ = [
    "COMMIT_TIMESTAMP",
    "Mutation",
    "MutationOp",
    "StoreBackend",
    "Transaction",
    "MemoryBackend",
    "build_dsn",
    "create_pool",
    "get_sync_connection",
    "open_backend",
]
