"""
In-process store backend.

Keeps every table as a dict keyed by primary key tuple and serializes all
writes and transactions behind one re-entrant lock, which is a trivially
serializable schedule. Commit timestamps come from the backend's clock, not
from the caller. Used for dry runs, key distribution analysis, and tests.
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, TypeVar

from keyspread.domain.errors import NotFound, UniquenessViolation
from keyspread.domain.schema import TableSchema
from keyspread.store.abstract import (
    COMMIT_TIMESTAMP,
    Mutation,
    MutationOp,
    StoreBackend,
    Transaction,
)


T = TypeVar("T")
Key = Tuple[Any, ...]


def _project(row: Mapping[str, Any], columns: Optional[Sequence[str]]) -> dict:
    if columns is None:
        return dict(row)
    return {c: row.get(c) for c in columns}


class _MemoryTransaction(Transaction):
    def __init__(self, backend: "MemoryBackend") -> None:
        self._backend = backend
        self.mutations: List[Mutation] = []

    def read_row(
        self, table: str, key: Sequence[Any], columns: Optional[Sequence[str]] = None
    ) -> dict:
        return self._backend.read_row(table, key, columns)

    def buffer_write(self, mutations: Sequence[Mutation]) -> None:
        self.mutations.extend(mutations)


class MemoryBackend(StoreBackend):
    """
    Dict-of-dicts table store.

    Parameters
    ----------
    catalog : mapping of table name to TableSchema
        Tables the backend accepts; writes to other tables are rejected.
    clock : callable, optional
        Source of commit timestamps.
    """

    def __init__(
        self,
        catalog: Mapping[str, TableSchema],
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.catalog = dict(catalog)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._tables: Dict[str, Dict[Key, dict]] = {name: {} for name in self.catalog}
        self._lock = threading.RLock()
        self.apply_count = 0

    def apply(self, mutations: Sequence[Mutation]) -> None:
        with self._lock:
            committed_at = self._clock()
            staged: Dict[str, Dict[Key, dict]] = {}
            for mutation in mutations:
                schema = self.schema(mutation.table)
                key = schema.key_of(mutation.values)
                table = self._tables[mutation.table]
                pending = staged.setdefault(mutation.table, {})
                values = {
                    c: (committed_at if v is COMMIT_TIMESTAMP else v)
                    for c, v in mutation.values.items()
                }
                if mutation.op is MutationOp.INSERT:
                    if key in table or key in pending:
                        raise UniquenessViolation(mutation.table, key)
                    pending[key] = {c: values.get(c) for c in schema.column_names}
                else:
                    current = pending.get(key) or table.get(key)
                    if current is None:
                        raise NotFound(mutation.table, key)
                    pending[key] = {**current, **values}
            for name, rows in staged.items():
                self._tables[name].update(rows)
            self.apply_count += 1

    def read_row(
        self, table: str, key: Sequence[Any], columns: Optional[Sequence[str]] = None
    ) -> dict:
        self.schema(table)
        with self._lock:
            row = self._tables[table].get(tuple(key))
            if row is None:
                raise NotFound(table, key)
            return _project(row, columns)

    def scan(
        self,
        table: str,
        index: Optional[str] = None,
        columns: Optional[Sequence[str]] = None,
        limit: Optional[int] = None,
    ) -> Iterator[dict]:
        schema = self.schema(table)
        order = schema.index_columns(index) if index else schema.primary_key
        with self._lock:
            snapshot = list(self._tables[table].values())
        snapshot.sort(key=lambda row: tuple(row[c] for c in order))
        if limit is not None:
            snapshot = snapshot[:limit]
        for row in snapshot:
            yield _project(row, columns)

    def read_projection(self, table: str, columns: Sequence[str], limit: int) -> List[dict]:
        return list(self.scan(table, columns=columns, limit=limit))

    def run_in_transaction(self, fn: Callable[[Transaction], T]) -> T:
        with self._lock:
            txn = _MemoryTransaction(self)
            result = fn(txn)
            if txn.mutations:
                self.apply(txn.mutations)
            return result

    def row_count(self, table: str) -> int:
        self.schema(table)
        with self._lock:
            return len(self._tables[table])


__all__ = ["MemoryBackend"]
