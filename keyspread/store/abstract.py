"""
Backend contract for the external store.

The store is treated as an opaque, range-sharded, strongly consistent table
store. A backend offers exactly what the workers need from it: atomic
multi-mutation apply, point reads, ordered streaming scans, a bounded
projection, and serializable read-write transactions.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterator, List, Mapping, Optional, Sequence, TypeVar

from keyspread.domain.schema import TableSchema

T = TypeVar("T")


class _CommitTimestamp:
    """Placeholder resolved by the store to the transaction's commit time."""

    _instance: Optional["_CommitTimestamp"] = None

    def __new__(cls) -> "_CommitTimestamp":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "COMMIT_TIMESTAMP"


COMMIT_TIMESTAMP = _CommitTimestamp()


class MutationOp(str, Enum):
    INSERT = "insert"
    UPDATE = "update"


@dataclass(frozen=True)
class Mutation:
    """
    One row write inside an atomic apply.

    `values` must contain every primary key column of `table`. For UPDATE the
    remaining columns are the ones being set.
    """

    op: MutationOp
    table: str
    values: Mapping[str, Any]

    @classmethod
    def insert(cls, table: str, values: Mapping[str, Any]) -> "Mutation":
        return cls(MutationOp.INSERT, table, dict(values))

    @classmethod
    def update(cls, table: str, values: Mapping[str, Any]) -> "Mutation":
        return cls(MutationOp.UPDATE, table, dict(values))


class Transaction(abc.ABC):
    """Handle passed to a read-write transaction body."""

    @abc.abstractmethod
    def read_row(
        self, table: str, key: Sequence[Any], columns: Optional[Sequence[str]] = None
    ) -> dict:
        """Read one row inside the transaction; raises NotFound when absent."""
        raise NotImplementedError

    @abc.abstractmethod
    def buffer_write(self, mutations: Sequence[Mutation]) -> None:
        """Queue mutations to be applied when the transaction commits."""
        raise NotImplementedError


class StoreBackend(abc.ABC):
    """
    Low-level access to the store, shared by reference across workers.

    Implementations must be safe to call from several threads at once.
    """

    catalog: Mapping[str, TableSchema]

    def schema(self, table: str) -> TableSchema:
        try:
            return self.catalog[table]
        except KeyError:
            raise ValueError(
                f"Unknown table '{table}'. Available: {', '.join(sorted(self.catalog))}"
            ) from None

    @abc.abstractmethod
    def apply(self, mutations: Sequence[Mutation]) -> None:
        """Apply all mutations atomically, or none of them."""
        raise NotImplementedError

    @abc.abstractmethod
    def read_row(
        self, table: str, key: Sequence[Any], columns: Optional[Sequence[str]] = None
    ) -> dict:
        """Point read by primary key; raises NotFound when absent."""
        raise NotImplementedError

    @abc.abstractmethod
    def scan(
        self,
        table: str,
        index: Optional[str] = None,
        columns: Optional[Sequence[str]] = None,
        limit: Optional[int] = None,
    ) -> Iterator[dict]:
        """
        Stream rows ordered by `index` (primary key order when None).

        With `limit`, at most that many rows are fetched from the store.

        The iterator is lazy; closing it early releases the underlying cursor.
        """
        raise NotImplementedError

    @abc.abstractmethod
    def read_projection(self, table: str, columns: Sequence[str], limit: int) -> List[dict]:
        """Return at most `limit` rows restricted to `columns`."""
        raise NotImplementedError

    @abc.abstractmethod
    def run_in_transaction(self, fn: Callable[[Transaction], T]) -> T:
        """Run `fn` as one serializable read-write transaction and commit its writes."""
        raise NotImplementedError

    def close(self) -> None:
        """Release backend resources."""

    def __enter__(self) -> "StoreBackend":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = [
    "COMMIT_TIMESTAMP",
    "MutationOp",
    "Mutation",
    "Transaction",
    "StoreBackend",
]
