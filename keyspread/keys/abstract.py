"""
Key strategy interfaces for keyspread.

A key strategy decides where a record lands in a range-sharded store: which
table, which primary key tuple, and which companion index rows must be
written with it. Concrete strategies (natural, composite, hashed,
unique_index) implement the KeyStrategy protocol; the store client only ever
talks to this interface.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import Optional, Protocol, Tuple, Type, runtime_checkable

from pydantic import BaseModel

from keyspread.domain.models import Record

StorageKey = Tuple[str, ...]


@dataclass(frozen=True)
class IndexRow:
    """A companion row written atomically with the primary row."""

    table: str
    entry: BaseModel


@dataclass(frozen=True)
class KeyedRecord:
    """
    A record resolved to its storage location.

    Attributes
    ----------
    table : str
        Primary table the row is written to.
    row : Record
        The storage model (may differ from the generated record, e.g. a hashed id).
    key : tuple of str
        Primary key in the table's key column order.
    index_rows : tuple of IndexRow
        Secondary rows that must commit in the same atomic write.
    """

    table: str
    row: Record
    key: StorageKey
    index_rows: Tuple[IndexRow, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class NaturalLookup:
    """
    How to find a row given its business id.

    Either `key` is the primary key directly, or `index_table` must be read
    first to learn it.
    """

    natural_id: str
    key: Optional[StorageKey] = None
    index_table: Optional[str] = None


@runtime_checkable
class KeyStrategy(Protocol):
    """
    Common interface all key strategies must implement.

    Attributes
    ----------
    name : str
        A short machine-friendly identifier.
    description : str
        A human-friendly summary of the layout and its tradeoff.
    table : str
        Primary table written by this strategy.
    model : type
        Storage model read back from `table`.
    """

    name: str
    description: str
    table: str
    model: Type[Record]

    def keyed(self, record: Record) -> KeyedRecord:
        """Resolve a generated record to its storage row, key, and index rows."""
        ...

    def storage_key(self, record: Record) -> StorageKey:
        """Primary key `record` would be stored under."""
        ...

    def natural_lookup(self, natural_id: str) -> NaturalLookup:
        """Describe the read path for a business id."""
        ...


class AbstractKeyStrategy(abc.ABC):
    """
    ABC helper for class-based implementations.

    Subclasses set `name`, `description`, `table` and `model` and implement
    `keyed`.
    """

    name: str
    description: str
    table: str
    model: Type[Record] = Record

    @abc.abstractmethod
    def keyed(self, record: Record) -> KeyedRecord:  # pragma: no cover - interface only
        raise NotImplementedError

    def storage_key(self, record: Record) -> StorageKey:
        return self.keyed(record).key

    def natural_lookup(self, natural_id: str) -> NaturalLookup:
        return NaturalLookup(natural_id=natural_id, key=(natural_id,))

    def _as_model(self, record: Record, **overrides: object) -> Record:
        data = record.model_dump()
        data.update(overrides)
        return self.model.model_validate(data)


__all__ = [
    "StorageKey",
    "IndexRow",
    "KeyedRecord",
    "NaturalLookup",
    "KeyStrategy",
    "AbstractKeyStrategy",
]
