"""
Decoupled primary key with an emulated unique secondary index.

The primary key is a fresh random id with no relation to the business id.
Uniqueness of the business id is enforced by a second table keyed by it,
written in the same atomic apply as the primary row: a second insert for the
same natural id collides on that table and the whole write is rejected.
Reading by natural id costs two hops (index row, then primary row).
"""

from __future__ import annotations

import uuid
from typing import Callable, Optional

from keyspread.domain.models import Record, UniqueIndexEntry, UniqueIndexRecord
from keyspread.domain.schema import RECORDS_UNIQUE, RECORDS_UNIQUE_INDEX
from keyspread.keys.abstract import AbstractKeyStrategy, IndexRow, KeyedRecord, NaturalLookup


def _uuid4() -> str:
    return str(uuid.uuid4())


class UniqueIndexKeyStrategy(AbstractKeyStrategy):
    name: str = "unique_index"
    description: str = "Random primary key + unique index table on the natural id."
    table: str = RECORDS_UNIQUE
    index_table: str = RECORDS_UNIQUE_INDEX
    model = UniqueIndexRecord

    def __init__(self, id_factory: Optional[Callable[[], str]] = None) -> None:
        self._id_factory = id_factory or _uuid4

    def keyed(self, record: Record) -> KeyedRecord:
        natural_id = getattr(record, "natural_id", record.id)
        primary_id = self._id_factory()
        row = self._as_model(record, id=primary_id, natural_id=natural_id)
        entry = UniqueIndexEntry(natural_id=natural_id, record_id=primary_id)
        return KeyedRecord(
            table=self.table,
            row=row,
            key=(primary_id,),
            index_rows=(IndexRow(table=self.index_table, entry=entry),),
        )

    def natural_lookup(self, natural_id: str) -> NaturalLookup:
        return NaturalLookup(natural_id=natural_id, index_table=self.index_table)


__all__ = ["UniqueIndexKeyStrategy"]
