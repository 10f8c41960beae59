"""
Natural key strategy: the record id is the primary key.

This is the baseline. A random uuid4 spreads well on its own, but any id with
a time-correlated prefix (uuid1, ULID, sequences) funnels every concurrent
insert into the last key range.
"""

from __future__ import annotations

from typing import Optional, Type

from keyspread.domain.models import Record
from keyspread.domain.schema import RECORDS
from keyspread.keys.abstract import AbstractKeyStrategy, KeyedRecord


class NaturalKeyStrategy(AbstractKeyStrategy):
    name: str = "natural"
    description: str = "Primary key = record id (hotspot-prone baseline)."
    table: str = RECORDS
    model = Record

    def __init__(self, table: Optional[str] = None, model: Optional[Type[Record]] = None) -> None:
        # Benchmark tables reuse the natural layout under their own name.
        if table is not None:
            self.table = table
        if model is not None:
            self.model = model

    def keyed(self, record: Record) -> KeyedRecord:
        row = self._as_model(record)
        return KeyedRecord(table=self.table, row=row, key=(row.id,))


__all__ = ["NaturalKeyStrategy"]
