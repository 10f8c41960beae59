"""
Composite key strategy: rows are ordered by (author, id).

Writes fan out across the author space, but each author's rows sit in one
contiguous range. With a handful of authors that is at most a handful of hot
ranges; the payoff is cheap per-author range scans.
"""

from __future__ import annotations

from keyspread.domain.models import CompositeKeyRecord, Record
from keyspread.domain.schema import RECORDS_COMPOSITE
from keyspread.keys.abstract import AbstractKeyStrategy, KeyedRecord, NaturalLookup


class CompositeKeyStrategy(AbstractKeyStrategy):
    name: str = "composite"
    description: str = "Primary key = (author, id); author locality over spread."
    table: str = RECORDS_COMPOSITE
    model = CompositeKeyRecord

    def keyed(self, record: Record) -> KeyedRecord:
        row = self._as_model(record)
        return KeyedRecord(table=self.table, row=row, key=(row.author, row.id))

    def natural_lookup(self, natural_id: str) -> NaturalLookup:
        raise ValueError(
            "composite keys cannot be resolved from the id alone; call get((author, id))"
        )


__all__ = ["CompositeKeyStrategy"]
