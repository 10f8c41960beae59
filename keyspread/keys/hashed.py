"""
Hashed key strategy: the primary key is sha256(natural id).

The digest is uniformly spread over the key space, so concurrent inserts land
on every range evenly. Ordering by natural id is gone; the natural id stays
on the row so it can still be found by recomputing the hash.
"""

from __future__ import annotations

import hashlib

from keyspread.domain.models import HashedKeyRecord, Record
from keyspread.domain.schema import RECORDS_HASHED
from keyspread.keys.abstract import AbstractKeyStrategy, KeyedRecord, NaturalLookup


def hash_key(natural_id: str) -> str:
    return hashlib.sha256(natural_id.encode("utf-8")).hexdigest()


class HashedKeyStrategy(AbstractKeyStrategy):
    name: str = "hashed"
    description: str = "Primary key = sha256(id); natural id kept as a column."
    table: str = RECORDS_HASHED
    model = HashedKeyRecord

    def keyed(self, record: Record) -> KeyedRecord:
        natural_id = getattr(record, "natural_id", record.id)
        row = self._as_model(record, id=hash_key(natural_id), natural_id=natural_id)
        return KeyedRecord(table=self.table, row=row, key=(row.id,))

    def natural_lookup(self, natural_id: str) -> NaturalLookup:
        return NaturalLookup(natural_id=natural_id, key=(hash_key(natural_id),))


__all__ = ["HashedKeyStrategy", "hash_key"]
