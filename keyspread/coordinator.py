"""
Dual-write coordination.

When a primary write has derived state (unique-index rows, an operation log
entry, denormalized copies in other tables) every piece must land in the
same atomic apply. The coordinator only builds mutation lists; the backend
decides nothing about which rows belong together.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from itertools import chain
from typing import Any, Callable, Iterable, List, Mapping, Optional, Sequence

from keyspread.domain.models import OperationKind, OperationLogEntry, Record
from keyspread.domain.schema import OPERATION_LOG, duplicate_tables, encode_row
from keyspread.generator import Clock, utc_now
from keyspread.keys.abstract import KeyedRecord
from keyspread.store.abstract import COMMIT_TIMESTAMP, Mutation


class DualWriteCoordinator:
    """
    Build atomic mutation sets for primary rows and their derived state.

    Parameters
    ----------
    duplicates : sequence of str
        Tables that receive a denormalized copy on audited inserts.
    operation_table : str
        Append-only operation log table.
    id_factory : callable, optional
        Produces operation ids; uuid4 strings by default.
    clock : callable, optional
        Client timestamp for update mutations.
    """

    def __init__(
        self,
        duplicates: Sequence[str] = duplicate_tables(3),
        operation_table: str = OPERATION_LOG,
        id_factory: Optional[Callable[[], str]] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.duplicates = tuple(duplicates)
        self.operation_table = operation_table
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self._clock = clock or utc_now

    def build_insert(self, keyed: KeyedRecord) -> List[Mutation]:
        """Primary row plus its index rows."""
        mutations = [Mutation.insert(keyed.table, self._stamped(encode_row(keyed.row)))]
        mutations.extend(
            Mutation.insert(index_row.table, encode_row(index_row.entry))
            for index_row in keyed.index_rows
        )
        return mutations

    def build_batch(self, keyed_records: Iterable[KeyedRecord]) -> List[Mutation]:
        return list(chain.from_iterable(self.build_insert(k) for k in keyed_records))

    def log_entry(
        self, kind: OperationKind, table: str, target_id: str, payload: Mapping[str, Any]
    ) -> OperationLogEntry:
        return OperationLogEntry(
            operation_id=self._id_factory(),
            kind=kind,
            target_id=target_id,
            target_table=table,
            payload=dict(payload),
        )

    def build_audited_insert(self, keyed: KeyedRecord) -> List[Mutation]:
        """
        Primary row, one operation log entry, and a copy per duplicate table.
        """
        mutations = self.build_insert(keyed)
        entry = self.log_entry(
            OperationKind.INSERT,
            keyed.table,
            keyed.row.id,
            keyed.row.model_dump(mode="json"),
        )
        mutations.append(Mutation.insert(self.operation_table, encode_row(entry)))

        copy = encode_row(Record.model_validate(keyed.row.model_dump()))
        mutations.extend(Mutation.insert(table, self._stamped(copy)) for table in self.duplicates)
        return mutations

    def build_counter_update(
        self, table: str, key_values: Mapping[str, Any], count: int
    ) -> Mutation:
        values = dict(key_values)
        values.update(count=count, updated_at=self._now(), committed_at=COMMIT_TIMESTAMP)
        return Mutation.update(table, values)

    def _now(self) -> datetime:
        return self._clock()

    @staticmethod
    def _stamped(row: Mapping[str, Any]) -> dict:
        return {**row, "committed_at": COMMIT_TIMESTAMP}


__all__ = ["DualWriteCoordinator"]
