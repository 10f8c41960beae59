"""
Record store client: the operations the workers call.

A RecordStore binds one key strategy to a backend. It owns no connection
state of its own, so any number of stores can share one backend, and one
store can be shared across worker threads.
"""

from __future__ import annotations

from itertools import islice
from typing import Any, List, Optional, Sequence, Union

from keyspread.coordinator import DualWriteCoordinator
from keyspread.domain.errors import BatchTooLarge
from keyspread.domain.models import ProjectedRecord, Record, UniqueIndexEntry
from keyspread.domain.schema import SORT_ASC, decode_row
from keyspread.keys.abstract import KeyedRecord, KeyStrategy, StorageKey
from keyspread.store.abstract import StoreBackend, Transaction
from keyspread.utils.logging import get_logger

log = get_logger(__name__)

KeyLike = Union[str, Sequence[Any]]


def _as_key(key: KeyLike) -> StorageKey:
    if isinstance(key, str):
        return (key,)
    return tuple(key)


class RecordStore:
    """
    Insert, read, scan, and update records laid out by one key strategy.

    Parameters
    ----------
    backend : StoreBackend
        Shared store handle.
    strategy : KeyStrategy
        Decides table, primary key, and index rows for each record.
    coordinator : DualWriteCoordinator, optional
        Builds the atomic mutation sets.
    max_batch_size : int
        Upper bound on records per `insert_many` call.
    fence_table : str, optional
        Table read inside `update` as a cross-table read fence; None skips it.
    """

    def __init__(
        self,
        backend: StoreBackend,
        strategy: KeyStrategy,
        coordinator: Optional[DualWriteCoordinator] = None,
        max_batch_size: int = 1000,
        fence_table: Optional[str] = None,
    ) -> None:
        self.backend = backend
        self.strategy = strategy
        self.coordinator = coordinator or DualWriteCoordinator()
        self.max_batch_size = max_batch_size
        self.fence_table = fence_table

    @property
    def table(self) -> str:
        return self.strategy.table

    def insert(self, record: Record) -> KeyedRecord:
        """Write one record (and its index rows) as a single atomic apply."""
        keyed = self.strategy.keyed(record)
        self.backend.apply(self.coordinator.build_insert(keyed))
        return keyed

    def insert_many(self, records: Sequence[Record]) -> List[KeyedRecord]:
        """
        Write up to `max_batch_size` records as one atomic apply.

        Raises
        ------
        BatchTooLarge
            If more records are passed than one batch may carry. Nothing is written.
        """
        if len(records) > self.max_batch_size:
            raise BatchTooLarge(len(records), self.max_batch_size)
        keyed = [self.strategy.keyed(r) for r in records]
        if keyed:
            self.backend.apply(self.coordinator.build_batch(keyed))
            log.debug("Batch applied", extra={"table": self.table, "rows": len(keyed)})
        return keyed

    def insert_with_audit(self, record: Record) -> KeyedRecord:
        """Write the record, its operation log entry, and its duplicates atomically."""
        keyed = self.strategy.keyed(record)
        self.backend.apply(self.coordinator.build_audited_insert(keyed))
        return keyed

    def get(self, key: KeyLike) -> Record:
        """Point lookup by storage key; raises NotFound."""
        row = self.backend.read_row(self.table, _as_key(key))
        return decode_row(row, self.strategy.model)

    def get_by_natural_id(self, natural_id: str) -> Record:
        """
        Look a record up by its business id.

        Costs one read when the key is derivable from the id and two when it
        has to go through the index table first.
        """
        lookup = self.strategy.natural_lookup(natural_id)
        key = lookup.key
        if lookup.index_table is not None:
            entry = decode_row(
                self.backend.read_row(lookup.index_table, (natural_id,)), UniqueIndexEntry
            )
            key = (entry.record_id,)
        return self.get(key)

    def query(self, order_index: str = SORT_ASC, limit: int = 50) -> List[Record]:
        """
        Return up to `limit` records in `order_index` order.

        Pulls exactly `limit` rows from the scan and then closes it.
        """
        if limit <= 0:
            return []
        rows = self.backend.scan(self.table, index=order_index, limit=limit)
        try:
            return [decode_row(row, self.strategy.model) for row in islice(rows, limit)]
        finally:
            close = getattr(rows, "close", None)
            if close is not None:
                close()

    def query_projection(self, limit: int = 10) -> List[ProjectedRecord]:
        rows = self.backend.read_projection(self.table, ("id", "author"), limit)
        return [decode_row(row, ProjectedRecord) for row in rows[:limit]]

    def update(self, key: KeyLike) -> int:
        """
        Increment the record's counter in one serializable transaction.

        Reads the counter, reads the row with the same id from the fence
        table, then writes count + 1 with a server-assigned commit timestamp.
        Returns the new count.
        """
        storage_key = _as_key(key)
        schema = self.backend.schema(self.table)
        key_values = dict(zip(schema.primary_key, storage_key))

        def body(txn: Transaction) -> int:
            current = txn.read_row(self.table, storage_key, ("count",))
            if self.fence_table is not None:
                txn.read_row(self.fence_table, (key_values["id"],), ("id",))
            count = int(current["count"] or 0) + 1
            txn.buffer_write(
                [self.coordinator.build_counter_update(self.table, key_values, count)]
            )
            return count

        return self.backend.run_in_transaction(body)


__all__ = ["RecordStore"]
