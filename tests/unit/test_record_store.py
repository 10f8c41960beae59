from __future__ import annotations

import threading

import pytest

from keyspread.domain.errors import BatchTooLarge, NotFound, UniquenessViolation
from keyspread.domain.models import ProjectedRecord
from keyspread.domain.schema import RECORDS, RECORDS_HASHED, SORT_ASC, build_catalog
from keyspread.driver import Stores
from keyspread.generator import RecordGenerator
from keyspread.keys import HashedKeyStrategy, NaturalKeyStrategy
from keyspread.store.client import RecordStore
from keyspread.store.memory import MemoryBackend

SEEDED_ROWS = 120
LIST_LIMIT = 50
PROJECTION_LIMIT = 10
CONCURRENT_UPDATES = 40
UPDATE_THREADS = 8


class _CountingBackend(MemoryBackend):
    """Memory backend that counts how many rows a scan actually yielded."""

    def __init__(self, catalog) -> None:
        super().__init__(catalog)
        self.pulled = 0

    def scan(self, table, index=None, columns=None, limit=None):
        for row in super().scan(table, index, columns, limit):
            self.pulled += 1
            yield row


def _seed(store: RecordStore, generator: RecordGenerator, rows: int = SEEDED_ROWS) -> None:
    for _ in range(rows):
        store.insert(generator.record())


def test_insert_then_get_round_trips_and_stamps_commit_time(
    stores: Stores, generator: RecordGenerator
) -> None:
    record = generator.record()
    stores.records.insert(record)

    stored = stores.records.get(record.id)

    assert stored.id == record.id
    assert stored.favorites == record.favorites
    assert stored.committed_at is not None


def test_get_missing_key_raises_not_found(stores: Stores) -> None:
    with pytest.raises(NotFound) as excinfo:
        stores.records.get("missing")
    assert excinfo.value.key == ("missing",)


def test_insert_of_existing_id_raises_uniqueness_violation(
    stores: Stores, generator: RecordGenerator
) -> None:
    record = generator.record()
    stores.records.insert(record)
    with pytest.raises(UniquenessViolation):
        stores.records.insert(record)


def test_hashed_store_exposes_both_lookup_paths(
    stores: Stores, generator: RecordGenerator
) -> None:
    record = generator.record()
    keyed = stores.hashed.insert(record)

    assert stores.hashed.get(keyed.key).natural_id == record.id
    assert stores.hashed.get_by_natural_id(record.id).id == keyed.key[0]


def test_unique_index_lookup_by_natural_id_takes_two_hops(
    stores: Stores, generator: RecordGenerator
) -> None:
    record = generator.record()
    keyed = stores.unique.insert(record)

    found = stores.unique.get_by_natural_id(record.id)

    assert found.id == keyed.key[0]
    assert found.natural_id == record.id


def test_insert_many_over_maximum_writes_nothing(
    backend: MemoryBackend, generator: RecordGenerator
) -> None:
    store = RecordStore(backend, NaturalKeyStrategy(), max_batch_size=3)
    with pytest.raises(BatchTooLarge) as excinfo:
        store.insert_many([generator.record() for _ in range(4)])

    assert isinstance(excinfo.value, ValueError)
    assert excinfo.value.maximum == 3
    assert backend.row_count(RECORDS) == 0
    assert backend.apply_count == 0


def test_insert_many_is_one_atomic_apply(backend: MemoryBackend, generator: RecordGenerator) -> None:
    store = RecordStore(backend, HashedKeyStrategy(), max_batch_size=10)
    keyed = store.insert_many([generator.record() for _ in range(10)])

    assert len(keyed) == 10
    assert backend.row_count(RECORDS_HASHED) == 10
    assert backend.apply_count == 1


def test_insert_many_rolls_back_whole_batch_on_collision(
    backend: MemoryBackend, generator: RecordGenerator
) -> None:
    store = RecordStore(backend, NaturalKeyStrategy())
    existing = generator.record()
    store.insert(existing)

    with pytest.raises(UniquenessViolation):
        store.insert_many([generator.record(), existing, generator.record()])

    assert backend.row_count(RECORDS) == 1


def test_query_returns_limit_rows_in_sort_order(
    backend: MemoryBackend, generator: RecordGenerator
) -> None:
    store = RecordStore(backend, NaturalKeyStrategy())
    _seed(store, generator)

    rows = store.query(SORT_ASC, LIST_LIMIT)

    assert len(rows) == LIST_LIMIT
    weights = [r.sort_weight for r in rows]
    assert weights == sorted(weights)


def test_query_returns_everything_when_table_is_small(
    backend: MemoryBackend, generator: RecordGenerator
) -> None:
    store = RecordStore(backend, NaturalKeyStrategy())
    _seed(store, generator, rows=5)
    assert len(store.query(SORT_ASC, LIST_LIMIT)) == 5
    assert store.query(SORT_ASC, 0) == []


def test_query_stops_pulling_rows_at_limit(generator: RecordGenerator) -> None:
    backend = _CountingBackend(build_catalog())
    store = RecordStore(backend, NaturalKeyStrategy())
    _seed(store, generator)

    store.query(SORT_ASC, LIST_LIMIT)

    assert backend.pulled == LIST_LIMIT


def test_query_rejects_unknown_index(stores: Stores) -> None:
    with pytest.raises(ValueError):
        stores.records.query("by_nothing", LIST_LIMIT)


def test_projection_returns_bounded_id_author_pairs(
    stores: Stores, generator: RecordGenerator
) -> None:
    _seed(stores.records, generator, rows=25)

    pairs = stores.records.query_projection(PROJECTION_LIMIT)

    assert len(pairs) == PROJECTION_LIMIT
    assert all(isinstance(p, ProjectedRecord) for p in pairs)
    assert all(p.id and p.author for p in pairs)


def test_update_increments_count_and_stamps_commit_time(
    stores: Stores, generator: RecordGenerator
) -> None:
    keyed = stores.records.insert_with_audit(generator.record())

    assert stores.records.update(keyed.key) == 1
    assert stores.records.update(keyed.key) == 2

    stored = stores.records.get(keyed.key)
    assert stored.count == 2
    assert stored.committed_at is not None


def test_update_without_fence_row_raises_not_found(
    stores: Stores, generator: RecordGenerator
) -> None:
    # Plain insert: the fence table holds no row with this id.
    keyed = stores.records.insert(generator.record())
    with pytest.raises(NotFound) as excinfo:
        stores.records.update(keyed.key)
    assert excinfo.value.table == "records_dup2"
    assert stores.records.get(keyed.key).count == 0


def test_update_of_missing_record_raises_not_found(stores: Stores) -> None:
    with pytest.raises(NotFound):
        stores.records.update("missing")


def test_concurrent_updates_are_not_lost(stores: Stores, generator: RecordGenerator) -> None:
    keyed = stores.records.insert_with_audit(generator.record())
    per_thread = CONCURRENT_UPDATES // UPDATE_THREADS
    start = threading.Barrier(UPDATE_THREADS)
    errors = []

    def worker() -> None:
        start.wait()
        try:
            for _ in range(per_thread):
                stores.records.update(keyed.key)
        except Exception as exc:  # noqa: BLE001 - surfaced through the assertion below
            errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(UPDATE_THREADS)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert stores.records.get(keyed.key).count == CONCURRENT_UPDATES
