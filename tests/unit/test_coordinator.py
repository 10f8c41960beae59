from __future__ import annotations

import pytest

from keyspread.coordinator import DualWriteCoordinator
from keyspread.domain.errors import UniquenessViolation
from keyspread.domain.models import OperationKind, OperationLogEntry, Record
from keyspread.domain.schema import OPERATION_LOG, RECORDS, decode_row, encode_row
from keyspread.driver import Stores
from keyspread.generator import RecordGenerator
from keyspread.keys import NaturalKeyStrategy, UniqueIndexKeyStrategy
from keyspread.store.abstract import COMMIT_TIMESTAMP, Mutation, MutationOp
from keyspread.store.memory import MemoryBackend

DUPLICATES = ("records_dup1", "records_dup2", "records_dup3")


def test_build_insert_stamps_primary_row_with_commit_timestamp(
    generator: RecordGenerator,
) -> None:
    keyed = UniqueIndexKeyStrategy().keyed(generator.record())
    mutations = DualWriteCoordinator().build_insert(keyed)

    primary, index = mutations
    assert primary.op is MutationOp.INSERT
    assert primary.table == keyed.table
    assert primary.values["committed_at"] is COMMIT_TIMESTAMP
    assert index.table == keyed.index_rows[0].table
    assert "committed_at" not in index.values


def test_build_audited_insert_covers_log_and_duplicates(generator: RecordGenerator) -> None:
    coordinator = DualWriteCoordinator(duplicates=DUPLICATES, id_factory=lambda: "op-1")
    keyed = NaturalKeyStrategy().keyed(generator.record())

    mutations = coordinator.build_audited_insert(keyed)

    assert [m.table for m in mutations] == [RECORDS, OPERATION_LOG, *DUPLICATES]
    log_values = mutations[1].values
    assert log_values["operation_id"] == "op-1"
    assert log_values["kind"] == OperationKind.INSERT.value
    assert log_values["target_id"] == keyed.row.id
    assert log_values["payload"]["id"] == keyed.row.id


def test_build_counter_update_sets_count_and_commit_timestamp() -> None:
    mutation = DualWriteCoordinator().build_counter_update(RECORDS, {"id": "abc"}, 5)

    assert mutation.op is MutationOp.UPDATE
    assert mutation.values["id"] == "abc"
    assert mutation.values["count"] == 5
    assert mutation.values["committed_at"] is COMMIT_TIMESTAMP
    assert mutation.values["updated_at"] is not None


def test_update_log_entry_survives_a_store_round_trip(backend: MemoryBackend) -> None:
    coordinator = DualWriteCoordinator(id_factory=lambda: "op-7")
    entry = coordinator.log_entry(OperationKind.UPDATE, RECORDS, "abc", {"count": 2})

    row = encode_row(entry)
    assert row["kind"] == "UPDATE"
    backend.apply([Mutation.insert(OPERATION_LOG, row)])

    (stored,) = [decode_row(r, OperationLogEntry) for r in backend.scan(OPERATION_LOG)]
    assert stored.kind is OperationKind.UPDATE
    assert stored.target_id == "abc"
    assert stored.payload == {"count": 2}


def test_audited_insert_lands_everywhere(
    stores: Stores, backend: MemoryBackend, generator: RecordGenerator
) -> None:
    record = generator.record()
    stores.records.insert_with_audit(record)

    assert backend.row_count(RECORDS) == 1
    (log_row,) = list(backend.scan(OPERATION_LOG))
    entry = decode_row(log_row, OperationLogEntry)
    assert entry.kind is OperationKind.INSERT
    assert entry.target_table == RECORDS
    assert entry.payload["id"] == record.id
    for table in DUPLICATES:
        assert backend.read_row(table, (record.id,))["author"] == record.author


def test_audited_insert_is_all_or_nothing(
    stores: Stores, backend: MemoryBackend, generator: RecordGenerator
) -> None:
    record = generator.record()
    # Pre-existing copy in the last duplicate table makes the dual write collide.
    copy = encode_row(Record.model_validate(record.model_dump()))
    backend.apply([Mutation.insert("records_dup3", copy)])

    with pytest.raises(UniquenessViolation):
        stores.records.insert_with_audit(record)

    assert backend.row_count(RECORDS) == 0
    assert backend.row_count(OPERATION_LOG) == 0
    assert backend.row_count("records_dup1") == 0
