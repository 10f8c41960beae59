from __future__ import annotations

import random
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from keyspread.domain.models import AUTHORS, MAX_FAVORITES, Record
from keyspread.generator import RecordGenerator, ShardAssigner

SAMPLES = 2000
FIXED_NOW = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def test_favorites_are_distinct_authors_and_bounded(generator: RecordGenerator) -> None:
    sizes = set()
    for _ in range(SAMPLES):
        favorites = generator.favorites()
        sizes.add(len(favorites))
        assert len(favorites) <= MAX_FAVORITES
        assert len(set(favorites)) == len(favorites)
        assert set(favorites) <= set(AUTHORS)
    assert 0 in sizes
    assert MAX_FAVORITES in sizes


def test_record_fields_are_populated(generator: RecordGenerator) -> None:
    record = generator.record()
    assert record.id
    assert record.author in AUTHORS
    assert record.count == 0
    assert record.committed_at is None
    assert record.created_at == record.updated_at


def test_record_accepts_explicit_id(generator: RecordGenerator) -> None:
    assert generator.record("natural-1").id == "natural-1"


def test_seeded_generators_are_reproducible() -> None:
    a = RecordGenerator(random.Random(7), clock=lambda: FIXED_NOW)
    b = RecordGenerator(random.Random(7), clock=lambda: FIXED_NOW)
    assert [a.record() for _ in range(5)] == [b.record() for _ in range(5)]


def test_new_ids_are_uuid4_formatted(generator: RecordGenerator) -> None:
    new_id = generator.new_id()
    assert len(new_id) == 36
    assert new_id[14] == "4"


def test_record_rejects_duplicate_favorites() -> None:
    with pytest.raises(ValidationError):
        Record(
            id="x",
            author="gold",
            content="c",
            favorites=["gold", "gold"],
            sort_weight=1,
            created_at=FIXED_NOW,
            updated_at=FIXED_NOW,
        )


def test_record_rejects_too_many_favorites() -> None:
    with pytest.raises(ValidationError):
        Record(
            id="x",
            author="gold",
            content="c",
            favorites=["gold", "silver", "dia", "ruby"],
            sort_weight=1,
            created_at=FIXED_NOW,
            updated_at=FIXED_NOW,
        )


def test_shard_assignment_is_deterministic_and_in_range() -> None:
    shards = ShardAssigner(10)
    first = shards.shard_for(FIXED_NOW)
    assert first == shards.shard_for(FIXED_NOW)
    assert 0 <= first < 10


def test_benchmark_record_carries_shard_tag_of_its_timestamp() -> None:
    shards = ShardAssigner(10)
    gen = RecordGenerator(random.Random(1), clock=lambda: FIXED_NOW)
    record = gen.benchmark_record(shards)
    assert record.shard_tag == shards.shard_for(FIXED_NOW)


def test_shard_count_must_be_positive() -> None:
    with pytest.raises(ValueError):
        ShardAssigner(0)
