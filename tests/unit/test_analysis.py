from __future__ import annotations

import pytest

from keyspread.analysis import analyze, chi_square, distribution, key_range_bucket
from keyspread.generator import RecordGenerator
from keyspread.keys import CompositeKeyStrategy, HashedKeyStrategy, key_strategy_factories

SAMPLES = 10_000
BUCKETS = 10
# Upper 0.1% point of chi-square with BUCKETS - 1 = 9 degrees of freedom.
CHI_SQUARE_CRITICAL = 27.877


def test_bucket_uses_leading_32_bits_of_hex_keys() -> None:
    assert key_range_bucket(("00000000" + "f" * 56,), BUCKETS) == 0
    assert key_range_bucket(("ffffffff" + "0" * 56,), BUCKETS) == BUCKETS - 1
    assert key_range_bucket(("80000000",), 2) == 1


def test_bucket_uses_leading_bytes_of_other_keys() -> None:
    # ASCII author names all sit in the lower half of the byte range.
    assert key_range_bucket(("gold", "x"), 2) == 0
    assert key_range_bucket(("ruby", "x"), 2) == 0
    assert key_range_bucket(("ÿ",), 2) == 1


def test_bucket_rejects_bad_arguments() -> None:
    with pytest.raises(ValueError):
        key_range_bucket(("abc",), 0)
    with pytest.raises(ValueError):
        key_range_bucket((), BUCKETS)


def test_chi_square_is_zero_for_uniform_counts() -> None:
    assert chi_square([100] * BUCKETS) == 0.0
    assert chi_square([0, 0]) == 0.0
    assert chi_square([30, 10]) == pytest.approx(10.0)


def test_chi_square_requires_counts() -> None:
    with pytest.raises(ValueError):
        chi_square([])


def test_hashed_keys_are_uniform_across_ranges(generator: RecordGenerator) -> None:
    counts = distribution(HashedKeyStrategy(), generator, SAMPLES, BUCKETS)
    assert sum(counts) == SAMPLES
    assert chi_square(counts) < CHI_SQUARE_CRITICAL


def test_composite_keys_concentrate_on_few_ranges(generator: RecordGenerator) -> None:
    counts = distribution(CompositeKeyStrategy(), generator, SAMPLES, BUCKETS)
    assert sum(1 for c in counts if c) <= 2
    assert chi_square(counts) > CHI_SQUARE_CRITICAL


def test_analyze_reports_every_strategy(generator: RecordGenerator) -> None:
    strategies = [factory() for factory in key_strategy_factories().values()]
    results = analyze(strategies, generator, 500, BUCKETS)
    assert [r.strategy for r in results] == list(key_strategy_factories())
    for result in results:
        assert sum(result.counts) == 500
        assert 0 < result.hottest_share <= 1
