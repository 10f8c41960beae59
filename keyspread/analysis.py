"""
Key distribution analysis.

A range-sharded store splits its key space into contiguous ranges. Bucketing
storage keys into equal-width ranges and comparing the counts against a
uniform expectation shows whether a key strategy spreads writes or piles them
onto a few ranges.
"""

from __future__ import annotations

import string
from dataclasses import dataclass
from typing import Any, List, Sequence

from keyspread.generator import RecordGenerator
from keyspread.keys.abstract import KeyStrategy

_HEX_DIGITS = frozenset(string.hexdigits)
_PREFIX_CHARS = 8  # 32 bits of a hex key
_KEY_SPACE = 1 << 32


def _leading_bits(first: str) -> int:
    prefix = first[:_PREFIX_CHARS]
    if len(prefix) == _PREFIX_CHARS and set(prefix) <= _HEX_DIGITS:
        return int(prefix, 16)
    raw = first.encode("utf-8")[:4].ljust(4, b"\x00")
    return int.from_bytes(raw, "big")


def key_range_bucket(key: Sequence[Any], buckets: int) -> int:
    """
    Map a storage key onto one of `buckets` equal-width ranges of the key space.

    Only the leading key column matters: hex keys contribute their leading
    32 bits, anything else its leading four bytes.
    """
    if buckets <= 0:
        raise ValueError("buckets must be positive")
    if not key:
        raise ValueError("key must have at least one column")
    return _leading_bits(str(key[0])) * buckets // _KEY_SPACE


def chi_square(counts: Sequence[int]) -> float:
    """Pearson's statistic of `counts` against a uniform expectation."""
    if not counts:
        raise ValueError("counts must not be empty")
    total = sum(counts)
    if total == 0:
        return 0.0
    expected = total / len(counts)
    return sum((observed - expected) ** 2 / expected for observed in counts)


def distribution(
    strategy: KeyStrategy, generator: RecordGenerator, samples: int, buckets: int = 10
) -> List[int]:
    """Per-bucket counts of `samples` generated records keyed by `strategy`."""
    counts = [0] * buckets
    for _ in range(samples):
        counts[key_range_bucket(strategy.storage_key(generator.record()), buckets)] += 1
    return counts


@dataclass(frozen=True)
class KeyDistribution:
    strategy: str
    counts: List[int]

    @property
    def statistic(self) -> float:
        return chi_square(self.counts)

    @property
    def hottest_share(self) -> float:
        total = sum(self.counts)
        return max(self.counts) / total if total else 0.0


def analyze(
    strategies: Sequence[KeyStrategy],
    generator: RecordGenerator,
    samples: int,
    buckets: int = 10,
) -> List[KeyDistribution]:
    return [
        KeyDistribution(s.name, distribution(s, generator, samples, buckets)) for s in strategies
    ]


__all__ = ["key_range_bucket", "chi_square", "distribution", "KeyDistribution", "analyze"]
