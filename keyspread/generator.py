"""
Synthetic record generation.

Every worker owns its own RecordGenerator; nothing here is shared across
threads. Seed the random source to make a run reproducible.
"""

from __future__ import annotations

import random
import uuid
import zlib
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from keyspread.domain.models import AUTHORS, MAX_FAVORITES, BenchmarkRecord, Record

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ShardAssigner:
    """
    Tag records with `crc32(str(timestamp)) % shard_count`.

    The tag is for correlating write latency with time buckets after the run;
    it never influences where a row is stored.
    """

    def __init__(self, shard_count: int = 10) -> None:
        if shard_count <= 0:
            raise ValueError("shard_count must be positive")
        self.shard_count = shard_count

    def shard_for(self, timestamp: datetime) -> int:
        return zlib.crc32(str(timestamp).encode("utf-8")) % self.shard_count


class RecordGenerator:
    """
    Produce synthetic records from a random source.

    Parameters
    ----------
    rng : random.Random, optional
        Random source; a fresh unseeded one when omitted.
    clock : callable, optional
        Returns the client timestamp stamped on created_at/updated_at.
    authors : sequence of str
        The fixed author population.
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        clock: Optional[Clock] = None,
        authors: Sequence[str] = AUTHORS,
    ) -> None:
        self._rng = rng or random.Random()
        self._clock = clock or utc_now
        self._authors = tuple(authors)

    def new_id(self) -> str:
        """A random 128-bit identifier formatted as a uuid4 string."""
        return str(uuid.UUID(int=self._rng.getrandbits(128), version=4))

    def author(self) -> str:
        return self._rng.choice(self._authors)

    def favorites(self) -> List[str]:
        # Repeated draws collapse, so the result may be shorter than the draw count.
        draws = (self.author() for _ in range(self._rng.randrange(MAX_FAVORITES + 1)))
        return list(dict.fromkeys(draws))

    def sort_weight(self) -> int:
        return self._rng.getrandbits(63)

    def record(self, record_id: Optional[str] = None) -> Record:
        now = self._clock()
        return Record(
            id=record_id or self.new_id(),
            author=self.author(),
            content=self.new_id(),
            favorites=self.favorites(),
            sort_weight=self.sort_weight(),
            created_at=now,
            updated_at=now,
        )

    def benchmark_record(self, shards: ShardAssigner) -> BenchmarkRecord:
        now = self._clock()
        return BenchmarkRecord(
            id=self.new_id(),
            author=self.author(),
            content=self.new_id(),
            favorites=self.favorites(),
            sort_weight=self.sort_weight(),
            created_at=now,
            updated_at=now,
            shard_tag=shards.shard_for(now),
        )


__all__ = ["Clock", "RecordGenerator", "ShardAssigner", "utc_now"]
