"""
Task selection.

`RUN_WORKS="InsertHashedKey,ListRecords"` enables just those workers; an
empty selection enables all of them.
"""

from __future__ import annotations

from typing import Iterable, List, Tuple

INSERT_RECORD = "InsertRecord"
INSERT_COMPOSITE_KEY = "InsertCompositeKey"
INSERT_HASHED_KEY = "InsertHashedKey"
INSERT_UNIQUE_INDEX = "InsertUniqueIndex"
INSERT_WITH_AUDIT = "InsertWithAudit"
UPDATE_RECORD = "UpdateRecord"
LIST_RECORDS = "ListRecords"
LIST_PROJECTION = "ListProjection"
INSERT_BENCHMARK_BATCH = "InsertBenchmarkBatch"

TASK_NAMES: Tuple[str, ...] = (
    INSERT_BENCHMARK_BATCH,
    INSERT_RECORD,
    INSERT_COMPOSITE_KEY,
    INSERT_HASHED_KEY,
    INSERT_UNIQUE_INDEX,
    INSERT_WITH_AUDIT,
    UPDATE_RECORD,
    LIST_RECORDS,
    LIST_PROJECTION,
)


class WorkSelector:
    """Pure filter over the known task names."""

    def __init__(self, works: Iterable[str] = ()) -> None:
        self.works = tuple(w.strip() for w in works if w.strip())
        unknown = [w for w in self.works if w not in TASK_NAMES]
        if unknown:
            raise ValueError(
                f"Unknown task(s) {', '.join(unknown)}. Available: {', '.join(TASK_NAMES)}"
            )

    @classmethod
    def from_string(cls, value: str) -> "WorkSelector":
        return cls(value.split(",") if value else ())

    def is_enabled(self, name: str) -> bool:
        return not self.works or name in self.works

    def enabled(self, names: Iterable[str] = TASK_NAMES) -> List[str]:
        return [n for n in names if self.is_enabled(n)]


__all__ = [
    "INSERT_RECORD",
    "INSERT_COMPOSITE_KEY",
    "INSERT_HASHED_KEY",
    "INSERT_UNIQUE_INDEX",
    "INSERT_WITH_AUDIT",
    "UPDATE_RECORD",
    "LIST_RECORDS",
    "LIST_PROJECTION",
    "INSERT_BENCHMARK_BATCH",
    "TASK_NAMES",
    "WorkSelector",
]
