"""
Concurrent write driver: one worker thread per enabled task, fail fast.

Usage (example from CLI):
    from keyspread.driver import ConcurrentWriteDriver, DriverConfig, build_stores

    stores = build_stores(backend, settings)
    driver = ConcurrentWriteDriver(stores, WorkSelector.from_string("InsertHashedKey"))
    report = driver.run()

Every worker loops until it is cancelled, reaches `max_iterations`, or (for
the benchmark batch task) exhausts its record count. The first worker to
finish, by error or by completing, ends the run: the supervisor sets the
shared cancel event, joins every worker, and returns one outcome per task.

Reports are saved to `results/` by default:
- `results/latest.json` (last run)
- `results/run-<timestamp>.json` (timestamped archive)
"""

from __future__ import annotations

import json
import random
import threading
import time
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

from keyspread.config import Settings
from keyspread.coordinator import DualWriteCoordinator
from keyspread.domain.models import BenchmarkRecord
from keyspread.domain.schema import SORT_ASC, duplicate_tables
from keyspread.generator import RecordGenerator, ShardAssigner
from keyspread.keys import (
    CompositeKeyStrategy,
    HashedKeyStrategy,
    NaturalKeyStrategy,
    UniqueIndexKeyStrategy,
)
from keyspread.selector import (
    INSERT_BENCHMARK_BATCH,
    INSERT_COMPOSITE_KEY,
    INSERT_HASHED_KEY,
    INSERT_RECORD,
    INSERT_UNIQUE_INDEX,
    INSERT_WITH_AUDIT,
    LIST_PROJECTION,
    LIST_RECORDS,
    UPDATE_RECORD,
    WorkSelector,
)
from keyspread.store.abstract import StoreBackend
from keyspread.store.client import RecordStore
from keyspread.utils.logging import get_logger
from keyspread.utils.profiler import ProfileStats, profile_block

log = get_logger(__name__)


@dataclass
class Stores:
    """One RecordStore per key layout, all sharing a single backend."""

    records: RecordStore
    composite: RecordStore
    hashed: RecordStore
    unique: RecordStore
    benchmark: RecordStore


def build_stores(backend: StoreBackend, settings: Settings) -> Stores:
    """Wire every RecordStore against `backend` using `settings`."""
    coordinator = DualWriteCoordinator(duplicates=duplicate_tables(settings.duplicate_table_count))
    fence = settings.fence_table if settings.fence_table in backend.catalog else None

    def store(strategy: Any, fence_table: Optional[str] = None) -> RecordStore:
        return RecordStore(
            backend,
            strategy,
            coordinator=coordinator,
            max_batch_size=settings.max_batch_size,
            fence_table=fence_table,
        )

    return Stores(
        records=store(NaturalKeyStrategy(), fence_table=fence),
        composite=store(CompositeKeyStrategy()),
        hashed=store(HashedKeyStrategy()),
        unique=store(UniqueIndexKeyStrategy()),
        benchmark=store(
            NaturalKeyStrategy(table=settings.benchmark_table_name, model=BenchmarkRecord)
        ),
    )


@dataclass(frozen=True)
class DriverConfig:
    """
    Knobs for one driver run.

    `max_iterations` bounds the otherwise endless loops (None = run until an
    error or cancellation).
    """

    benchmark_count: int = 0
    batch_size: int = 1000
    list_limit: int = 50
    projection_limit: int = 10
    shard_count: int = 10
    max_iterations: Optional[int] = None
    seed: Optional[int] = None
    progress_every: int = 1000

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> "DriverConfig":
        values: Dict[str, Any] = {
            "benchmark_count": settings.benchmark_count,
            "batch_size": settings.batch_size,
            "list_limit": settings.list_limit,
            "projection_limit": settings.projection_limit,
            "shard_count": settings.shard_count,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


@dataclass
class TaskOutcome:
    task: str
    iterations: int = 0
    records_written: int = 0
    records_read: int = 0
    flushes: List[int] = field(default_factory=list)
    duration_seconds: float = 0.0
    completed: bool = False
    cancelled: bool = False
    error: Optional[str] = None
    error_type: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass
class DriverReport:
    outcomes: List[TaskOutcome]
    terminal_task: Optional[str] = None
    terminal_error: Optional[BaseException] = None
    profile: Optional[ProfileStats] = None

    @property
    def ok(self) -> bool:
        return not any(o.failed for o in self.outcomes)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "ok": self.ok,
            "terminal_task": self.terminal_task,
            "terminal_error": repr(self.terminal_error) if self.terminal_error else None,
            "profile": self.profile.as_dict() if self.profile else None,
            "tasks": [asdict(o) for o in self.outcomes],
        }


class TaskContext:
    """Per-worker state: its generator, the shared stores, and the cancel event."""

    def __init__(
        self,
        name: str,
        stores: Stores,
        config: DriverConfig,
        cancel: threading.Event,
        generator: RecordGenerator,
    ) -> None:
        self.name = name
        self.stores = stores
        self.config = config
        self.cancel = cancel
        self.generator = generator
        self.shards = ShardAssigner(config.shard_count)
        self.outcome = TaskOutcome(task=name)
        self.exception: Optional[BaseException] = None

    def running(self) -> Iterator[int]:
        """Yield iteration numbers until cancelled or `max_iterations` is hit."""
        i = 0
        limit = self.config.max_iterations
        while not self.cancel.is_set():
            if limit is not None and i >= limit:
                return
            yield i
            i += 1
            self.outcome.iterations = i


def _insert_loop(pick: Callable[[Stores], RecordStore], label: str) -> Callable[[TaskContext], None]:
    def task(ctx: TaskContext) -> None:
        store = pick(ctx.stores)
        for _ in ctx.running():
            keyed = store.insert(ctx.generator.record())
            ctx.outcome.records_written += 1
            log.debug(f"{label} key={keyed.key}", extra={"task": ctx.name})

    return task


def _insert_with_audit(ctx: TaskContext) -> None:
    for _ in ctx.running():
        keyed = ctx.stores.records.insert_with_audit(ctx.generator.record())
        ctx.outcome.records_written += 1
        log.debug(f"AUDITED_INSERT key={keyed.key}", extra={"task": ctx.name})


def _update_record(ctx: TaskContext) -> None:
    store = ctx.stores.records
    # Audited insert so the fence table holds a row for the same id.
    keyed = store.insert_with_audit(ctx.generator.record())
    ctx.outcome.records_written += 1
    for _ in ctx.running():
        count = store.update(keyed.key)
        log.debug(f"UPDATE key={keyed.key} count={count}", extra={"task": ctx.name})


def _list_records(ctx: TaskContext) -> None:
    store = ctx.stores.records
    for _ in ctx.running():
        rows = store.query(SORT_ASC, ctx.config.list_limit)
        ctx.outcome.records_read += len(rows)
        for row in rows:
            store.get(row.id)
            ctx.outcome.records_read += 1
        log.debug(f"LIST length={len(rows)}", extra={"task": ctx.name})


def _list_projection(ctx: TaskContext) -> None:
    store = ctx.stores.records
    for _ in ctx.running():
        pairs = store.query_projection(ctx.config.projection_limit)
        ctx.outcome.records_read += len(pairs)
        log.debug(f"PROJECTION length={len(pairs)}", extra={"task": ctx.name})


def _flush(ctx: TaskContext, buffer: List[BenchmarkRecord]) -> None:
    ctx.stores.benchmark.insert_many(buffer)
    ctx.outcome.flushes.append(len(buffer))
    ctx.outcome.records_written += len(buffer)
    log.info(
        f"[FLUSH] {len(buffer)} records",
        extra={"task": ctx.name, "rows": len(buffer), "total": ctx.outcome.records_written},
    )


def _insert_benchmark_batch(ctx: TaskContext) -> None:
    """
    Buffer benchmark records and flush every `batch_size`, then flush the tail.
    """
    buffer: List[BenchmarkRecord] = []
    for i in range(ctx.config.benchmark_count):
        if ctx.cancel.is_set():
            return
        record = ctx.generator.benchmark_record(ctx.shards)
        buffer.append(record)
        ctx.outcome.iterations = i + 1
        if len(buffer) >= ctx.config.batch_size:
            _flush(ctx, buffer)
            buffer = []
        if i % ctx.config.progress_every == 0:
            log.info(
                f"[BENCHMARK] index={i} id={record.id}",
                extra={"task": ctx.name, "index": i, "shard_tag": record.shard_tag},
            )
    if buffer:
        _flush(ctx, buffer)


def _task_registry() -> Dict[str, Callable[[TaskContext], None]]:
    """Registry of available tasks."""
    return {
        INSERT_BENCHMARK_BATCH: _insert_benchmark_batch,
        INSERT_RECORD: _insert_loop(lambda s: s.records, "RECORD_INSERT"),
        INSERT_COMPOSITE_KEY: _insert_loop(lambda s: s.composite, "COMPOSITE_INSERT"),
        INSERT_HASHED_KEY: _insert_loop(lambda s: s.hashed, "HASHED_INSERT"),
        INSERT_UNIQUE_INDEX: _insert_loop(lambda s: s.unique, "UNIQUE_INDEX_INSERT"),
        INSERT_WITH_AUDIT: _insert_with_audit,
        UPDATE_RECORD: _update_record,
        LIST_RECORDS: _list_records,
        LIST_PROJECTION: _list_projection,
    }


def available_tasks() -> List[str]:
    """List available task names."""
    return sorted(_task_registry().keys())


class ConcurrentWriteDriver:
    """
    Run the selected tasks concurrently and collect every outcome.

    Parameters
    ----------
    stores : Stores
        Shared store clients, injected once.
    selector : WorkSelector
        Which tasks run.
    config : DriverConfig, optional
        Run parameters.
    """

    def __init__(
        self,
        stores: Stores,
        selector: Optional[WorkSelector] = None,
        config: Optional[DriverConfig] = None,
    ) -> None:
        self.stores = stores
        self.selector = selector or WorkSelector()
        self.config = config or DriverConfig()
        self._registry = _task_registry()
        self._terminal_lock = threading.Lock()
        self._terminal: Optional[TaskContext] = None

    def enabled_tasks(self) -> List[str]:
        names = self.selector.enabled(self._registry)
        if INSERT_BENCHMARK_BATCH in names and self.config.benchmark_count <= 0:
            log.warning(
                f"[SKIP] {INSERT_BENCHMARK_BATCH} needs a positive benchmark count",
                extra={"task": INSERT_BENCHMARK_BATCH},
            )
            names.remove(INSERT_BENCHMARK_BATCH)
        return names

    def _generator_for(self, index: int) -> RecordGenerator:
        if self.config.seed is None:
            return RecordGenerator()
        return RecordGenerator(random.Random(self.config.seed + index))

    def _signal(self, ctx: TaskContext) -> None:
        with self._terminal_lock:
            if self._terminal is None:
                self._terminal = ctx
        ctx.cancel.set()

    def _run_task(self, ctx: TaskContext) -> TaskOutcome:
        log.info(f"[TASK START] {ctx.name}", extra={"task": ctx.name})
        start = time.perf_counter()
        try:
            self._registry[ctx.name](ctx)
            ctx.outcome.cancelled = ctx.cancel.is_set()
            ctx.outcome.completed = not ctx.outcome.cancelled
            log.info(
                f"[TASK {'CANCELLED' if ctx.outcome.cancelled else 'DONE'}] {ctx.name}",
                extra={"task": ctx.name, "iterations": ctx.outcome.iterations},
            )
        except Exception as exc:  # noqa: BLE001 - recorded and reported by the supervisor
            ctx.exception = exc
            ctx.outcome.error = str(exc)
            ctx.outcome.error_type = type(exc).__name__
            log.exception(f"[TASK FAILED] {ctx.name}", extra={"task": ctx.name})
        finally:
            ctx.outcome.duration_seconds = round(time.perf_counter() - start, 3)
            self._signal(ctx)
        return ctx.outcome

    def run(self) -> DriverReport:
        """
        Start every enabled task, stop all of them on the first terminal
        signal, and return the collected outcomes.
        """
        names = self.enabled_tasks()
        if not names:
            raise ValueError("No tasks enabled for this run")

        self._terminal = None
        cancel = threading.Event()
        contexts = [
            TaskContext(name, self.stores, self.config, cancel, self._generator_for(i))
            for i, name in enumerate(names)
        ]
        log.info(f"[DRIVER START] {len(contexts)} task(s)", extra={"tasks": names})

        with profile_block("driver") as stats:
            with ThreadPoolExecutor(
                max_workers=len(contexts), thread_name_prefix="worker"
            ) as pool:
                futures = [pool.submit(self._run_task, ctx) for ctx in contexts]
                try:
                    wait(futures, return_when=FIRST_COMPLETED)
                finally:
                    # Broadcast, then join: every worker stops at its next iteration.
                    cancel.set()
                    wait(futures)

        terminal = self._terminal
        report = DriverReport(
            outcomes=[ctx.outcome for ctx in contexts],
            terminal_task=terminal.name if terminal else None,
            terminal_error=terminal.exception if terminal else None,
            profile=stats,
        )
        if report.terminal_error is None:
            # A worker can fail while the others are being cancelled.
            report.terminal_error = next(
                (ctx.exception for ctx in contexts if ctx.exception is not None), None
            )
        log.info(
            "[DRIVER COMPLETE]",
            extra={"ok": report.ok, "terminal_task": report.terminal_task},
        )
        return report


def persist_report(report: DriverReport, results_dir: Path | str = "results") -> Path:
    """Write the report as `latest.json` plus a timestamped archive."""
    results_dir = Path(results_dir)
    results_dir.mkdir(parents=True, exist_ok=True)
    latest_path = results_dir / "latest.json"
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    archive_path = results_dir / f"run-{timestamp}.json"

    payload = report.as_dict()
    for path in (latest_path, archive_path):
        with path.open("w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, sort_keys=True)

    log.info("Results persisted", extra={"latest": str(latest_path), "archive": str(archive_path)})
    return latest_path


__all__ = [
    "Stores",
    "build_stores",
    "DriverConfig",
    "TaskOutcome",
    "DriverReport",
    "TaskContext",
    "ConcurrentWriteDriver",
    "available_tasks",
    "persist_report",
]
