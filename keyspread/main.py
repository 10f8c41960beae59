from __future__ import annotations

import random
import sys
from typing import Optional

import typer

from keyspread.analysis import analyze
from keyspread.config import Settings, get_settings
from keyspread.domain.schema import build_catalog
from keyspread.driver import (
    ConcurrentWriteDriver,
    DriverConfig,
    available_tasks,
    build_stores,
    persist_report,
)
from keyspread.generator import RecordGenerator
from keyspread.keys import key_strategy_factories
from keyspread.reporter import print_distributions, print_report
from keyspread.selector import WorkSelector
from keyspread.store.db_factory import get_sync_connection, open_backend
from keyspread.store.ddl import create_schema
from keyspread.utils.logging import configure_logging, get_logger

app = typer.Typer(help="keyspread: key layout and write load tool for range-sharded stores.")
log = get_logger(__name__)


def _init_schema(settings: Settings) -> int:
    catalog = build_catalog(settings.benchmark_table_name, settings.duplicate_table_count)
    with get_sync_connection(settings, autocommit=True) as conn:
        return create_schema(conn, catalog)


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"backend={settings.store_backend} | "
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} | "
        f"works={settings.run_works or 'all'} benchmark={settings.benchmark_table_name}"
        f"x{settings.benchmark_count} batch={settings.batch_size}"
    )
    typer.echo("Available tasks: " + ", ".join(available_tasks()))


@app.command("init-schema")
def init_schema() -> None:
    """
    Create every table and ordered index the tasks write to.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    if settings.store_backend != "postgres":
        typer.echo("The memory backend needs no schema.")
        return
    executed = _init_schema(settings)
    typer.echo(f"Executed {executed} statement(s).")


@app.command()
def run(
    works: Optional[str] = typer.Option(
        None,
        "--works",
        "-w",
        help="Comma separated task names (e.g. InsertHashedKey,ListRecords). Empty runs all.",
    ),
    benchmark_count: Optional[int] = typer.Option(
        None, "--benchmark-count", "-n", help="Records for InsertBenchmarkBatch."
    ),
    benchmark_table: Optional[str] = typer.Option(
        None, "--benchmark-table", help="Table written by InsertBenchmarkBatch."
    ),
    backend: Optional[str] = typer.Option(
        None, "--backend", "-b", help="Store backend: memory or postgres."
    ),
    max_iterations: Optional[int] = typer.Option(
        None, "--max-iterations", help="Stop each looping task after this many iterations."
    ),
    seed: Optional[int] = typer.Option(None, "--seed", help="Seed for reproducible records."),
    create_tables: bool = typer.Option(
        False, "--init-schema", help="Create tables before running (postgres only)."
    ),
    persist: bool = typer.Option(True, "--persist/--no-persist", help="Write results JSON."),
    results_dir: str = typer.Option("results", "--results-dir", help="Where results go."),
) -> None:
    """
    Run the selected tasks concurrently until the first one finishes.
    """
    overrides = {
        "run_works": works,
        "benchmark_count": benchmark_count,
        "benchmark_table_name": benchmark_table,
        "store_backend": backend,
    }
    settings = get_settings().model_copy(
        update={k: v for k, v in overrides.items() if v is not None}
    )
    configure_logging(level=settings.log_level, json_logs=settings.log_json)

    selector = WorkSelector.from_string(settings.run_works)
    config = DriverConfig.from_settings(settings, max_iterations=max_iterations, seed=seed)

    if create_tables and settings.store_backend == "postgres":
        _init_schema(settings)

    typer.echo(
        f"Running works='{settings.run_works or 'all'}' on backend={settings.store_backend} "
        f"(benchmark={config.benchmark_count}, batch={config.batch_size})."
    )
    with open_backend(settings) as store_backend:
        driver = ConcurrentWriteDriver(build_stores(store_backend, settings), selector, config)
        report = driver.run()

    print_report(report)
    if persist:
        persist_report(report, results_dir)
    if not report.ok:
        raise typer.Exit(code=1)


@app.command("analyze-keys")
def analyze_keys(
    samples: int = typer.Option(10_000, "--samples", "-n", help="Records generated per strategy."),
    buckets: int = typer.Option(10, "--buckets", help="Equal-width key ranges."),
    seed: Optional[int] = typer.Option(None, "--seed", help="Seed for reproducible keys."),
) -> None:
    """
    Show how each key strategy spreads keys over contiguous key ranges.
    """
    rng = random.Random(seed)
    strategies = [factory() for factory in key_strategy_factories().values()]
    print_distributions(analyze(strategies, RecordGenerator(rng), samples, buckets))


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
