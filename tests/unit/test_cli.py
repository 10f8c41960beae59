from __future__ import annotations

import io
import json

import pytest
from rich.console import Console
from typer.testing import CliRunner

from keyspread import config, main
from keyspread.analysis import KeyDistribution
from keyspread.driver import DriverReport, TaskOutcome
from keyspread.reporter import print_distributions, print_report

runner = CliRunner()


@pytest.fixture(autouse=True)
def memory_env(monkeypatch):
    monkeypatch.setenv("STORE_BACKEND", "memory")
    monkeypatch.setenv("RUN_WORKS", "")
    monkeypatch.setenv("BENCHMARK_COUNT", "0")
    config.get_settings.cache_clear()
    yield
    config.get_settings.cache_clear()


def _console() -> Console:
    return Console(file=io.StringIO(), width=200)


def test_info_lists_backend_and_tasks() -> None:
    result = runner.invoke(main.app, ["info"])
    assert result.exit_code == 0
    assert "backend=memory" in result.output
    assert "InsertHashedKey" in result.output


def test_run_persists_results(tmp_path) -> None:
    result = runner.invoke(
        main.app,
        [
            "run",
            "--works",
            "InsertRecord,ListProjection",
            "--max-iterations",
            "3",
            "--seed",
            "1",
            "--results-dir",
            str(tmp_path),
        ],
    )
    assert result.exit_code == 0, result.output
    payload = json.loads((tmp_path / "latest.json").read_text(encoding="utf-8"))
    assert payload["ok"] is True
    assert {t["task"] for t in payload["tasks"]} == {"InsertRecord", "ListProjection"}


def test_run_benchmark_batch() -> None:
    result = runner.invoke(
        main.app,
        ["run", "-w", "InsertBenchmarkBatch", "-n", "1500", "--no-persist"],
    )
    assert result.exit_code == 0, result.output
    assert "Running works='InsertBenchmarkBatch'" in result.output


def test_run_rejects_unknown_task() -> None:
    result = runner.invoke(main.app, ["run", "--works", "Nope", "--no-persist"])
    assert result.exit_code != 0


def test_analyze_keys_prints_every_strategy() -> None:
    result = runner.invoke(
        main.app, ["analyze-keys", "--samples", "300", "--buckets", "4", "--seed", "3"]
    )
    assert result.exit_code == 0, result.output
    for name in ("natural", "composite", "hashed", "unique_index"):
        assert name in result.output


def test_init_schema_is_a_no_op_for_memory_backend() -> None:
    result = runner.invoke(main.app, ["init-schema"])
    assert result.exit_code == 0
    assert "needs no schema" in result.output


def test_print_report_marks_failures_and_terminal_task() -> None:
    console = _console()
    error = RuntimeError("boom")
    report = DriverReport(
        outcomes=[
            TaskOutcome(task="InsertRecord", iterations=3, records_written=3, cancelled=True),
            TaskOutcome(task="UpdateRecord", error="boom", error_type="RuntimeError"),
        ],
        terminal_task="UpdateRecord",
        terminal_error=error,
    )

    print_report(report, console)

    output = console.file.getvalue()
    assert "UpdateRecord *" in output
    assert "failed" in output
    assert "RuntimeError: boom" in output


def test_print_distributions_orders_by_statistic() -> None:
    console = _console()
    print_distributions(
        [KeyDistribution("composite", [0, 0, 90, 10]), KeyDistribution("hashed", [25] * 4)],
        console,
    )
    output = console.file.getvalue()
    assert output.index("hashed") < output.index("composite")
