from __future__ import annotations

import pytest

from keyspread.selector import (
    INSERT_BENCHMARK_BATCH,
    INSERT_HASHED_KEY,
    LIST_RECORDS,
    TASK_NAMES,
    WorkSelector,
)


def test_empty_selection_enables_every_task() -> None:
    selector = WorkSelector.from_string("")
    assert selector.enabled() == list(TASK_NAMES)
    assert all(selector.is_enabled(name) for name in TASK_NAMES)


def test_selection_enables_only_named_tasks() -> None:
    selector = WorkSelector.from_string("InsertHashedKey, ListRecords")
    assert selector.enabled() == [INSERT_HASHED_KEY, LIST_RECORDS]
    assert not selector.is_enabled(INSERT_BENCHMARK_BATCH)


def test_blank_entries_are_ignored() -> None:
    assert WorkSelector.from_string("InsertHashedKey,,").works == (INSERT_HASHED_KEY,)


def test_unknown_task_name_lists_available_tasks() -> None:
    with pytest.raises(ValueError) as excinfo:
        WorkSelector.from_string("InsertHashedKey,DropEverything")
    message = str(excinfo.value)
    assert "DropEverything" in message
    assert INSERT_HASHED_KEY in message
