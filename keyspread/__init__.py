"""
keyspread - key layout strategies and concurrent write load for range-sharded stores.

Monotonic primary keys funnel every insert into the last range of a
range-partitioned store. This package generates synthetic records, writes
them under alternative key layouts and measures how they spread:

- Natural id (the hotspot-prone baseline)
- Composite (author, id)
- Hashed key (sha256 of the natural id)
- Random primary key plus an emulated unique index on the natural id

Derived state (operation log, duplicate tables, index rows) is written in the
same atomic apply as the primary row.
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from keyspread.analysis import chi_square, distribution, key_range_bucket
from keyspread.config import Settings, get_settings
from keyspread.coordinator import DualWriteCoordinator
from keyspread.driver import (
    ConcurrentWriteDriver,
    DriverConfig,
    DriverReport,
    TaskOutcome,
    available_tasks,
    build_stores,
)
from keyspread.generator import RecordGenerator, ShardAssigner
from keyspread.keys import (
    CompositeKeyStrategy,
    HashedKeyStrategy,
    KeyStrategy,
    NaturalKeyStrategy,
    UniqueIndexKeyStrategy,
)
from keyspread.selector import WorkSelector
from keyspread.store.client import RecordStore
from keyspread.store.db_factory import open_backend
from keyspread.store.memory import MemoryBackend
from keyspread.utils.logging import configure_logging, get_logger
from keyspread.utils.profiler import ProfileStats, profile_block

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Records and keys
    "RecordGenerator",
    "ShardAssigner",
    "KeyStrategy",
    "NaturalKeyStrategy",
    "CompositeKeyStrategy",
    "HashedKeyStrategy",
    "UniqueIndexKeyStrategy",
    # Store
    "RecordStore",
    "MemoryBackend",
    "DualWriteCoordinator",
    "open_backend",
    # Driver
    "WorkSelector",
    "ConcurrentWriteDriver",
    "DriverConfig",
    "DriverReport",
    "TaskOutcome",
    "available_tasks",
    "build_stores",
    # Analysis
    "key_range_bucket",
    "chi_square",
    "distribution",
    # Logging
    "configure_logging",
    "get_logger",
    # Profiling
    "ProfileStats",
    "profile_block",
]
