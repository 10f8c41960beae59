"""
Pytest configuration for keyspread.

Provides fixtures for:
- An in-memory store backend with the full table catalog
- Store clients wired the way the driver wires them
- Seeded record generators
- Settings and a reachable store for integration tests
"""

from __future__ import annotations

import os
import random
from typing import Generator

import psycopg
import pytest

from keyspread.config import Settings
from keyspread.domain.schema import build_catalog
from keyspread.driver import Stores, build_stores
from keyspread.generator import RecordGenerator
from keyspread.store.db_factory import build_dsn
from keyspread.store.memory import MemoryBackend

DEFAULT_SEED = 42


@pytest.fixture
def settings() -> Settings:
    """Settings with defaults only; no .env file and no environment overrides."""
    return Settings(_env_file=None, store_backend="memory", run_works="", benchmark_count=0)


@pytest.fixture
def backend(settings: Settings) -> MemoryBackend:
    return MemoryBackend(
        build_catalog(settings.benchmark_table_name, settings.duplicate_table_count)
    )


@pytest.fixture
def stores(backend: MemoryBackend, settings: Settings) -> Stores:
    return build_stores(backend, settings)


@pytest.fixture
def generator() -> RecordGenerator:
    return RecordGenerator(random.Random(DEFAULT_SEED))


@pytest.fixture(scope="session")
def integration_settings() -> Settings:
    """
    Settings for integration tests against a PostgreSQL-wire store.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        _env_file=None,
        store_backend="postgres",
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "26257")),
        db_user=os.getenv("DB_USER", "root"),
        db_password=os.getenv("DB_PASSWORD", ""),
        db_name=os.getenv("DB_NAME", "keyspread"),
        db_sslmode=os.getenv("DB_SSLMODE", "disable"),
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def db_connection_available(integration_settings: Settings) -> bool:
    """
    Check if the store is reachable.

    Used to conditionally skip integration tests when it is not.
    """
    try:
        with psycopg.connect(build_dsn(integration_settings), connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture(scope="session")
def db_connection(
    integration_settings: Settings, db_connection_available: bool
) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a session-scoped autocommit connection for schema setup and cleanup.

    Skips tests if the store is not available.
    """
    if not db_connection_available:
        pytest.skip("Store not available for integration tests")

    conn = psycopg.connect(build_dsn(integration_settings), autocommit=True)
    try:
        yield conn
    finally:
        conn.close()
