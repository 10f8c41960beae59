"""
Configuration settings for keyspread.

Uses Pydantic Settings to load environment variables for the store connection,
logging, task selection, and benchmark parameters. The resulting Settings
object is passed explicitly into the components that need it.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Store
    store_backend: Literal["memory", "postgres"] = Field("memory", alias="STORE_BACKEND")
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(26257, alias="DB_PORT")
    db_user: str = Field("root", alias="DB_USER")
    db_password: str = Field("", alias="DB_PASSWORD")
    db_name: str = Field("keyspread", alias="DB_NAME")
    db_sslmode: str = Field("disable", alias="DB_SSLMODE")
    pool_min_size: int = Field(1, alias="POOL_MIN_SIZE")
    pool_max_size: int = Field(16, alias="POOL_MAX_SIZE")
    txn_max_attempts: int = Field(10, alias="TXN_MAX_ATTEMPTS")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Task selection, comma separated; empty runs every task
    run_works: str = Field("", alias="RUN_WORKS")

    # Benchmark
    benchmark_table_name: str = Field("records_benchmark", alias="BENCHMARK_TABLE_NAME")
    benchmark_count: int = Field(0, ge=0, alias="BENCHMARK_COUNT")
    batch_size: int = Field(1000, gt=0, alias="BATCH_SIZE")
    max_batch_size: int = Field(1000, gt=0, alias="MAX_BATCH_SIZE")
    shard_count: int = Field(10, gt=0, alias="SHARD_COUNT")

    # Read paths
    list_limit: int = Field(50, gt=0, alias="LIST_LIMIT")
    projection_limit: int = Field(10, gt=0, alias="PROJECTION_LIMIT")

    # Dual write
    duplicate_table_count: int = Field(3, ge=0, alias="DUPLICATE_TABLE_COUNT")
    fence_table: str = Field("records_dup2", alias="FENCE_TABLE")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @model_validator(mode="after")
    def check_batch_fits_in_one_apply(self) -> "Settings":
        if self.batch_size > self.max_batch_size:
            raise ValueError(
                f"BATCH_SIZE ({self.batch_size}) exceeds MAX_BATCH_SIZE ({self.max_batch_size})"
            )
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
