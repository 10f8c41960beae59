"""
Error hierarchy for store interactions.

Every failure a worker can hit while talking to the store is one of these
kinds. Callers branch on the type: a UniquenessViolation may be worth a new
id, anything else ends the run.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence


class StoreError(Exception):
    """Base class for all store-facing failures."""

    def __init__(self, message: str, *, table: Optional[str] = None) -> None:
        super().__init__(message)
        self.table = table


class TransportError(StoreError):
    """The store call failed at the network or service layer."""


class EncodingError(StoreError):
    """A record could not be marshaled into a row (a local bug)."""


class NotFound(StoreError):
    """A point lookup found no row for the key."""

    def __init__(self, table: str, key: Sequence[Any]) -> None:
        super().__init__(f"no row in {table} for key {tuple(key)!r}", table=table)
        self.key = tuple(key)


class UniquenessViolation(StoreError):
    """A write collided with an existing primary or unique-index key."""

    def __init__(self, table: str, key: Sequence[Any], detail: str = "") -> None:
        message = f"duplicate key {tuple(key)!r} in {table}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message, table=table)
        self.key = tuple(key)
        self.detail = detail


class BatchTooLarge(StoreError, ValueError):
    """insert_many was handed more records than one atomic batch may carry."""

    def __init__(self, size: int, maximum: int) -> None:
        super().__init__(f"batch of {size} records exceeds maximum of {maximum}")
        self.size = size
        self.maximum = maximum


__all__ = [
    "StoreError",
    "TransportError",
    "EncodingError",
    "NotFound",
    "UniquenessViolation",
    "BatchTooLarge",
]
