"""
Domain models for keyspread.

One base Record plus a variant per key layout. The variants differ only in
which extra columns they carry; how their storage key is derived lives in
`keyspread.keys`.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

AUTHORS = ("gold", "silver", "dia", "ruby", "sapphire")
MAX_FAVORITES = 3


class Record(BaseModel):
    """
    A synthetic record as written by the load generator.
    """

    id: str = Field(..., min_length=1, description="Storage id (derivation depends on key strategy).")
    author: str = Field(..., description="Low-cardinality author name.")
    content: str = Field(..., description="Opaque unique payload.")
    favorites: List[str] = Field(default_factory=list, description="Distinct author names, 0-3.")
    sort_weight: int = Field(..., description="Ordering value for the sort index.")
    count: int = Field(0, description="Counter bumped by the update transaction.")
    created_at: datetime = Field(..., description="Client creation timestamp.")
    updated_at: datetime = Field(..., description="Client update timestamp.")
    committed_at: Optional[datetime] = Field(
        None, description="Server-assigned commit timestamp; never set by the client."
    )

    model_config = {
        "frozen": True,
        "populate_by_name": True,
        "arbitrary_types_allowed": False,
    }

    @field_validator("favorites")
    @classmethod
    def _distinct_favorites(cls, value: List[str]) -> List[str]:
        if len(set(value)) != len(value):
            raise ValueError("favorites must not contain duplicates")
        if len(value) > MAX_FAVORITES:
            raise ValueError(f"favorites holds at most {MAX_FAVORITES} entries")
        return value


class CompositeKeyRecord(Record):
    """Record stored under the (author, id) composite key."""


class HashedKeyRecord(Record):
    """Record whose `id` is a hash of `natural_id`."""

    natural_id: str = Field(..., min_length=1)


class UniqueIndexRecord(Record):
    """Record with a store-generated `id` and a separately indexed `natural_id`."""

    natural_id: str = Field(..., min_length=1)


class UniqueIndexEntry(BaseModel):
    """Secondary index row mapping a natural id to its primary key."""

    natural_id: str = Field(..., min_length=1)
    record_id: str = Field(..., min_length=1)

    model_config = {"frozen": True}


class BenchmarkRecord(Record):
    """Record tagged with the shard bucket of its generation timestamp."""

    shard_tag: int = Field(..., ge=0)


class OperationKind(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"


class OperationLogEntry(BaseModel):
    """
    Append-only audit row written in the same transaction as the mutation it
    describes.
    """

    operation_id: str = Field(..., min_length=1)
    kind: OperationKind
    target_id: str
    target_table: str
    payload: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}


class ProjectedRecord(BaseModel):
    """(id, author) pair returned by the projection query."""

    id: str
    author: str

    model_config = {"frozen": True}


__all__ = [
    "AUTHORS",
    "MAX_FAVORITES",
    "Record",
    "CompositeKeyRecord",
    "HashedKeyRecord",
    "UniqueIndexRecord",
    "UniqueIndexEntry",
    "BenchmarkRecord",
    "OperationKind",
    "OperationLogEntry",
    "ProjectedRecord",
]
