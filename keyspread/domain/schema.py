"""
Table catalog and explicit field-to-column mappings.

Each entity variant declares which model field lands in which column. Rows
are built from these tables instead of by reflecting over the model, so a
renamed field breaks loudly here rather than silently writing a new column.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError

from keyspread.domain.errors import EncodingError
from keyspread.domain.models import (
    BenchmarkRecord,
    CompositeKeyRecord,
    HashedKeyRecord,
    OperationLogEntry,
    ProjectedRecord,
    Record,
    UniqueIndexEntry,
    UniqueIndexRecord,
)

RECORDS = "records"
RECORDS_COMPOSITE = "records_composite"
RECORDS_HASHED = "records_hashed"
RECORDS_UNIQUE = "records_unique"
RECORDS_UNIQUE_INDEX = "records_unique_index"
OPERATION_LOG = "operation_log"
DUPLICATE_PREFIX = "records_dup"

SORT_ASC = "sort_asc"

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass(frozen=True)
class Column:
    name: str
    sql_type: str
    nullable: bool = False
    default: str | None = None


@dataclass(frozen=True)
class TableSchema:
    """
    Physical layout of one table: columns, primary key, and ordered indexes.

    `indexes` maps an index name to the column tuple it is ordered by; the
    primary key columns are appended implicitly as a tiebreaker.
    """

    name: str
    columns: Tuple[Column, ...]
    primary_key: Tuple[str, ...]
    indexes: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)

    @property
    def column_names(self) -> Tuple[str, ...]:
        return tuple(c.name for c in self.columns)

    def key_of(self, row: Mapping[str, Any]) -> Tuple[Any, ...]:
        try:
            return tuple(row[c] for c in self.primary_key)
        except KeyError as exc:
            raise EncodingError(
                f"row for {self.name} is missing key column {exc.args[0]!r}", table=self.name
            ) from exc

    def index_columns(self, index: str) -> Tuple[str, ...]:
        if index not in self.indexes:
            raise ValueError(
                f"Unknown index '{index}' on {self.name}. Available: {', '.join(self.indexes)}"
            )
        return self.indexes[index] + self.primary_key


# Field -> column mappings, one per entity variant.
RECORD_FIELDS: Dict[str, str] = {
    "id": "id",
    "author": "author",
    "content": "content",
    "favorites": "favorites",
    "sort_weight": "sort_weight",
    "count": "count",
    "created_at": "created_at",
    "updated_at": "updated_at",
    "committed_at": "committed_at",
}
HASHED_FIELDS: Dict[str, str] = {**RECORD_FIELDS, "natural_id": "natural_id"}
UNIQUE_FIELDS: Dict[str, str] = {**RECORD_FIELDS, "natural_id": "natural_id"}
BENCHMARK_FIELDS: Dict[str, str] = {**RECORD_FIELDS, "shard_tag": "shard_tag"}
INDEX_ENTRY_FIELDS: Dict[str, str] = {"natural_id": "natural_id", "record_id": "record_id"}
OPERATION_FIELDS: Dict[str, str] = {
    "operation_id": "operation_id",
    "kind": "kind",
    "target_id": "target_id",
    "target_table": "target_table",
    "payload": "payload",
}
PROJECTION_FIELDS: Dict[str, str] = {"id": "id", "author": "author"}

FIELD_MAPPINGS: Dict[Type[BaseModel], Dict[str, str]] = {
    Record: RECORD_FIELDS,
    CompositeKeyRecord: RECORD_FIELDS,
    HashedKeyRecord: HASHED_FIELDS,
    UniqueIndexRecord: UNIQUE_FIELDS,
    BenchmarkRecord: BENCHMARK_FIELDS,
    UniqueIndexEntry: INDEX_ENTRY_FIELDS,
    OperationLogEntry: OPERATION_FIELDS,
    ProjectedRecord: PROJECTION_FIELDS,
}

_RECORD_COLUMNS: Tuple[Column, ...] = (
    Column("id", "TEXT"),
    Column("author", "TEXT"),
    Column("content", "TEXT"),
    Column("favorites", "TEXT[]"),
    Column("sort_weight", "BIGINT"),
    Column("count", "BIGINT", default="0"),
    Column("created_at", "TIMESTAMPTZ"),
    Column("updated_at", "TIMESTAMPTZ"),
    Column("committed_at", "TIMESTAMPTZ", nullable=True),
)


def encode_row(model: BaseModel) -> Dict[str, Any]:
    """
    Build a column -> value row for `model` using its declared mapping.
    """
    mapping = FIELD_MAPPINGS.get(type(model))
    if mapping is None:
        raise EncodingError(f"no column mapping declared for {type(model).__name__}")
    row: Dict[str, Any] = {}
    for field_name, column in mapping.items():
        try:
            value = getattr(model, field_name)
        except AttributeError as exc:
            raise EncodingError(
                f"{type(model).__name__} has no field {field_name!r}"
            ) from exc
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, list):
            value = list(value)
        row[column] = value
    return row


def decode_row(row: Mapping[str, Any], model_cls: Type[ModelT]) -> ModelT:
    """
    Rebuild a model from a row read back from the store.
    """
    mapping = FIELD_MAPPINGS.get(model_cls)
    if mapping is None:
        raise EncodingError(f"no column mapping declared for {model_cls.__name__}")
    data = {f: row[c] for f, c in mapping.items() if c in row}
    try:
        return model_cls.model_validate(data)
    except ValidationError as exc:
        raise EncodingError(f"row does not decode as {model_cls.__name__}: {exc}") from exc


def duplicate_tables(count: int) -> Tuple[str, ...]:
    return tuple(f"{DUPLICATE_PREFIX}{i}" for i in range(1, count + 1))


def build_catalog(
    benchmark_table: str = "records_benchmark", duplicate_table_count: int = 3
) -> Dict[str, TableSchema]:
    """
    Every table the workers touch, keyed by table name.
    """
    sort_index = {SORT_ASC: ("sort_weight",)}
    tables = [
        TableSchema(RECORDS, _RECORD_COLUMNS, ("id",), sort_index),
        TableSchema(RECORDS_COMPOSITE, _RECORD_COLUMNS, ("author", "id"), sort_index),
        TableSchema(
            RECORDS_HASHED, _RECORD_COLUMNS + (Column("natural_id", "TEXT"),), ("id",), sort_index
        ),
        TableSchema(
            RECORDS_UNIQUE, _RECORD_COLUMNS + (Column("natural_id", "TEXT"),), ("id",), sort_index
        ),
        TableSchema(
            RECORDS_UNIQUE_INDEX,
            (Column("natural_id", "TEXT"), Column("record_id", "TEXT")),
            ("natural_id",),
        ),
        TableSchema(
            OPERATION_LOG,
            (
                Column("operation_id", "TEXT"),
                Column("kind", "TEXT"),
                Column("target_id", "TEXT"),
                Column("target_table", "TEXT"),
                Column("payload", "JSONB"),
            ),
            ("operation_id",),
        ),
        TableSchema(
            benchmark_table,
            _RECORD_COLUMNS + (Column("shard_tag", "INT"),),
            ("id",),
            sort_index,
        ),
    ]
    tables.extend(
        TableSchema(name, _RECORD_COLUMNS, ("id",)) for name in duplicate_tables(duplicate_table_count)
    )
    return {t.name: t for t in tables}


__all__ = [
    "RECORDS",
    "RECORDS_COMPOSITE",
    "RECORDS_HASHED",
    "RECORDS_UNIQUE",
    "RECORDS_UNIQUE_INDEX",
    "OPERATION_LOG",
    "SORT_ASC",
    "Column",
    "TableSchema",
    "FIELD_MAPPINGS",
    "encode_row",
    "decode_row",
    "duplicate_tables",
    "build_catalog",
]
