"""
Domain package for keyspread.

Exports the entity models, the table catalog, and the error hierarchy shared
by key strategies, store backends, and the driver.
"""

from keyspread.domain.errors import (
    BatchTooLarge,
    EncodingError,
    NotFound,
    StoreError,
    TransportError,
    UniquenessViolation,
)
from keyspread.domain.models import (
    BenchmarkRecord,
    CompositeKeyRecord,
    HashedKeyRecord,
    OperationKind,
    OperationLogEntry,
    ProjectedRecord,
    Record,
    UniqueIndexEntry,
    UniqueIndexRecord,
)
from keyspread.domain.schema import TableSchema, build_catalog

__all__ = [
    "Record",
    "CompositeKeyRecord",
    "HashedKeyRecord",
    "UniqueIndexRecord",
    "UniqueIndexEntry",
    "BenchmarkRecord",
    "OperationKind",
    "OperationLogEntry",
    "ProjectedRecord",
    "TableSchema",
    "build_catalog",
    "StoreError",
    "TransportError",
    "EncodingError",
    "NotFound",
    "UniquenessViolation",
    "BatchTooLarge",
]
