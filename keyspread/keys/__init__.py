"""
Key strategies package for keyspread.

Re-exports the abstract interfaces and the concrete strategies so downstream
code can import from `keyspread.keys` directly.
"""

from typing import Callable, Dict

from keyspread.keys.abstract import (
    AbstractKeyStrategy,
    IndexRow,
    KeyedRecord,
    KeyStrategy,
    NaturalLookup,
    StorageKey,
)
from keyspread.keys.composite import CompositeKeyStrategy
from keyspread.keys.hashed import HashedKeyStrategy, hash_key
from keyspread.keys.natural import NaturalKeyStrategy
from keyspread.keys.unique_index import UniqueIndexKeyStrategy


def key_strategy_factories() -> Dict[str, Callable[[], KeyStrategy]]:
    """Registry of available key strategies."""
    return {
        "natural": NaturalKeyStrategy,
        "composite": CompositeKeyStrategy,
        "hashed": HashedKeyStrategy,
        "unique_index": UniqueIndexKeyStrategy,
    }


__all__ = [
    # Abstracts
    "AbstractKeyStrategy",
    "IndexRow",
    "KeyedRecord",
    "KeyStrategy",
    "NaturalLookup",
    "StorageKey",
    # Concrete strategies
    "CompositeKeyStrategy",
    "HashedKeyStrategy",
    "NaturalKeyStrategy",
    "UniqueIndexKeyStrategy",
    "hash_key",
    "key_strategy_factories",
]
