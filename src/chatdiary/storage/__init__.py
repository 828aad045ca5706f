"""
Local persistence for chatdiary.

Provides the SQLite-backed structured store (collections of JSON documents)
and the flat key-value stores used for configuration and legacy data.
"""

from .flat import ConfigPort, FileFlatStore, MemoryFlatStore
from .structured import COLLECTIONS, SCHEMA_VERSION, Collection, CollectionSpec, StoreBatch, StructuredStore

__all__ = [
    "COLLECTIONS",
    "SCHEMA_VERSION",
    "Collection",
    "CollectionSpec",
    "ConfigPort",
    "FileFlatStore",
    "MemoryFlatStore",
    "StoreBatch",
    "StructuredStore",
]
