"""
Storage modules for artindex.

Provides persistent storage for artifact documents (SQLite), with
snapshot readers and whole-index copy/replace.
"""

from artindex.storage.index_store import IndexReader, IndexStore, StoreStats

__all__ = [
    "IndexStore",
    "IndexReader",
    "StoreStats",
]
