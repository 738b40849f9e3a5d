"""
Indexing contexts and their registry.

Provides:
- IndexingContext: one named index backed by its own store
- MergedIndexingContext: a read-only union of member contexts
- ContextRegistry: thread-safe id -> context mapping
"""

from artindex.context.indexing_context import (
    BaseIndexingContext,
    IncompatibleIndexPolicy,
    IndexingContext,
)
from artindex.context.merged import (
    MergedIndexingContext,
    RegistryMemberProvider,
    StaticMemberProvider,
)
from artindex.context.registry import ContextRegistry

__all__ = [
    "BaseIndexingContext",
    "IndexingContext",
    "IncompatibleIndexPolicy",
    "MergedIndexingContext",
    "StaticMemberProvider",
    "RegistryMemberProvider",
    "ContextRegistry",
]
