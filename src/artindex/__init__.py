"""
artindex - Maven repository artifact indexer

A registry of independently backed artifact indexes with atomic rescans,
all-or-targeted search dispatch and identification by coordinates or digest.
"""

__version__ = "0.1.0"
__author__ = "artindex contributors"

from artindex.artifact import ArtifactContext, ArtifactInfo, Gav
from artindex.config import Config, ContextConfig, load_config
from artindex.context import (
    ContextRegistry,
    IncompatibleIndexPolicy,
    IndexingContext,
    MergedIndexingContext,
)
from artindex.errors import (
    ArtIndexError,
    ConfigurationError,
    ContextClosedError,
    ContextNotFoundError,
    DigestUnavailableError,
    DuplicateIdError,
    IncompatibleIndexError,
    InvalidQueryError,
    QueryParseError,
    RepositoryNotFoundError,
    ScanCancelledError,
    ScanError,
    StagingError,
    UnsupportedContextOperationError,
)
from artindex.indexer import ArtifactIndexer

__all__ = [
    "__version__",
    "__author__",
    "ArtifactIndexer",
    "Config",
    "ContextConfig",
    "load_config",
    "Gav",
    "ArtifactContext",
    "ArtifactInfo",
    "ContextRegistry",
    "IndexingContext",
    "MergedIndexingContext",
    "IncompatibleIndexPolicy",
    "ArtIndexError",
    "ConfigurationError",
    "ContextClosedError",
    "ContextNotFoundError",
    "DigestUnavailableError",
    "DuplicateIdError",
    "IncompatibleIndexError",
    "InvalidQueryError",
    "QueryParseError",
    "RepositoryNotFoundError",
    "ScanCancelledError",
    "ScanError",
    "StagingError",
    "UnsupportedContextOperationError",
]
