"""
Exception hierarchy for artindex.

Every error raised by the library derives from ArtIndexError so callers can
catch the whole family in one place (the CLI does exactly that).
"""

from __future__ import annotations


class ArtIndexError(Exception):
    """Base exception for artindex errors."""

    pass


class ConfigurationError(ArtIndexError):
    """Raised when there's a configuration problem."""

    pass


class DuplicateIdError(ArtIndexError):
    """Raised when a context id is already registered."""

    def __init__(self, context_id: str) -> None:
        super().__init__(f"Indexing context already registered: {context_id}")
        self.context_id = context_id


class ContextNotFoundError(ArtIndexError):
    """Raised when a context id is not registered."""

    def __init__(self, context_id: str) -> None:
        super().__init__(f"No indexing context registered under id: {context_id}")
        self.context_id = context_id


class ContextClosedError(ArtIndexError):
    """Raised when using a context whose storage has been closed."""

    pass


class IncompatibleIndexError(ArtIndexError):
    """Raised when an existing on-disk index cannot be reused."""

    pass


class UnsupportedContextOperationError(ArtIndexError):
    """Raised when a mutation is attempted on a read-only (merged) context."""

    pass


class RepositoryNotFoundError(ArtIndexError):
    """Raised when a context's repository directory does not exist."""

    pass


class StagingError(ArtIndexError):
    """Raised when temporary storage for a rescan cannot be created."""

    pass


class ScanCancelledError(ArtIndexError):
    """Raised from inside a crawl when the caller's cancel event is set."""

    pass


class ScanError(ArtIndexError):
    """Wraps any failure that happened while scanning or swapping a context."""

    def __init__(self, context_id: str, cause: BaseException) -> None:
        super().__init__(f"Error scanning context {context_id}: {cause}")
        self.context_id = context_id
        self.cause = cause


class QueryParseError(ArtIndexError):
    """Raised by the query builder for text it cannot compile."""

    pass


class InvalidQueryError(ArtIndexError, ValueError):
    """Raised to callers for a malformed (field, text, search type) triple."""

    pass


class DigestUnavailableError(ArtIndexError):
    """Raised when the SHA-1 digest cannot be obtained from hashlib."""

    pass
