"""
Artifact identification.

Exact-match lookups by field value, by prebuilt query or by the SHA-1 of a
local file. Results are always fully materialised lists.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

import structlog

from artindex.artifact import ArtifactInfo
from artindex.context.indexing_context import BaseIndexingContext
from artindex.context.registry import ContextRegistry
from artindex.digest import DEFAULT_CHUNK_SIZE, sha1_file
from artindex.errors import InvalidQueryError, QueryParseError
from artindex.search.engine import SearchEngine
from artindex.search.query import Field, Query, QueryBuilder, SearchType
from artindex.search.requests import IteratorSearchRequest

logger = structlog.get_logger(__name__)


class IdentificationService:
    """
    Identifies artifacts across contexts.

    Lookups are never forced: only searchable contexts of the given set (by
    default, every registered context) are consulted.
    """

    def __init__(
        self,
        registry: ContextRegistry,
        engine: SearchEngine,
        query_builder: QueryBuilder | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self.registry = registry
        self.engine = engine
        self.query_builder = query_builder or QueryBuilder()
        self.chunk_size = chunk_size

    def identify_field(
        self,
        field: Field | str,
        text: str,
        contexts: Iterable[BaseIndexingContext] | None = None,
    ) -> list[ArtifactInfo]:
        """
        Find artifacts whose field equals the text.

        Raises:
            InvalidQueryError: The field or text cannot form a query.
        """
        try:
            query = self.query_builder.build(field, text, SearchType.EXACT)
        except QueryParseError as e:
            raise InvalidQueryError(str(e)) from e
        return self.identify_query(query, contexts)

    def identify_query(
        self,
        query: Query,
        contexts: Iterable[BaseIndexingContext] | None = None,
    ) -> list[ArtifactInfo]:
        """Run a query and materialise every hit."""
        targets = self.registry.values() if contexts is None else list(contexts)
        response = self.engine.search_iterator_paged(IteratorSearchRequest(query=query), targets)
        try:
            return list(response)
        finally:
            response.close()

    def identify_file(
        self,
        path: Path,
        contexts: Iterable[BaseIndexingContext] | None = None,
    ) -> list[ArtifactInfo]:
        """
        Find artifacts with the same content as a local file.

        Raises:
            DigestUnavailableError: SHA-1 is not available.
            OSError: The file cannot be read.
        """
        digest = sha1_file(Path(path), self.chunk_size)
        logger.debug("Identifying file", path=str(path), sha1=digest)
        return self.identify_field(Field.SHA1, digest, contexts)
