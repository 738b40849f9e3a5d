"""
Search request and response types.

Three shapes share one hit ordering: (group_id, artifact_id, version,
classifier, extension, context id), compared ordinally.
"""

from __future__ import annotations

import heapq
import itertools
import sqlite3
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Iterator, Sequence

import structlog

from artindex.artifact import ArtifactInfo
from artindex.search.query import Query

if TYPE_CHECKING:
    from artindex.context.indexing_context import BaseIndexingContext
    from artindex.storage.index_store import IndexReader

logger = structlog.get_logger(__name__)

ArtifactFilter = Callable[["BaseIndexingContext", ArtifactInfo], bool]


def hit_order(info: ArtifactInfo) -> tuple[tuple[str, str, str, str, str], str]:
    """Total ordering of hits across contexts."""
    return info.sort_key, info.context_id or ""


# =============================================================================
# Grouping
# =============================================================================


class Grouping(ABC):
    """Maps a hit to the key of the group it belongs to."""

    @abstractmethod
    def group_key(self, info: ArtifactInfo) -> str:
        pass


class GAGrouping(Grouping):
    """Groups by group_id:artifact_id."""

    def group_key(self, info: ArtifactInfo) -> str:
        return f"{info.group_id}:{info.artifact_id}"


class GGrouping(Grouping):
    """Groups by group_id."""

    def group_key(self, info: ArtifactInfo) -> str:
        return info.group_id


@dataclass
class ArtifactInfoGroup:
    """Hits sharing one group key, in hit order."""

    group_key: str
    artifact_infos: list[ArtifactInfo] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.artifact_infos)


# =============================================================================
# Requests
# =============================================================================


@dataclass
class AbstractSearchRequest:
    """
    Fields shared by every request shape.

    An empty `contexts` list searches every registered searchable context;
    a non-empty list searches exactly those contexts.
    """

    query: Query
    contexts: Sequence["BaseIndexingContext"] = field(default_factory=list)
    artifact_filter: ArtifactFilter | None = None

    def accepts(self, context: "BaseIndexingContext", info: ArtifactInfo) -> bool:
        if self.artifact_filter is None:
            return True
        return self.artifact_filter(context, info)


@dataclass
class FlatSearchRequest(AbstractSearchRequest):
    start: int = 0
    count: int | None = None


@dataclass
class GroupedSearchRequest(AbstractSearchRequest):
    grouping: Grouping = field(default_factory=GAGrouping)


@dataclass
class IteratorSearchRequest(AbstractSearchRequest):
    start: int = 0
    count: int | None = None


# =============================================================================
# Responses
# =============================================================================


@dataclass
class FlatSearchResponse:
    query: Query
    total_hits: int
    results: list[ArtifactInfo]

    @property
    def returned_hits(self) -> int:
        return len(self.results)


@dataclass
class GroupedSearchResponse:
    """Groups keyed and ordered by group key."""

    query: Query
    total_hits: int
    results: dict[str, ArtifactInfoGroup]

    @property
    def returned_hits(self) -> int:
        return sum(len(group) for group in self.results.values())


class IteratorSearchResponse:
    """
    Lazily merged hits over a set of open readers.

    The response owns its readers: callers must close it (or use it as a
    context manager). Closing twice is harmless.
    """

    def __init__(
        self,
        query: Query,
        readers: Sequence[tuple["BaseIndexingContext", "IndexReader"]],
        request: IteratorSearchRequest,
        to_info: Callable[["BaseIndexingContext", dict], ArtifactInfo],
    ) -> None:
        self.query = query
        self._readers = list(readers)
        self._request = request
        self._to_info = to_info
        self._closed = False

        where, params = query.to_sql()
        self.total_hits = sum(reader.count(where, params) for _, reader in self._readers)
        self._iterator = self._build_iterator(where, params)

    @property
    def closed(self) -> bool:
        return self._closed

    def _hits(self, context: "BaseIndexingContext", reader: "IndexReader", where, params):
        for row in reader.select(where, params):
            yield self._to_info(context, row)

    def _build_iterator(self, where: str, params: list) -> Iterator[ArtifactInfo]:
        streams = [
            self._hits(context, reader, where, params)
            for context, reader in self._readers
        ]
        contexts = {context.id: context for context, _ in self._readers}
        merged = heapq.merge(*streams, key=hit_order)
        accepted = (
            info for info in merged
            if self._request.accepts(contexts[info.context_id], info)
        )
        stop = None
        if self._request.count is not None:
            stop = self._request.start + self._request.count
        return itertools.islice(accepted, self._request.start, stop)

    def __iter__(self) -> Iterator[ArtifactInfo]:
        return self

    def __next__(self) -> ArtifactInfo:
        if self._closed:
            raise StopIteration
        return next(self._iterator)

    def close(self) -> None:
        """Release every reader held by this response."""
        if self._closed:
            return
        self._closed = True
        for context, reader in self._readers:
            try:
                reader.close()
            except sqlite3.Error as e:
                logger.warning(
                    "Failed to close index reader",
                    context_id=context.id,
                    error=str(e),
                )
        self._readers.clear()

    def __enter__(self) -> "IteratorSearchResponse":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
