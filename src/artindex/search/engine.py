"""
Search engine.

Executes queries against a set of contexts. Merged contexts are resolved to
their plain members; every plain context is read through its own snapshot
reader so a search never mixes two states of one index.
"""

from __future__ import annotations

import json
from typing import Any, Iterable

import structlog

from artindex.artifact import ArtifactInfo
from artindex.config import SearchConfig
from artindex.context.indexing_context import BaseIndexingContext, IndexingContext
from artindex.errors import ContextClosedError
from artindex.search.requests import (
    ArtifactInfoGroup,
    FlatSearchRequest,
    FlatSearchResponse,
    GroupedSearchRequest,
    GroupedSearchResponse,
    IteratorSearchRequest,
    IteratorSearchResponse,
)
from artindex.storage.index_store import IndexReader

logger = structlog.get_logger(__name__)


def artifact_info_from_row(context: BaseIndexingContext, row: dict[str, Any]) -> ArtifactInfo:
    """Convert a stored document into a hit of the given context."""
    extra = row.get("extra") or "{}"
    return ArtifactInfo(
        group_id=row["group_id"],
        artifact_id=row["artifact_id"],
        version=row["version"],
        classifier=row.get("classifier"),
        extension=row["extension"],
        packaging=row.get("packaging"),
        sha1=row.get("sha1"),
        size=row.get("size"),
        last_modified=row.get("last_modified"),
        file_name=row.get("file_name"),
        repository_id=context.repository_id,
        context_id=context.id,
        extra=json.loads(extra) if isinstance(extra, str) else extra,
    )


class SearchEngine:
    """
    Runs flat, grouped and iterator searches.

    The plain variants skip non-searchable and closed contexts; the forced
    variants search exactly what they are given.
    """

    def __init__(self, config: SearchConfig | None = None) -> None:
        self.config = config or SearchConfig()

    # =========================================================================
    # Flat
    # =========================================================================

    def search_flat_paged(
        self,
        request: FlatSearchRequest,
        contexts: Iterable[BaseIndexingContext],
    ) -> FlatSearchResponse:
        return self._flat(request, contexts, forced=False)

    def force_search_flat_paged(
        self,
        request: FlatSearchRequest,
        contexts: Iterable[BaseIndexingContext],
    ) -> FlatSearchResponse:
        return self._flat(request, contexts, forced=True)

    def _flat(
        self,
        request: FlatSearchRequest,
        contexts: Iterable[BaseIndexingContext],
        forced: bool,
    ) -> FlatSearchResponse:
        iterator_request = IteratorSearchRequest(
            query=request.query,
            artifact_filter=request.artifact_filter,
        )
        stop = self.config.max_results
        if request.count is not None:
            stop = min(stop, request.count)

        results: list[ArtifactInfo] = []
        total = 0
        with self._open(iterator_request, contexts, forced) as response:
            for info in response:
                if total >= request.start and len(results) < stop:
                    results.append(info)
                total += 1

        logger.debug("Flat search finished", total_hits=total, returned=len(results))
        return FlatSearchResponse(query=request.query, total_hits=total, results=results)

    # =========================================================================
    # Grouped
    # =========================================================================

    def search_grouped(
        self,
        request: GroupedSearchRequest,
        contexts: Iterable[BaseIndexingContext],
    ) -> GroupedSearchResponse:
        return self._grouped(request, contexts, forced=False)

    def force_search_grouped(
        self,
        request: GroupedSearchRequest,
        contexts: Iterable[BaseIndexingContext],
    ) -> GroupedSearchResponse:
        return self._grouped(request, contexts, forced=True)

    def _grouped(
        self,
        request: GroupedSearchRequest,
        contexts: Iterable[BaseIndexingContext],
        forced: bool,
    ) -> GroupedSearchResponse:
        iterator_request = IteratorSearchRequest(
            query=request.query,
            artifact_filter=request.artifact_filter,
        )
        groups: dict[str, ArtifactInfoGroup] = {}
        total = 0
        with self._open(iterator_request, contexts, forced) as response:
            for info in response:
                total += 1
                if total > self.config.max_results:
                    continue
                key = request.grouping.group_key(info)
                group = groups.get(key)
                if group is None:
                    group = groups[key] = ArtifactInfoGroup(group_key=key)
                group.artifact_infos.append(info)

        # Hits arrive in hit order, so each group is already sorted.
        ordered = {key: groups[key] for key in sorted(groups)}
        logger.debug("Grouped search finished", total_hits=total, groups=len(ordered))
        return GroupedSearchResponse(query=request.query, total_hits=total, results=ordered)

    # =========================================================================
    # Iterator
    # =========================================================================

    def search_iterator_paged(
        self,
        request: IteratorSearchRequest,
        contexts: Iterable[BaseIndexingContext],
    ) -> IteratorSearchResponse:
        return self._open(request, contexts, forced=False)

    def force_search_iterator_paged(
        self,
        request: IteratorSearchRequest,
        contexts: Iterable[BaseIndexingContext],
    ) -> IteratorSearchResponse:
        return self._open(request, contexts, forced=True)

    # =========================================================================
    # Context resolution
    # =========================================================================

    def resolve(
        self,
        contexts: Iterable[BaseIndexingContext],
        forced: bool,
    ) -> list[IndexingContext]:
        """
        Expand contexts into the distinct plain contexts to read.

        Raises:
            ContextClosedError: A forced target is closed.
        """
        resolved: list[IndexingContext] = []
        seen: set[str] = set()
        for context in contexts:
            if not forced and not context.searchable:
                continue
            if context.closed:
                if forced:
                    raise ContextClosedError(f"Indexing context is closed: {context.id}")
                continue
            for member in context.members():
                if member.id not in seen:
                    seen.add(member.id)
                    resolved.append(member)
        return resolved

    def _open(
        self,
        request: IteratorSearchRequest,
        contexts: Iterable[BaseIndexingContext],
        forced: bool,
    ) -> IteratorSearchResponse:
        readers: list[tuple[BaseIndexingContext, IndexReader]] = []
        try:
            for member in self.resolve(contexts, forced):
                try:
                    readers.append((member, member.open_reader()))
                except ContextClosedError:
                    # Closed between resolution and open, i.e. removed.
                    if forced:
                        raise
                    logger.debug("Skipping closed context", context_id=member.id)
            return IteratorSearchResponse(
                request.query,
                readers,
                request,
                artifact_info_from_row,
            )
        except Exception:
            for _, reader in readers:
                reader.close()
            raise
