"""
Search dispatch.

Routes a request either to every registered context or to the contexts the
request names explicitly.
"""

from __future__ import annotations

import structlog

from artindex.context.registry import ContextRegistry
from artindex.search.engine import SearchEngine
from artindex.search.requests import (
    AbstractSearchRequest,
    FlatSearchRequest,
    FlatSearchResponse,
    GroupedSearchRequest,
    GroupedSearchResponse,
    IteratorSearchRequest,
    IteratorSearchResponse,
)

logger = structlog.get_logger(__name__)


class SearchDispatcher:
    """
    All-contexts vs targeted routing.

    An empty `request.contexts` searches a snapshot of the registry taken at
    call time, honouring each context's searchable flag. A non-empty list is
    searched as given: the registry is not consulted and the searchable flag
    is ignored.
    """

    def __init__(self, registry: ContextRegistry, engine: SearchEngine) -> None:
        self.registry = registry
        self.engine = engine

    def _targeted(self, request: AbstractSearchRequest) -> bool:
        targeted = bool(request.contexts)
        logger.debug(
            "Dispatching search",
            targeted=targeted,
            contexts=[c.id for c in request.contexts] if targeted else None,
        )
        return targeted

    def search_flat(self, request: FlatSearchRequest) -> FlatSearchResponse:
        if self._targeted(request):
            return self.engine.force_search_flat_paged(request, request.contexts)
        return self.engine.search_flat_paged(request, self.registry.values())

    def search_grouped(self, request: GroupedSearchRequest) -> GroupedSearchResponse:
        if self._targeted(request):
            return self.engine.force_search_grouped(request, request.contexts)
        return self.engine.search_grouped(request, self.registry.values())

    def search_iterator(self, request: IteratorSearchRequest) -> IteratorSearchResponse:
        """The caller owns the returned response and must close it."""
        if self._targeted(request):
            return self.engine.force_search_iterator_paged(request, request.contexts)
        return self.engine.search_iterator_paged(request, self.registry.values())
