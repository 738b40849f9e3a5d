"""
Search modules for artindex.

Provides:
- Query model and builder
- Flat, grouped and iterator request/response types
- The search engine and all-vs-targeted dispatch
- Identification by field, query or file digest
"""

from artindex.search.dispatcher import SearchDispatcher
from artindex.search.engine import SearchEngine, artifact_info_from_row
from artindex.search.identify import IdentificationService
from artindex.search.query import (
    BooleanQuery,
    Field,
    FieldQuery,
    MatchAllQuery,
    Query,
    QueryBuilder,
    SearchType,
)
from artindex.search.requests import (
    ArtifactInfoGroup,
    FlatSearchRequest,
    FlatSearchResponse,
    GAGrouping,
    GGrouping,
    GroupedSearchRequest,
    GroupedSearchResponse,
    Grouping,
    IteratorSearchRequest,
    IteratorSearchResponse,
)

__all__ = [
    "SearchDispatcher",
    "SearchEngine",
    "artifact_info_from_row",
    "IdentificationService",
    "Query",
    "MatchAllQuery",
    "FieldQuery",
    "BooleanQuery",
    "Field",
    "SearchType",
    "QueryBuilder",
    "Grouping",
    "GAGrouping",
    "GGrouping",
    "ArtifactInfoGroup",
    "FlatSearchRequest",
    "FlatSearchResponse",
    "GroupedSearchRequest",
    "GroupedSearchResponse",
    "IteratorSearchRequest",
    "IteratorSearchResponse",
]
