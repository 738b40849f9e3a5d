"""
ArtifactIndexer facade.

One object exposing context management, rescans, single and batch artifact
mutations, search and identification over an explicit ContextRegistry.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

import structlog

from artindex.artifact import ArtifactContext, ArtifactInfo
from artindex.config import Config, ContextConfig
from artindex.context import (
    BaseIndexingContext,
    ContextRegistry,
    IncompatibleIndexPolicy,
    IndexingContext,
    MergedIndexingContext,
    RegistryMemberProvider,
)
from artindex.context.merged import MemberProvider
from artindex.errors import (
    DuplicateIdError,
    InvalidQueryError,
    QueryParseError,
    UnsupportedContextOperationError,
)
from artindex.indexing import (
    ArtifactScanningListener,
    IndexCreator,
    IndexerEngine,
    RescanCoordinator,
    Scanner,
    ScanningResult,
    create_creators,
    default_creators,
)
from artindex.search import (
    FlatSearchRequest,
    FlatSearchResponse,
    GroupedSearchRequest,
    GroupedSearchResponse,
    IdentificationService,
    IteratorSearchRequest,
    IteratorSearchResponse,
    Query,
    QueryBuilder,
    SearchDispatcher,
    SearchEngine,
    SearchType,
)
from artindex.search.query import Field

logger = structlog.get_logger(__name__)


class ArtifactIndexer:
    """
    Main entry point for maintaining and querying artifact indexes.

    It manages:
    - The registry of plain, forced and merged indexing contexts
    - Rescans with staging and atomic swap
    - Artifact add/update/remove with explicit commit boundaries
    - Flat, grouped and iterator searches
    - Identification by field, query or file digest
    """

    def __init__(
        self,
        config: Config | None = None,
        registry: ContextRegistry | None = None,
        scanner: Scanner | None = None,
        indexer_engine: IndexerEngine | None = None,
        search_engine: SearchEngine | None = None,
        query_builder: QueryBuilder | None = None,
    ) -> None:
        """
        Initialize the indexer.

        Args:
            config: Configuration instance. Uses default if not provided.
            registry: Context registry; a fresh one if not provided.
            scanner: Repository crawler.
            indexer_engine: Document writer.
            search_engine: Query executor.
            query_builder: Query compiler.
        """
        self.config = config or Config()
        self.registry = registry or ContextRegistry()
        self.indexer_engine = indexer_engine or IndexerEngine()
        self.search_engine = search_engine or SearchEngine(self.config.search)
        self.query_builder = query_builder or QueryBuilder()

        self._rescan = RescanCoordinator(
            scanner=scanner or Scanner(self.config.scan),
            engine=self.indexer_engine,
            config=self.config,
        )
        self._dispatcher = SearchDispatcher(self.registry, self.search_engine)
        self._identification = IdentificationService(
            self.registry,
            self.search_engine,
            self.query_builder,
            chunk_size=self.config.scan.digest_chunk_size,
        )

    @classmethod
    def from_config(cls, config: Config) -> "ArtifactIndexer":
        """Create an indexer and register every context the config declares."""
        indexer = cls(config)
        try:
            indexer.load_contexts(config.contexts)
        except Exception:
            indexer.close()
            raise
        return indexer

    # =========================================================================
    # Context management
    # =========================================================================

    def add_indexing_context(
        self,
        id: str,
        repository_id: str,
        repository: Path | None,
        index_directory: Path,
        repository_url: str | None = None,
        index_update_url: str | None = None,
        creators: Sequence[IndexCreator] | None = None,
        searchable: bool = True,
        replace: bool = False,
    ) -> IndexingContext:
        """
        Create and register a context over an existing or new index.

        Raises:
            DuplicateIdError: The id is registered and replace is False.
            IncompatibleIndexError: The existing index cannot be reused.
        """
        return self._add_plain(
            id,
            repository_id,
            repository,
            index_directory,
            repository_url,
            index_update_url,
            creators,
            searchable,
            replace,
            IncompatibleIndexPolicy.FAIL,
        )

    def add_indexing_context_forced(
        self,
        id: str,
        repository_id: str,
        repository: Path | None,
        index_directory: Path,
        repository_url: str | None = None,
        index_update_url: str | None = None,
        creators: Sequence[IndexCreator] | None = None,
        searchable: bool = True,
        replace: bool = False,
    ) -> IndexingContext:
        """Like add_indexing_context, but an unusable index is discarded."""
        return self._add_plain(
            id,
            repository_id,
            repository,
            index_directory,
            repository_url,
            index_update_url,
            creators,
            searchable,
            replace,
            IncompatibleIndexPolicy.DISCARD_AND_RECREATE,
        )

    def _add_plain(
        self,
        id: str,
        repository_id: str,
        repository: Path | None,
        index_directory: Path,
        repository_url: str | None,
        index_update_url: str | None,
        creators: Sequence[IndexCreator] | None,
        searchable: bool,
        replace: bool,
        policy: IncompatibleIndexPolicy,
    ) -> IndexingContext:
        if not replace and id in self.registry:
            raise DuplicateIdError(id)

        context = IndexingContext(
            id=id,
            repository_id=repository_id,
            repository=repository,
            index_directory=index_directory,
            repository_url=repository_url,
            index_update_url=index_update_url,
            creators=(
                default_creators(self.config.scan.digest_chunk_size)
                if creators is None
                else creators
            ),
            searchable=searchable,
            on_incompatible=policy,
            storage_config=self.config.storage,
        )
        self._register(context, replace)
        return context

    def add_merged_indexing_context(
        self,
        id: str,
        repository_id: str,
        members: MemberProvider | Iterable[BaseIndexingContext],
        searchable: bool = True,
        repository: Path | None = None,
        replace: bool = False,
    ) -> MergedIndexingContext:
        """
        Register a read-only view over member contexts.

        Args:
            members: A fixed collection of contexts, or a callable returning
                the current members on every use.
        """
        context = MergedIndexingContext(
            id=id,
            repository_id=repository_id,
            members=members,
            searchable=searchable,
            repository=repository,
        )
        self._register(context, replace)
        return context

    def _register(self, context: BaseIndexingContext, replace: bool) -> None:
        try:
            self.registry.add(context, replace=replace)
        except DuplicateIdError:
            context.close()
            raise

    def remove_indexing_context(
        self,
        context: BaseIndexingContext | str,
        delete_files: bool = False,
    ) -> BaseIndexingContext | None:
        """Unregister and close a context, optionally deleting its index."""
        context_id = context if isinstance(context, str) else context.id
        return self.registry.remove(context_id, delete_files=delete_files)

    def get_indexing_contexts(self) -> Mapping[str, BaseIndexingContext]:
        """Snapshot of the registered contexts keyed by id."""
        return self.registry.get_all()

    def get_indexing_context(self, context_id: str) -> BaseIndexingContext:
        return self.registry.require(context_id)

    def load_contexts(self, contexts: Iterable[ContextConfig]) -> list[BaseIndexingContext]:
        """Register configured contexts; plain ones first, then merged views."""
        configured = list(contexts)
        loaded: list[BaseIndexingContext] = []

        for entry in configured:
            if entry.is_merged:
                continue
            add = self.add_indexing_context_forced if entry.forced else self.add_indexing_context
            loaded.append(
                add(
                    id=entry.id,
                    repository_id=entry.repository_id,
                    repository=entry.repository,
                    index_directory=self.config.index_directory_for(entry),
                    repository_url=entry.repository_url,
                    index_update_url=entry.index_update_url,
                    creators=create_creators(entry.creators, self.config.scan.digest_chunk_size),
                    searchable=entry.searchable,
                )
            )

        for entry in configured:
            if not entry.is_merged:
                continue
            loaded.append(
                self.add_merged_indexing_context(
                    id=entry.id,
                    repository_id=entry.repository_id,
                    members=RegistryMemberProvider(self.registry, entry.members),
                    searchable=entry.searchable,
                    repository=entry.repository,
                )
            )

        logger.info("Configured contexts loaded", contexts=len(loaded))
        return loaded

    # =========================================================================
    # Scanning and artifact mutations
    # =========================================================================

    def _resolve(self, context: BaseIndexingContext | str) -> BaseIndexingContext:
        if isinstance(context, str):
            return self.registry.require(context)
        return context

    def _writable(self, context: BaseIndexingContext | str) -> IndexingContext:
        resolved = self._resolve(context)
        if not isinstance(resolved, IndexingContext):
            raise UnsupportedContextOperationError(
                f"Indexing context {resolved.id} is read-only"
            )
        return resolved

    def scan(
        self,
        context: BaseIndexingContext | str,
        listener: ArtifactScanningListener | None = None,
        update: bool = False,
        from_path: str | None = None,
        cancel_event: threading.Event | None = None,
    ) -> ScanningResult | None:
        """
        Rebuild a context from its repository.

        A full scan (update=False) starts from an empty index; an incremental
        one starts from a copy of the current index, so entries for files that
        disappeared from disk survive it.
        """
        return self._rescan.scan(
            self._resolve(context),
            listener=listener,
            update=update,
            from_path=from_path,
            cancel_event=cancel_event,
        )

    def artifact_discovered(
        self,
        artifact_context: ArtifactContext,
        context: BaseIndexingContext | str,
    ) -> None:
        """Index one crawled artifact. Does not commit."""
        self.indexer_engine.index(self._writable(context), artifact_context)

    def add_artifact_to_index(
        self,
        artifact_context: ArtifactContext | None,
        context: BaseIndexingContext | str,
    ) -> None:
        """Add or update one artifact and commit. None is ignored."""
        self.add_artifacts_to_index([artifact_context], context)

    def add_artifacts_to_index(
        self,
        artifact_contexts: Iterable[ArtifactContext],
        context: BaseIndexingContext | str,
    ) -> None:
        """Add or update artifacts; one commit after the whole batch."""
        target = self._writable(context)
        batch = [ac for ac in artifact_contexts if ac is not None]
        if not batch:
            return
        with target.locked():
            try:
                for artifact_context in batch:
                    self.indexer_engine.update(target, artifact_context)
            except Exception:
                target.rollback()
                raise
            target.commit()

    def delete_artifact_from_index(
        self,
        artifact_context: ArtifactContext | None,
        context: BaseIndexingContext | str,
    ) -> None:
        """Remove one artifact and commit. None is ignored."""
        self.delete_artifacts_from_index([artifact_context], context)

    def delete_artifacts_from_index(
        self,
        artifact_contexts: Iterable[ArtifactContext],
        context: BaseIndexingContext | str,
    ) -> None:
        """Remove artifacts; one commit after the whole batch."""
        target = self._writable(context)
        batch = [ac for ac in artifact_contexts if ac is not None]
        if not batch:
            return
        with target.locked():
            try:
                for artifact_context in batch:
                    self.indexer_engine.remove(target, artifact_context)
            except Exception:
                target.rollback()
                raise
            target.commit()

    # =========================================================================
    # Search
    # =========================================================================

    def search_flat(self, request: FlatSearchRequest) -> FlatSearchResponse:
        return self._dispatcher.search_flat(request)

    def search_grouped(self, request: GroupedSearchRequest) -> GroupedSearchResponse:
        return self._dispatcher.search_grouped(request)

    def search_iterator(self, request: IteratorSearchRequest) -> IteratorSearchResponse:
        """The returned response holds open readers; close it when done."""
        return self._dispatcher.search_iterator(request)

    def construct_query(
        self,
        field: Field | str,
        text: str,
        search_type: SearchType = SearchType.SCORED,
    ) -> Query:
        """
        Build a query for a field.

        Raises:
            InvalidQueryError: The field, text or search type is malformed.
        """
        try:
            return self.query_builder.build(field, text, SearchType(search_type))
        except (QueryParseError, ValueError) as e:
            raise InvalidQueryError(str(e)) from e

    # =========================================================================
    # Identification
    # =========================================================================

    def identify(
        self,
        field: Field | str,
        text: str,
        contexts: Iterable[BaseIndexingContext] | None = None,
    ) -> list[ArtifactInfo]:
        return self._identification.identify_field(field, text, contexts)

    def identify_query(
        self,
        query: Query,
        contexts: Iterable[BaseIndexingContext] | None = None,
    ) -> list[ArtifactInfo]:
        return self._identification.identify_query(query, contexts)

    def identify_file(
        self,
        path: Path,
        contexts: Iterable[BaseIndexingContext] | None = None,
    ) -> list[ArtifactInfo]:
        return self._identification.identify_file(path, contexts)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def describe(self) -> list[dict[str, Any]]:
        """Describe every registered context, ordered by id."""
        snapshot = self.registry.get_all()
        return [snapshot[key].describe() for key in sorted(snapshot)]

    def close(self, delete_files: bool = False) -> None:
        """Close every registered context."""
        self.registry.close(delete_files=delete_files)

    def __enter__(self) -> "ArtifactIndexer":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
