"""
Rescan coordination.

Rebuilds a context's index in a staging directory next to the live one and
swaps the finished index into place. Readers of the live context only ever see
the index as it was before the rescan or as it is after it.
"""

from __future__ import annotations

import os
import shutil
import sqlite3
import tempfile
import threading
from pathlib import Path

import structlog

from artindex.artifact import ArtifactContext
from artindex.config import Config
from artindex.context.indexing_context import (
    BaseIndexingContext,
    IncompatibleIndexPolicy,
    IndexingContext,
)
from artindex.errors import (
    RepositoryNotFoundError,
    ScanError,
    StagingError,
    UnsupportedContextOperationError,
)
from artindex.indexing.engine import IndexerEngine
from artindex.indexing.scanner import (
    ArtifactScanningListener,
    Scanner,
    ScanningRequest,
    ScanningResult,
)

logger = structlog.get_logger(__name__)

STAGING_SUFFIX = "-tmp"


class IndexingScanListener(ArtifactScanningListener):
    """
    Indexes every discovered artifact into a (scratch) context.

    Events are forwarded to an optional caller-supplied listener.
    """

    def __init__(
        self,
        context: IndexingContext,
        engine: IndexerEngine,
        update: bool = False,
        delegate: ArtifactScanningListener | None = None,
    ) -> None:
        self.context = context
        self.engine = engine
        self.update = update
        self.delegate = delegate or ArtifactScanningListener()

    def scanning_started(self, context: IndexingContext) -> None:
        self.delegate.scanning_started(context)

    def artifact_discovered(self, artifact_context: ArtifactContext) -> None:
        if self.update:
            self.engine.update(self.context, artifact_context)
        else:
            self.engine.index(self.context, artifact_context)

        for error in artifact_context.errors:
            self.delegate.artifact_error(artifact_context, error)
        self.delegate.artifact_discovered(artifact_context)

    def scanning_finished(self, context: IndexingContext, result: ScanningResult) -> None:
        self.context.commit()
        self.delegate.scanning_finished(context, result)


class RescanCoordinator:
    """Full and incremental rescans with staging and atomic swap."""

    def __init__(
        self,
        scanner: Scanner | None = None,
        engine: IndexerEngine | None = None,
        config: Config | None = None,
    ) -> None:
        self.config = config or Config()
        self.scanner = scanner or Scanner(self.config.scan)
        self.engine = engine or IndexerEngine()

    def scan(
        self,
        context: BaseIndexingContext,
        listener: ArtifactScanningListener | None = None,
        update: bool = False,
        from_path: str | None = None,
        cancel_event: threading.Event | None = None,
    ) -> ScanningResult | None:
        """
        Rescan a context's repository and swap the result into place.

        Args:
            context: Live context to rebuild.
            listener: Optional progress listener.
            update: Start from a copy of the live index instead of empty.
            from_path: Only crawl this sub-path of the repository.
            cancel_event: Checked between artifacts; setting it fails the scan.

        Returns:
            Crawl counters, or None when the context has no repository.

        Raises:
            UnsupportedContextOperationError: The context is merged.
            RepositoryNotFoundError: The repository root does not exist.
            StagingError: The staging area could not be created.
            ScanError: Crawling or swapping failed; the live index is unchanged.
        """
        if not isinstance(context, IndexingContext):
            raise UnsupportedContextOperationError(
                f"Indexing context {context.id} cannot be scanned"
            )

        if context.repository is None:
            logger.debug("Context has no repository, nothing to scan", context_id=context.id)
            return None

        if not context.repository.is_dir():
            raise RepositoryNotFoundError(
                f"Repository directory {context.repository} does not exist"
            )

        marker, staging_dir = self._create_staging(context)
        scratch: IndexingContext | None = None

        try:
            try:
                scratch = IndexingContext(
                    id=context.id + STAGING_SUFFIX,
                    repository_id=context.repository_id,
                    repository=context.repository,
                    index_directory=staging_dir,
                    repository_url=context.repository_url,
                    index_update_url=context.index_update_url,
                    creators=context.creators,
                    searchable=False,
                    on_incompatible=IncompatibleIndexPolicy.DISCARD_AND_RECREATE,
                    storage_config=self.config.storage,
                )

                if update:
                    context.copy_into(scratch)

                result = self.scanner.scan(
                    ScanningRequest(
                        context=scratch,
                        listener=IndexingScanListener(scratch, self.engine, update, listener),
                        start_path=from_path,
                        cancel_event=cancel_event,
                    )
                )

                scratch.update_timestamp()
                scratch.commit()

                with context.locked():
                    context.replace(scratch)
            except Exception as e:
                logger.error(
                    "Rescan failed, live index left unchanged",
                    context_id=context.id,
                    error=str(e),
                )
                raise ScanError(context.id, e) from e
        finally:
            self._cleanup(context, scratch, marker, staging_dir)

        logger.info(
            "Rescan complete",
            context_id=context.id,
            update=update,
            discovered=result.discovered,
        )
        return result

    def _create_staging(self, context: IndexingContext) -> tuple[Path, Path]:
        """Create the marker file and sibling staging directory."""
        parent = context.index_directory.parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
            fd, name = tempfile.mkstemp(prefix=context.id + STAGING_SUFFIX, dir=parent)
            os.close(fd)
        except OSError as e:
            raise StagingError(
                f"Cannot create temporary file for context {context.id} in {parent}: {e}"
            ) from e

        marker = Path(name)
        staging_dir = marker.with_name(marker.name + ".dir")
        try:
            staging_dir.mkdir(parents=True)
        except OSError as e:
            marker.unlink(missing_ok=True)
            raise StagingError(f"Cannot create temporary directory: {staging_dir}") from e

        logger.debug("Staging area created", context_id=context.id, path=str(staging_dir))
        return marker, staging_dir

    def _cleanup(
        self,
        context: IndexingContext,
        scratch: IndexingContext | None,
        marker: Path,
        staging_dir: Path,
    ) -> None:
        """Release the staging area. Failures are logged, never raised."""
        if scratch is not None:
            try:
                scratch.close(delete_files=True)
            except (OSError, sqlite3.Error) as e:
                logger.warning(
                    "Failed to close staging context",
                    context_id=context.id,
                    error=str(e),
                )

        try:
            marker.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Failed to delete staging marker", path=str(marker), error=str(e))

        try:
            if staging_dir.exists():
                shutil.rmtree(staging_dir)
        except OSError as e:
            logger.warning(
                "Failed to delete staging directory",
                path=str(staging_dir),
                error=str(e),
            )
