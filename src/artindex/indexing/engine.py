"""
Indexer engine.

Turns ArtifactContexts into document mutations on a context's store. The
engine never commits; callers own the commit boundary.
"""

from __future__ import annotations

from typing import Any

import structlog

from artindex.artifact import ArtifactContext
from artindex.context.indexing_context import BaseIndexingContext, IndexingContext
from artindex.errors import UnsupportedContextOperationError

logger = structlog.get_logger(__name__)

_DOCUMENT_FIELDS = ("packaging", "sha1", "size", "last_modified", "file_name")


class IndexerEngine:
    """Writes, updates and removes artifact documents."""

    def index(self, context: BaseIndexingContext, artifact_context: ArtifactContext) -> None:
        """Add a newly discovered artifact."""
        target = self._writable(context)
        target.add_document(self._document(target, artifact_context))

    def update(self, context: BaseIndexingContext, artifact_context: ArtifactContext) -> None:
        """Add or replace an artifact."""
        target = self._writable(context)
        target.add_document(self._document(target, artifact_context))
        logger.debug("Artifact updated", context_id=target.id, artifact=str(artifact_context.gav))

    def remove(self, context: BaseIndexingContext, artifact_context: ArtifactContext) -> None:
        """Delete an artifact's document if present."""
        target = self._writable(context)
        deleted = target.delete_document(artifact_context.gav.uinfo)
        if not deleted:
            logger.debug(
                "Artifact not present in index",
                context_id=target.id,
                artifact=str(artifact_context.gav),
            )

    def _writable(self, context: BaseIndexingContext) -> IndexingContext:
        if not isinstance(context, IndexingContext):
            raise UnsupportedContextOperationError(
                f"Indexing context {context.id} is read-only"
            )
        return context

    def _document(
        self,
        context: IndexingContext,
        artifact_context: ArtifactContext,
    ) -> dict[str, Any]:
        for creator in context.creators:
            try:
                creator.populate(artifact_context)
            except OSError as e:
                artifact_context.errors.append(e)
                logger.warning(
                    "Index creator failed",
                    context_id=context.id,
                    creator=creator.id,
                    artifact=str(artifact_context.gav),
                    error=str(e),
                )

        gav = artifact_context.gav
        document: dict[str, Any] = {
            "uinfo": gav.uinfo,
            "group_id": gav.group_id,
            "artifact_id": gav.artifact_id,
            "version": gav.version,
            "classifier": gav.classifier,
            "extension": gav.extension,
        }
        extra: dict[str, Any] = {}
        for key, value in artifact_context.fields.items():
            if key in _DOCUMENT_FIELDS:
                document[key] = value
            else:
                extra[key] = value
        document["extra"] = extra
        return document
