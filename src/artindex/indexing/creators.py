"""
Index creators.

A creator extracts one group of fields from an artifact file into the
ArtifactContext before the indexer engine writes the document.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable

import structlog

from artindex.artifact import ArtifactContext
from artindex.digest import DEFAULT_CHUNK_SIZE, sha1_file
from artindex.errors import ConfigurationError

logger = structlog.get_logger(__name__)


class IndexCreator(ABC):
    """Abstract base class for metadata extractors."""

    id: str = ""

    @abstractmethod
    def populate(self, artifact_context: ArtifactContext) -> None:
        """
        Add this creator's fields to the artifact context.

        Args:
            artifact_context: Context to populate in place.

        Raises:
            OSError: The artifact file could not be read.
        """
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r})"


class MinimalArtifactInfoCreator(IndexCreator):
    """File name, size, modification time and packaging."""

    id = "min"

    def populate(self, artifact_context: ArtifactContext) -> None:
        artifact_context.fields.setdefault("packaging", artifact_context.gav.extension)

        path = artifact_context.path
        if path is None:
            return

        stat = path.stat()
        artifact_context.fields["file_name"] = path.name
        artifact_context.fields["size"] = stat.st_size
        artifact_context.fields["last_modified"] = int(stat.st_mtime * 1000)


class Sha1Creator(IndexCreator):
    """SHA-1 of the artifact file, preferring a `.sha1` sidecar."""

    id = "sha1"

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self.chunk_size = chunk_size

    def populate(self, artifact_context: ArtifactContext) -> None:
        path = artifact_context.path
        if path is None:
            return

        sidecar = path.with_name(path.name + ".sha1")
        if sidecar.is_file():
            recorded = self._read_sidecar(sidecar)
            if recorded is not None:
                artifact_context.fields["sha1"] = recorded
                return

        artifact_context.fields["sha1"] = sha1_file(path, self.chunk_size)

    @staticmethod
    def _read_sidecar(sidecar: Path) -> str | None:
        # Sidecars may carry "<digest>  <file name>"
        tokens = sidecar.read_text(errors="replace").split()
        if not tokens:
            return None
        candidate = tokens[0].lower()
        if len(candidate) != 40 or any(c not in "0123456789abcdef" for c in candidate):
            logger.debug("Ignoring malformed sha1 sidecar", path=str(sidecar))
            return None
        return candidate


CREATORS: dict[str, type[IndexCreator]] = {
    MinimalArtifactInfoCreator.id: MinimalArtifactInfoCreator,
    Sha1Creator.id: Sha1Creator,
}


def create_creators(
    creator_ids: Iterable[str],
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> list[IndexCreator]:
    """
    Instantiate creators by id, preserving order.

    Raises:
        ConfigurationError: An id is unknown.
    """
    creators: list[IndexCreator] = []
    for creator_id in creator_ids:
        creator_cls = CREATORS.get(creator_id)
        if creator_cls is None:
            raise ConfigurationError(
                f"Unknown index creator: {creator_id} (known: {', '.join(sorted(CREATORS))})"
            )
        if creator_cls is Sha1Creator:
            creators.append(Sha1Creator(chunk_size=chunk_size))
        else:
            creators.append(creator_cls())
    return creators


def default_creators(chunk_size: int = DEFAULT_CHUNK_SIZE) -> list[IndexCreator]:
    return create_creators([MinimalArtifactInfoCreator.id, Sha1Creator.id], chunk_size)
