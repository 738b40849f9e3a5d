"""
Indexing contexts.

An indexing context is one named, independently addressable index bound to
a repository and an extraction configuration.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterator, Sequence

import structlog

from artindex.config import StorageConfig
from artindex.errors import ContextClosedError, IncompatibleIndexError
from artindex.storage.index_store import IndexReader, IndexStore

if TYPE_CHECKING:
    from artindex.indexing.creators import IndexCreator

logger = structlog.get_logger(__name__)


class IncompatibleIndexPolicy(str, Enum):
    """What to do with an existing index that cannot be reused."""

    FAIL = "fail"
    DISCARD_AND_RECREATE = "discard_and_recreate"


class BaseIndexingContext(ABC):
    """Capabilities shared by plain and merged contexts."""

    id: str
    repository_id: str
    searchable: bool

    @property
    @abstractmethod
    def is_merged(self) -> bool:
        """Whether this context is a virtual view over other contexts."""
        pass

    @property
    @abstractmethod
    def closed(self) -> bool:
        pass

    @property
    @abstractmethod
    def timestamp(self) -> datetime | None:
        pass

    @abstractmethod
    def size(self) -> int:
        """Number of committed documents visible through this context."""
        pass

    @abstractmethod
    def members(self) -> list["IndexingContext"]:
        """Plain contexts whose storage backs this context."""
        pass

    @abstractmethod
    def commit(self) -> None:
        pass

    @abstractmethod
    def close(self, delete_files: bool = False) -> None:
        """Release storage. Calling it again is a no-op."""
        pass

    @abstractmethod
    def describe(self) -> dict[str, Any]:
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, repository_id={self.repository_id!r})"


class IndexingContext(BaseIndexingContext):
    """
    A context owning exactly one IndexStore.

    The store is only mutated through this object; `replace` swaps the whole
    index under the context lock.
    """

    def __init__(
        self,
        id: str,
        repository_id: str,
        repository: Path | None,
        index_directory: Path,
        repository_url: str | None = None,
        index_update_url: str | None = None,
        creators: Sequence["IndexCreator"] = (),
        searchable: bool = True,
        on_incompatible: IncompatibleIndexPolicy = IncompatibleIndexPolicy.FAIL,
        storage_config: StorageConfig | None = None,
    ) -> None:
        """
        Initialize the context and open its index.

        Args:
            id: Context id, unique within a registry.
            repository_id: Id of the indexed repository.
            repository: Repository root; None if not locally scannable.
            index_directory: Directory of the backing index.
            repository_url: Remote repository URL.
            index_update_url: Remote index update URL.
            creators: Metadata extractors run per artifact, in order.
            searchable: Whether untargeted searches include this context.
            on_incompatible: Policy for an existing unusable index.
            storage_config: Storage configuration.

        Raises:
            IncompatibleIndexError: The existing index cannot be reused and the
                policy is FAIL.
        """
        self.id = id
        self.repository_id = repository_id
        self.repository = Path(repository) if repository is not None else None
        self.index_directory = Path(index_directory)
        self.repository_url = repository_url
        self.index_update_url = index_update_url
        self.creators = list(creators)
        self.searchable = searchable
        self.on_incompatible = on_incompatible

        self._lock = threading.RLock()
        self._closed = False
        self._store = IndexStore(self.index_directory, storage_config)

        problem = self._store.check_compatibility(repository_id)
        if problem is not None:
            if on_incompatible is IncompatibleIndexPolicy.FAIL:
                raise IncompatibleIndexError(
                    f"Cannot open index of context {id} at {self.index_directory}: {problem}"
                )
            logger.warning(
                "Discarding incompatible index",
                context_id=id,
                index_directory=str(self.index_directory),
                reason=problem,
            )
            self._store.destroy()

        self._store.open(repository_id=repository_id)
        logger.debug("Indexing context opened", context_id=id)

    @property
    def is_merged(self) -> bool:
        return False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def store(self) -> IndexStore:
        if self._closed:
            raise ContextClosedError(f"Indexing context is closed: {self.id}")
        return self._store

    @contextmanager
    def locked(self) -> Iterator["IndexingContext"]:
        """Hold the context lock for a compound operation."""
        with self._lock:
            yield self

    @property
    def timestamp(self) -> datetime | None:
        return self.store.timestamp

    def update_timestamp(self, timestamp: datetime | None = None) -> None:
        """Stamp the index; takes effect on the next commit."""
        with self._lock:
            self.store.set_timestamp(timestamp or datetime.now(timezone.utc))

    def size(self) -> int:
        with self.store.open_reader() as reader:
            return reader.count()

    def members(self) -> list["IndexingContext"]:
        return [self]

    def add_document(self, document: dict[str, Any]) -> None:
        with self._lock:
            self.store.upsert(document)

    def delete_document(self, uinfo: str) -> int:
        with self._lock:
            return self.store.delete(uinfo)

    def open_reader(self) -> IndexReader:
        return self.store.open_reader()

    def commit(self) -> None:
        with self._lock:
            self.store.commit()

    def rollback(self) -> None:
        with self._lock:
            self.store.rollback()

    def copy_into(self, target: "IndexingContext") -> None:
        """Copy this context's committed index over the target's index."""
        self.store.copy_into(target.store)

    def replace(self, source: "IndexingContext") -> None:
        """Atomically replace this context's index with the source's."""
        with self._lock:
            self.store.replace_from(source.store)
        logger.info(
            "Indexing context replaced",
            context_id=self.id,
            source_context_id=source.id,
        )

    def close(self, delete_files: bool = False) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if delete_files:
                self._store.destroy()
            else:
                self._store.close()
        logger.debug("Indexing context closed", context_id=self.id, deleted=delete_files)

    def describe(self) -> dict[str, Any]:
        description: dict[str, Any] = {
            "id": self.id,
            "repository_id": self.repository_id,
            "merged": False,
            "repository": str(self.repository) if self.repository else None,
            "index_directory": str(self.index_directory),
            "repository_url": self.repository_url,
            "index_update_url": self.index_update_url,
            "creators": [creator.id for creator in self.creators],
            "searchable": self.searchable,
            "closed": self._closed,
        }
        if not self._closed:
            timestamp = self.timestamp
            description["timestamp"] = timestamp.isoformat() if timestamp else None
            description["size"] = self.size()
        return description
