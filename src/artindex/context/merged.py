"""
Merged (virtual) indexing contexts.

A merged context is a read-only union of member contexts. It owns no storage;
searches read through each member's own store.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Iterable, Union

import structlog

from artindex.context.indexing_context import BaseIndexingContext, IndexingContext
from artindex.errors import UnsupportedContextOperationError

if TYPE_CHECKING:
    from artindex.context.registry import ContextRegistry

logger = structlog.get_logger(__name__)

MemberProvider = Callable[[], Iterable[BaseIndexingContext]]


class StaticMemberProvider:
    """Provider over a fixed collection of contexts."""

    def __init__(self, contexts: Iterable[BaseIndexingContext]) -> None:
        self._contexts = list(contexts)

    def __call__(self) -> list[BaseIndexingContext]:
        return list(self._contexts)


class RegistryMemberProvider:
    """Provider resolving member ids against a registry at call time."""

    def __init__(self, registry: "ContextRegistry", member_ids: Iterable[str]) -> None:
        self._registry = registry
        self._member_ids = list(member_ids)

    def __call__(self) -> list[BaseIndexingContext]:
        snapshot = self._registry.get_all()
        return [snapshot[i] for i in self._member_ids if i in snapshot]


class MergedIndexingContext(BaseIndexingContext):
    """Read-only view over the current members of a provider."""

    def __init__(
        self,
        id: str,
        repository_id: str,
        members: Union[MemberProvider, Iterable[BaseIndexingContext]],
        searchable: bool = True,
        repository: Path | None = None,
    ) -> None:
        """
        Initialize the merged context.

        Args:
            id: Context id.
            repository_id: Id of the (virtual) repository.
            members: A callable returning the current members, or a fixed
                collection of contexts.
            searchable: Whether untargeted searches include this context.
            repository: Optional repository root, informational only.
        """
        self.id = id
        self.repository_id = repository_id
        self.searchable = searchable
        self.repository = Path(repository) if repository is not None else None
        if callable(members):
            self._provider: MemberProvider = members
        else:
            self._provider = StaticMemberProvider(members)
        self._closed = False

    @property
    def is_merged(self) -> bool:
        return True

    @property
    def closed(self) -> bool:
        return self._closed

    def members(self) -> list[IndexingContext]:
        """
        Open plain contexts currently backing this view.

        Nested merged contexts are flattened; closed members and repeats are
        dropped.
        """
        result: list[IndexingContext] = []
        seen: set[str] = {self.id}
        self._collect(result, seen)
        return result

    def _collect(self, result: list[IndexingContext], seen: set[str]) -> None:
        for member in self._provider():
            if member.id in seen or member.closed:
                continue
            seen.add(member.id)
            if isinstance(member, MergedIndexingContext):
                member._collect(result, seen)
            elif isinstance(member, IndexingContext):
                result.append(member)

    @property
    def timestamp(self) -> datetime | None:
        stamps = [m.timestamp for m in self.members()]
        present = [s for s in stamps if s is not None]
        return max(present) if present else None

    def size(self) -> int:
        return sum(member.size() for member in self.members())

    def _unsupported(self, operation: str) -> UnsupportedContextOperationError:
        return UnsupportedContextOperationError(
            f"Merged indexing context {self.id} does not support {operation}"
        )

    def commit(self) -> None:
        raise self._unsupported("commit")

    def update_timestamp(self, timestamp: datetime | None = None) -> None:
        raise self._unsupported("update_timestamp")

    def replace(self, source: IndexingContext) -> None:
        raise self._unsupported("replace")

    def add_document(self, document: dict[str, Any]) -> None:
        raise self._unsupported("add_document")

    def delete_document(self, uinfo: str) -> int:
        raise self._unsupported("delete_document")

    def close(self, delete_files: bool = False) -> None:
        # Members are owned by whoever registered them.
        if self._closed:
            return
        self._closed = True
        logger.debug("Merged indexing context closed", context_id=self.id)

    def describe(self) -> dict[str, Any]:
        description: dict[str, Any] = {
            "id": self.id,
            "repository_id": self.repository_id,
            "merged": True,
            "repository": str(self.repository) if self.repository else None,
            "searchable": self.searchable,
            "closed": self._closed,
        }
        if not self._closed:
            members = self.members()
            timestamp = self.timestamp
            description["members"] = [m.id for m in members]
            description["timestamp"] = timestamp.isoformat() if timestamp else None
            description["size"] = sum(m.size() for m in members)
        return description
