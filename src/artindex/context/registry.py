"""
Registry of indexing contexts.

The registry is the single source of truth for which indexes exist. Only the
mapping itself is locked; work on a context never happens under the registry
lock.
"""

from __future__ import annotations

import threading
from types import MappingProxyType
from typing import Iterator, Mapping

import structlog

from artindex.context.indexing_context import BaseIndexingContext
from artindex.errors import ContextNotFoundError, DuplicateIdError

logger = structlog.get_logger(__name__)


class ContextRegistry:
    """Thread-safe mapping from context id to context."""

    def __init__(self) -> None:
        self._contexts: dict[str, BaseIndexingContext] = {}
        self._lock = threading.Lock()

    def add(
        self,
        context: BaseIndexingContext,
        replace: bool = False,
    ) -> BaseIndexingContext:
        """
        Register a context under its id.

        Args:
            context: Context to register.
            replace: Upsert over an existing registration; the displaced
                context is closed (its files are kept).

        Returns:
            The registered context.

        Raises:
            DuplicateIdError: The id is taken and replace is False.
        """
        with self._lock:
            displaced = self._contexts.get(context.id)
            if displaced is not None and not replace:
                raise DuplicateIdError(context.id)
            self._contexts[context.id] = context

        if displaced is not None and displaced is not context:
            logger.info("Indexing context replaced in registry", context_id=context.id)
            displaced.close(delete_files=False)
        else:
            logger.info(
                "Indexing context added",
                context_id=context.id,
                merged=context.is_merged,
            )
        return context

    def remove(
        self,
        context_id: str,
        delete_files: bool = False,
    ) -> BaseIndexingContext | None:
        """
        Unregister a context, then close it.

        The context is unreachable through the registry before its storage
        is closed.

        Returns:
            The removed context, or None if the id was not registered.
        """
        with self._lock:
            context = self._contexts.pop(context_id, None)

        if context is None:
            return None

        context.close(delete_files=delete_files)
        logger.info(
            "Indexing context removed",
            context_id=context_id,
            deleted=delete_files,
        )
        return context

    def get(self, context_id: str) -> BaseIndexingContext | None:
        with self._lock:
            return self._contexts.get(context_id)

    def require(self, context_id: str) -> BaseIndexingContext:
        context = self.get(context_id)
        if context is None:
            raise ContextNotFoundError(context_id)
        return context

    def get_all(self) -> Mapping[str, BaseIndexingContext]:
        """Immutable snapshot of the current registrations."""
        with self._lock:
            return MappingProxyType(dict(self._contexts))

    def values(self) -> list[BaseIndexingContext]:
        with self._lock:
            return list(self._contexts.values())

    def close(self, delete_files: bool = False) -> None:
        """Unregister and close every context."""
        with self._lock:
            contexts = list(self._contexts.values())
            self._contexts.clear()

        for context in contexts:
            context.close(delete_files=delete_files)
        logger.info("Context registry closed", contexts=len(contexts))

    def __contains__(self, context_id: object) -> bool:
        with self._lock:
            return context_id in self._contexts

    def __len__(self) -> int:
        with self._lock:
            return len(self._contexts)

    def __iter__(self) -> Iterator[str]:
        return iter(self.get_all())
