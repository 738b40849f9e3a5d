"""
Repository crawler.

Walks a Maven-2 layout repository and reports every artifact file it finds to
a listener. The walk is sorted so repeated scans discover artifacts in the
same order.
"""

from __future__ import annotations

import fnmatch
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

import structlog

from artindex.artifact import ArtifactContext, Gav
from artindex.config import ScanConfig
from artindex.errors import RepositoryNotFoundError, ScanCancelledError

if TYPE_CHECKING:
    from artindex.context.indexing_context import IndexingContext

logger = structlog.get_logger(__name__)


@dataclass
class ScanningResult:
    """Outcome of one crawl."""

    total_files: int = 0
    discovered: int = 0
    skipped: int = 0
    exceptions: list[Exception] = field(default_factory=list)


class ArtifactScanningListener:
    """Receives crawl events. All callbacks default to no-ops."""

    def scanning_started(self, context: "IndexingContext") -> None:
        pass

    def artifact_discovered(self, artifact_context: ArtifactContext) -> None:
        pass

    def artifact_error(self, artifact_context: ArtifactContext, error: Exception) -> None:
        pass

    def scanning_finished(self, context: "IndexingContext", result: ScanningResult) -> None:
        pass


@dataclass
class ScanningRequest:
    """What to crawl and who to tell."""

    context: "IndexingContext"
    listener: ArtifactScanningListener
    start_path: str | None = None
    cancel_event: threading.Event | None = None


class Scanner:
    """Default crawler for Maven-2 layout repositories."""

    def __init__(self, config: ScanConfig | None = None) -> None:
        self.config = config or ScanConfig()

    def _ignored_file(self, name: str) -> bool:
        return any(fnmatch.fnmatch(name, p) for p in self.config.ignore_patterns)

    def _ignored_dir(self, name: str) -> bool:
        return any(fnmatch.fnmatch(name, p) for p in self.config.ignore_dirs)

    def scan(self, request: ScanningRequest) -> ScanningResult:
        """
        Crawl the request's repository.

        Args:
            request: Context, listener, optional sub-path and cancel event.

        Returns:
            Counters for the crawl.

        Raises:
            RepositoryNotFoundError: The repository root does not exist.
            ScanCancelledError: The cancel event was set mid-crawl.
        """
        context = request.context
        repository = context.repository
        if repository is None:
            return ScanningResult()
        if not repository.is_dir():
            raise RepositoryNotFoundError(
                f"Repository directory {repository} does not exist"
            )

        base = repository
        if request.start_path:
            base = repository / request.start_path.strip("/")

        listener = request.listener
        result = ScanningResult()
        listener.scanning_started(context)

        if not base.is_dir():
            logger.info(
                "Scan start path does not exist, nothing to scan",
                context_id=context.id,
                start_path=request.start_path,
            )
            listener.scanning_finished(context, result)
            return result

        logger.info(
            "Scanning repository",
            context_id=context.id,
            repository=str(repository),
            start_path=request.start_path,
        )

        for root, dirs, files in os.walk(base, followlinks=self.config.follow_symlinks):
            dirs[:] = sorted(d for d in dirs if not self._ignored_dir(d))

            for filename in sorted(files):
                if request.cancel_event is not None and request.cancel_event.is_set():
                    raise ScanCancelledError(f"Scan of context {context.id} was cancelled")

                result.total_files += 1
                if self._ignored_file(filename):
                    result.skipped += 1
                    continue

                file_path = Path(root) / filename
                relative = PurePosixPath(file_path.relative_to(repository).as_posix())
                try:
                    relative.as_posix().encode("utf-8")
                except UnicodeEncodeError:
                    logger.warning(
                        "Skipping file with undecodable name",
                        context_id=context.id,
                        path=repr(relative.as_posix()),
                    )
                    result.skipped += 1
                    continue
                gav = Gav.from_path(relative)
                if gav is None:
                    result.skipped += 1
                    continue

                artifact_context = ArtifactContext(gav=gav, path=file_path)
                listener.artifact_discovered(artifact_context)
                result.discovered += 1
                result.exceptions.extend(artifact_context.errors)

        listener.scanning_finished(context, result)
        logger.info(
            "Repository scan finished",
            context_id=context.id,
            discovered=result.discovered,
            skipped=result.skipped,
            errors=len(result.exceptions),
        )
        return result
