"""
Indexing modules for artindex.

Provides:
- Repository crawling (Maven-2 layout)
- Index creators (metadata extraction per artifact)
- The indexer engine (document add/update/remove)
- Rescan coordination with staging and atomic swap
"""

from artindex.indexing.creators import (
    IndexCreator,
    MinimalArtifactInfoCreator,
    Sha1Creator,
    create_creators,
    default_creators,
)
from artindex.indexing.engine import IndexerEngine
from artindex.indexing.rescan import IndexingScanListener, RescanCoordinator
from artindex.indexing.scanner import (
    ArtifactScanningListener,
    Scanner,
    ScanningRequest,
    ScanningResult,
)

__all__ = [
    "IndexCreator",
    "MinimalArtifactInfoCreator",
    "Sha1Creator",
    "create_creators",
    "default_creators",
    "IndexerEngine",
    "RescanCoordinator",
    "IndexingScanListener",
    "ArtifactScanningListener",
    "Scanner",
    "ScanningRequest",
    "ScanningResult",
]
