"""
Shared fixtures for the artindex test suite.

Provides common test fixtures including:
- Maven-2 layout sample repositories
- Test configuration rooted in tmp_path
- Indexers and indexing contexts
"""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Iterator

import pytest

from artindex.artifact import Gav
from artindex.config import Config
from artindex.context import IndexingContext
from artindex.indexer import ArtifactIndexer
from artindex.indexing import default_creators


# ==============================================================================
# Helpers
# ==============================================================================

def write_artifact(
    repository: Path,
    coordinates: str,
    content: bytes | None = None,
) -> Path:
    """
    Write one artifact file into a Maven-2 layout repository.

    Args:
        repository: Repository root.
        coordinates: g:a:v[:classifier][:extension], extension defaulting to jar.
        content: File content; defaults to the coordinates themselves.
    """
    parts = coordinates.split(":")
    group_id, artifact_id, version = parts[:3]
    classifier = parts[3] if len(parts) > 3 and parts[3] else None
    extension = parts[4] if len(parts) > 4 else "jar"

    gav = Gav(group_id, artifact_id, version, classifier, extension)
    path = repository / gav.repository_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(coordinates.encode() if content is None else content)
    return path


def sha1_hex(content: bytes) -> str:
    return hashlib.sha1(content).hexdigest()


SAMPLE_ARTIFACTS = [
    "org.example:alpha:1.0",
    "org.example:alpha:1.1",
    "org.example:alpha:1.1:sources",
    "org.example:beta:2.0",
    "com.acme:gamma:0.1::pom",
]


# ==============================================================================
# Repository Fixtures
# ==============================================================================

@pytest.fixture
def maven_repo(tmp_path: Path) -> Path:
    """Create a small Maven-2 layout repository with metadata noise."""
    repo = tmp_path / "repo"
    repo.mkdir()

    for coordinates in SAMPLE_ARTIFACTS:
        write_artifact(repo, coordinates)

    # Files the crawler must skip
    alpha_dir = repo / "org" / "example" / "alpha"
    (alpha_dir / "maven-metadata.xml").write_text("<metadata/>")
    (alpha_dir / "1.0" / "alpha-1.0.jar.md5").write_text("0" * 32)
    (alpha_dir / "1.0" / "_remote.repositories").write_text("")
    (repo / ".cache").mkdir()
    (repo / ".cache" / "junk.jar").write_bytes(b"junk")

    return repo


@pytest.fixture
def second_repo(tmp_path: Path) -> Path:
    """Create a second repository sharing one group with the first."""
    repo = tmp_path / "repo2"
    repo.mkdir()
    write_artifact(repo, "org.example:alpha:2.0")
    write_artifact(repo, "net.other:delta:1.0")
    return repo


# ==============================================================================
# Configuration Fixtures
# ==============================================================================

@pytest.fixture
def test_config(tmp_path: Path) -> Config:
    """Create a test configuration."""
    return Config(
        data_dir=tmp_path / ".artindex",
        log_level="DEBUG",
    )


# ==============================================================================
# Indexer Fixtures
# ==============================================================================

@pytest.fixture
def indexer(test_config: Config) -> Iterator[ArtifactIndexer]:
    """Create an indexer and close it after the test."""
    artifact_indexer = ArtifactIndexer(test_config)
    yield artifact_indexer
    artifact_indexer.close()


@pytest.fixture
def make_context(tmp_path: Path):
    """Factory for standalone indexing contexts closed after the test."""
    created: list[IndexingContext] = []

    def factory(
        context_id: str = "central",
        repository: Path | None = None,
        **kwargs,
    ) -> IndexingContext:
        kwargs.setdefault("repository_id", context_id)
        kwargs.setdefault("index_directory", tmp_path / "indexes" / context_id)
        kwargs.setdefault("creators", default_creators())
        context = IndexingContext(id=context_id, repository=repository, **kwargs)
        created.append(context)
        return context

    yield factory

    for context in created:
        context.close()


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow")
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
