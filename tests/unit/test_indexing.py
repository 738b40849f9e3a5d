"""
Unit tests for the indexing modules.

Tests cover:
- Repository crawling (ordering, ignores, sub-paths, cancellation)
- Index creators (minimal fields, SHA-1 with and without sidecars)
- Indexer engine document mutations
- Digest helpers
"""

from __future__ import annotations

import hashlib
import os
import sys
import threading
from pathlib import Path
from unittest.mock import patch

import pytest

from artindex.artifact import ArtifactContext, Gav
from artindex.config import ScanConfig
from artindex.context import MergedIndexingContext
from artindex.digest import new_sha1, sha1_file
from artindex.errors import (
    ConfigurationError,
    DigestUnavailableError,
    RepositoryNotFoundError,
    ScanCancelledError,
    UnsupportedContextOperationError,
)
from artindex.indexing import (
    ArtifactScanningListener,
    IndexerEngine,
    MinimalArtifactInfoCreator,
    Scanner,
    ScanningRequest,
    Sha1Creator,
    create_creators,
)
from tests.conftest import sha1_hex, write_artifact


class RecordingListener(ArtifactScanningListener):
    """Listener collecting every event."""

    def __init__(self) -> None:
        self.started = 0
        self.finished = 0
        self.discovered: list[str] = []

    def scanning_started(self, context) -> None:
        self.started += 1

    def artifact_discovered(self, artifact_context: ArtifactContext) -> None:
        self.discovered.append(str(artifact_context.gav))

    def scanning_finished(self, context, result) -> None:
        self.finished += 1


# ==============================================================================
# Scanner Tests
# ==============================================================================

class TestScanner:
    """Tests for the Maven-2 layout crawler."""

    def test_discovers_artifacts_in_sorted_order(self, make_context, maven_repo: Path):
        context = make_context("central", repository=maven_repo)
        listener = RecordingListener()

        result = Scanner().scan(ScanningRequest(context, listener))

        assert listener.discovered == [
            "com.acme:gamma:0.1:pom",
            "org.example:alpha:1.0:jar",
            # File name order: "alpha-1.1-sources.jar" < "alpha-1.1.jar"
            "org.example:alpha:1.1:sources:jar",
            "org.example:alpha:1.1:jar",
            "org.example:beta:2.0:jar",
        ]
        assert listener.started == 1
        assert listener.finished == 1
        assert result.discovered == 5

    def test_skips_metadata_and_hidden(self, make_context, maven_repo: Path):
        context = make_context("central", repository=maven_repo)
        result = Scanner().scan(ScanningRequest(context, RecordingListener()))

        # maven-metadata.xml, .md5 and _remote.repositories
        assert result.skipped == 3
        assert result.total_files == 8

    def test_unparseable_files_skipped(self, make_context, maven_repo: Path):
        (maven_repo / "README.txt").write_text("hello")
        context = make_context("central", repository=maven_repo)
        result = Scanner().scan(ScanningRequest(context, RecordingListener()))
        assert result.discovered == 5
        assert result.skipped == 4

    @pytest.mark.skipif(sys.platform != "linux", reason="needs a byte-oriented file system")
    def test_undecodable_file_name_skipped(self, make_context, maven_repo: Path):
        beta = maven_repo / "org/example/beta/2.0"
        Path(os.fsdecode(os.fsencode(beta) + b"/beta-2.0-\xff.jar")).write_bytes(b"x")
        context = make_context("central", repository=maven_repo)
        listener = RecordingListener()

        result = Scanner().scan(ScanningRequest(context, listener))

        assert result.discovered == 5
        assert result.skipped == 4
        assert result.total_files == 9
        assert "org.example:beta:2.0:jar" in listener.discovered

    def test_custom_ignore_patterns(self, make_context, maven_repo: Path):
        context = make_context("central", repository=maven_repo)
        scanner = Scanner(
            ScanConfig(
                ignore_patterns=["*.pom", "maven-metadata*.xml", "*.md5", "_remote.repositories"]
            )
        )
        listener = RecordingListener()
        scanner.scan(ScanningRequest(context, listener))
        assert "com.acme:gamma:0.1:pom" not in listener.discovered

    def test_start_path(self, make_context, maven_repo: Path):
        context = make_context("central", repository=maven_repo)
        listener = RecordingListener()
        Scanner().scan(ScanningRequest(context, listener, start_path="org/example/beta"))
        assert listener.discovered == ["org.example:beta:2.0:jar"]

    def test_missing_start_path_is_empty(self, make_context, maven_repo: Path):
        context = make_context("central", repository=maven_repo)
        listener = RecordingListener()
        result = Scanner().scan(ScanningRequest(context, listener, start_path="nope"))
        assert result.discovered == 0
        assert listener.finished == 1

    def test_no_repository(self, make_context):
        context = make_context("remote-only")
        result = Scanner().scan(ScanningRequest(context, RecordingListener()))
        assert result.total_files == 0

    def test_missing_repository(self, make_context, tmp_path: Path):
        context = make_context("central", repository=tmp_path / "gone")
        with pytest.raises(RepositoryNotFoundError):
            Scanner().scan(ScanningRequest(context, RecordingListener()))

    def test_cancel_event(self, make_context, maven_repo: Path):
        context = make_context("central", repository=maven_repo)
        cancel = threading.Event()

        class CancellingListener(RecordingListener):
            def artifact_discovered(self, artifact_context):
                super().artifact_discovered(artifact_context)
                cancel.set()

        listener = CancellingListener()
        with pytest.raises(ScanCancelledError):
            Scanner().scan(ScanningRequest(context, listener, cancel_event=cancel))
        assert len(listener.discovered) == 1
        assert listener.finished == 0


# ==============================================================================
# Creator Tests
# ==============================================================================

class TestCreators:
    """Tests for index creators."""

    def test_minimal_creator(self, tmp_path: Path):
        path = write_artifact(tmp_path, "g:a:1", b"12345")
        context = ArtifactContext(Gav("g", "a", "1"), path)

        MinimalArtifactInfoCreator().populate(context)

        assert context.fields["packaging"] == "jar"
        assert context.fields["size"] == 5
        assert context.fields["file_name"] == "a-1.jar"
        assert context.fields["last_modified"] == int(path.stat().st_mtime * 1000)

    def test_minimal_creator_without_file(self):
        context = ArtifactContext(Gav("g", "a", "1", None, "pom"))
        MinimalArtifactInfoCreator().populate(context)
        assert context.fields == {"packaging": "pom"}

    def test_sha1_computed(self, tmp_path: Path):
        path = write_artifact(tmp_path, "g:a:1", b"content")
        context = ArtifactContext(Gav("g", "a", "1"), path)
        Sha1Creator().populate(context)
        assert context.fields["sha1"] == sha1_hex(b"content")

    def test_sha1_sidecar_preferred(self, tmp_path: Path):
        path = write_artifact(tmp_path, "g:a:1", b"content")
        recorded = "A" * 40
        path.with_name(path.name + ".sha1").write_text(f"{recorded}  a-1.jar\n")
        context = ArtifactContext(Gav("g", "a", "1"), path)

        Sha1Creator().populate(context)

        assert context.fields["sha1"] == "a" * 40

    def test_malformed_sidecar_ignored(self, tmp_path: Path):
        path = write_artifact(tmp_path, "g:a:1", b"content")
        path.with_name(path.name + ".sha1").write_text("not-a-digest")
        context = ArtifactContext(Gav("g", "a", "1"), path)

        Sha1Creator().populate(context)

        assert context.fields["sha1"] == sha1_hex(b"content")

    def test_create_creators(self):
        creators = create_creators(["sha1", "min"], chunk_size=8192)
        assert [c.id for c in creators] == ["sha1", "min"]
        assert creators[0].chunk_size == 8192

    def test_unknown_creator(self):
        with pytest.raises(ConfigurationError, match="Unknown index creator"):
            create_creators(["min", "osgi"])


# ==============================================================================
# Engine Tests
# ==============================================================================

class TestIndexerEngine:
    """Tests for the indexer engine."""

    def test_index_does_not_commit(self, make_context, maven_repo: Path):
        context = make_context("central", repository=maven_repo)
        path = maven_repo / "org/example/beta/2.0/beta-2.0.jar"
        artifact_context = ArtifactContext.from_repository_file(maven_repo, path)

        IndexerEngine().index(context, artifact_context)

        assert context.size() == 0
        context.commit()
        assert context.size() == 1

    def test_document_fields(self, make_context, maven_repo: Path):
        context = make_context("central", repository=maven_repo)
        path = maven_repo / "org/example/beta/2.0/beta-2.0.jar"
        artifact_context = ArtifactContext.from_repository_file(maven_repo, path)
        artifact_context.fields["description"] = "extra field"

        IndexerEngine().index(context, artifact_context)
        context.commit()

        with context.open_reader() as reader:
            (row,) = list(reader.select())
        assert row["uinfo"] == "org.example|beta|2.0|NA|jar"
        assert row["sha1"] == sha1_hex(b"org.example:beta:2.0")
        assert row["file_name"] == "beta-2.0.jar"
        assert row["extra"] == '{"description": "extra field"}'

    def test_remove(self, make_context, maven_repo: Path):
        context = make_context("central", repository=maven_repo)
        engine = IndexerEngine()
        path = maven_repo / "org/example/beta/2.0/beta-2.0.jar"
        artifact_context = ArtifactContext.from_repository_file(maven_repo, path)
        engine.index(context, artifact_context)
        context.commit()

        engine.remove(context, artifact_context)
        engine.remove(context, artifact_context)
        context.commit()

        assert context.size() == 0

    def test_creator_io_error_recorded(self, make_context, tmp_path: Path):
        """Test that an unreadable file is recorded, not fatal."""
        context = make_context("central")
        artifact_context = ArtifactContext(Gav("g", "a", "1"), tmp_path / "missing.jar")

        IndexerEngine().index(context, artifact_context)
        context.commit()

        assert len(artifact_context.errors) == 2
        assert context.size() == 1

    def test_merged_context_rejected(self):
        merged = MergedIndexingContext("all", "all", [])
        with pytest.raises(UnsupportedContextOperationError):
            IndexerEngine().index(merged, ArtifactContext(Gav("g", "a", "1")))


# ==============================================================================
# Digest Tests
# ==============================================================================

class TestDigest:
    """Tests for digest helpers."""

    def test_empty_file(self, tmp_path: Path):
        path = tmp_path / "empty.bin"
        path.write_bytes(b"")
        assert sha1_file(path) == "da39a3ee5e6b4b0d3255bfef95601890afd80709"

    def test_multi_chunk_file(self, tmp_path: Path):
        content = bytes(range(256)) * 100
        path = tmp_path / "data.bin"
        path.write_bytes(content)
        assert sha1_file(path, chunk_size=4096) == hashlib.sha1(content).hexdigest()

    def test_lowercase_hex_across_chunks(self, tmp_path: Path):
        path = tmp_path / "abc.bin"
        path.write_bytes(b"abc")
        assert sha1_file(path, chunk_size=1) == "a9993e364706816aba3e25717850c26c9cd0d89d"

    def test_unavailable_digest(self):
        with patch("artindex.digest.hashlib.new", side_effect=ValueError("unsupported hash type")):
            with pytest.raises(DigestUnavailableError):
                new_sha1()
