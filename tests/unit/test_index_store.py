"""
Unit tests for the SQLite index store.

Tests cover:
- Schema creation and descriptors
- Commit boundaries (pending writes invisible to readers)
- Snapshot readers
- Compatibility checks
- Copy and replace through the backup API
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path

import pytest

from artindex.config import StorageConfig
from artindex.errors import ContextClosedError
from artindex.storage.index_store import INDEX_FORMAT_VERSION, IndexStore


def _doc(artifact_id: str, version: str = "1.0", group_id: str = "org.example") -> dict:
    return {
        "uinfo": f"{group_id}|{artifact_id}|{version}|NA|jar",
        "group_id": group_id,
        "artifact_id": artifact_id,
        "version": version,
        "classifier": None,
        "extension": "jar",
        "sha1": None,
        "extra": {"note": artifact_id},
    }


@pytest.fixture
def store(tmp_path: Path):
    """Create an open store."""
    index_store = IndexStore(tmp_path / "index")
    index_store.open(repository_id="central")
    yield index_store
    index_store.close()


# ==============================================================================
# Lifecycle Tests
# ==============================================================================

class TestLifecycle:
    """Tests for opening, closing and destroying stores."""

    def test_open_creates_database(self, tmp_path: Path):
        index_store = IndexStore(tmp_path / "index")
        assert not index_store.exists()

        index_store.open(repository_id="central")
        try:
            assert index_store.exists()
            assert index_store.is_open
            assert index_store.get_descriptor("format_version") == INDEX_FORMAT_VERSION
            assert index_store.get_descriptor("repository_id") == "central"
        finally:
            index_store.close()

    def test_wal_mode_enabled(self, store: IndexStore):
        conn = sqlite3.connect(store.db_path)
        try:
            mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
        finally:
            conn.close()
        assert mode == "wal"

    def test_close_is_idempotent(self, store: IndexStore):
        store.close()
        store.close()
        assert not store.is_open

    def test_operations_after_close_fail(self, store: IndexStore):
        store.close()
        with pytest.raises(ContextClosedError):
            store.upsert(_doc("alpha"))
        with pytest.raises(ContextClosedError):
            store.open_reader()

    def test_destroy_removes_directory(self, store: IndexStore):
        store.destroy()
        assert not store.directory.exists()

    def test_reopen_keeps_documents(self, tmp_path: Path):
        index_store = IndexStore(tmp_path / "index")
        index_store.open("central")
        index_store.upsert(_doc("alpha"))
        index_store.close()

        reopened = IndexStore(tmp_path / "index")
        reopened.open("central")
        try:
            assert reopened.count() == 1
        finally:
            reopened.close()


# ==============================================================================
# Commit Boundary Tests
# ==============================================================================

class TestCommitBoundaries:
    """Tests for write visibility."""

    def test_pending_writes_invisible_to_readers(self, store: IndexStore):
        store.upsert(_doc("alpha"))

        with store.open_reader() as reader:
            assert reader.count() == 0

        store.commit()
        with store.open_reader() as reader:
            assert reader.count() == 1

    def test_rollback_discards_pending(self, store: IndexStore):
        store.upsert(_doc("alpha"))
        store.rollback()
        assert store.count() == 0

    def test_upsert_replaces_by_uinfo(self, store: IndexStore):
        store.upsert(_doc("alpha"))
        replacement = _doc("alpha")
        replacement["sha1"] = "a" * 40
        store.upsert(replacement)
        store.commit()

        with store.open_reader() as reader:
            rows = list(reader.select())
        assert len(rows) == 1
        assert rows[0]["sha1"] == "a" * 40

    def test_delete(self, store: IndexStore):
        store.upsert(_doc("alpha"))
        store.commit()
        assert store.delete("org.example|alpha|1.0|NA|jar") == 1
        assert store.delete("org.example|alpha|1.0|NA|jar") == 0
        store.commit()
        assert store.count() == 0


# ==============================================================================
# Reader Tests
# ==============================================================================

class TestReaders:
    """Tests for snapshot readers."""

    def test_select_in_canonical_order(self, store: IndexStore):
        for artifact_id, version in [("beta", "1.0"), ("alpha", "2.0"), ("alpha", "1.0")]:
            store.upsert(_doc(artifact_id, version))
        store.commit()

        with store.open_reader() as reader:
            rows = list(reader.select())
        assert [(r["artifact_id"], r["version"]) for r in rows] == [
            ("alpha", "1.0"),
            ("alpha", "2.0"),
            ("beta", "1.0"),
        ]
        assert rows[0]["extra"] == '{"note": "alpha"}'

    def test_reader_keeps_snapshot_across_commit(self, store: IndexStore):
        """Test that a reader never sees writes committed after it opened."""
        store.upsert(_doc("alpha"))
        store.commit()

        reader = store.open_reader()
        try:
            store.upsert(_doc("beta"))
            store.commit()
            assert reader.count() == 1
        finally:
            reader.close()

        with store.open_reader() as fresh:
            assert fresh.count() == 2

    def test_filtered_count(self, store: IndexStore):
        store.upsert(_doc("alpha"))
        store.upsert(_doc("beta"))
        store.commit()

        with store.open_reader() as reader:
            assert reader.count("artifact_id = ?", ["beta"]) == 1

    def test_reader_tracking(self, store: IndexStore):
        reader = store.open_reader()
        assert store.open_reader_count == 1
        reader.close()
        reader.close()
        assert reader.closed
        assert store.open_reader_count == 0


# ==============================================================================
# Compatibility Tests
# ==============================================================================

class TestCompatibility:
    """Tests for check_compatibility."""

    def test_absent_index_is_compatible(self, tmp_path: Path):
        assert IndexStore(tmp_path / "missing").check_compatibility("central") is None

    def test_same_repository_is_compatible(self, store: IndexStore):
        assert store.check_compatibility("central") is None

    def test_other_repository_is_incompatible(self, store: IndexStore):
        problem = store.check_compatibility("snapshots")
        assert problem is not None
        assert "central" in problem

    def test_format_version_mismatch(self, store: IndexStore):
        store.set_descriptor("format_version", "0")
        store.commit()
        assert "format version" in store.check_compatibility("central")

    def test_garbage_file_is_incompatible(self, tmp_path: Path):
        directory = tmp_path / "index"
        directory.mkdir()
        (directory / "index.db").write_bytes(b"this is not a database" * 100)
        problem = IndexStore(directory).check_compatibility("central")
        assert problem is not None
        assert problem.startswith("unreadable index")


# ==============================================================================
# Copy / Replace Tests
# ==============================================================================

class TestCopyAndReplace:
    """Tests for whole-index copy through the backup API."""

    def test_replace_from(self, tmp_path: Path, store: IndexStore):
        store.upsert(_doc("old"))
        store.commit()

        source = IndexStore(tmp_path / "staging")
        source.open("central")
        try:
            source.upsert(_doc("new"))
            source.set_timestamp(datetime(2024, 1, 1, tzinfo=timezone.utc))
            source.commit()

            store.replace_from(source)
        finally:
            source.close()

        assert store.uinfos() == ["org.example|new|1.0|NA|jar"]
        assert store.timestamp == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_copy_into_ignores_uncommitted_source_writes(self, tmp_path: Path, store: IndexStore):
        store.upsert(_doc("committed"))
        store.commit()
        store.upsert(_doc("pending"))

        target = IndexStore(tmp_path / "copy")
        target.open("central")
        try:
            store.copy_into(target)
            assert target.uinfos() == ["org.example|committed|1.0|NA|jar"]
        finally:
            target.close()

    def test_open_reader_survives_replace(self, tmp_path: Path, store: IndexStore):
        """Test that a reader opened before a replace keeps the old state."""
        store.upsert(_doc("old"))
        store.commit()
        reader = store.open_reader()

        source = IndexStore(tmp_path / "staging")
        source.open("central")
        try:
            source.upsert(_doc("new-a"))
            source.upsert(_doc("new-b"))
            source.commit()
            store.replace_from(source)
        finally:
            source.close()

        try:
            assert [r["artifact_id"] for r in reader.select()] == ["old"]
        finally:
            reader.close()

        with store.open_reader() as fresh:
            assert [r["artifact_id"] for r in fresh.select()] == ["new-a", "new-b"]

    def test_copy_gives_up_while_target_is_locked(self, tmp_path: Path):
        """Test that a copy blocked by another writer fails instead of waiting forever."""
        config = StorageConfig(busy_timeout_ms=50)
        source = IndexStore(tmp_path / "staging", config=config)
        target = IndexStore(tmp_path / "locked", config=config)
        source.open("central")
        target.open("central")
        blocker = sqlite3.connect(target.db_path, isolation_level=None)
        try:
            source.upsert(_doc("new"))
            source.commit()
            blocker.execute("BEGIN IMMEDIATE")

            with pytest.raises(sqlite3.OperationalError, match="timed out"):
                source.copy_into(target)

            blocker.execute("ROLLBACK")
            source.copy_into(target)
            assert target.uinfos() == ["org.example|new|1.0|NA|jar"]
        finally:
            blocker.close()
            source.close()
            target.close()

    def test_custom_storage_config_opens_in_wal_mode(self, tmp_path: Path):
        index_store = IndexStore(tmp_path / "index", config=StorageConfig(busy_timeout_ms=10))
        index_store.open("central")
        try:
            mode = index_store._writer().execute("PRAGMA journal_mode").fetchone()[0]
        finally:
            index_store.close()
        assert mode == "wal"

    def test_stats(self, store: IndexStore):
        store.upsert(_doc("alpha"))
        stats = store.get_stats()
        assert stats.documents == 1
        assert stats.repository_id == "central"
        assert stats.format_version == INDEX_FORMAT_VERSION
        assert stats.timestamp is None
