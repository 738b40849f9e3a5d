"""
SQLite storage for a single artifact index.

Provides:
- Artifact document storage keyed by uinfo
- Explicit commit boundaries (writes stay invisible to readers until commit)
- Read-only reader connections that pin one consistent snapshot
- Whole-index copy and atomic replace through the SQLite online backup API
"""

from __future__ import annotations

import json
import shutil
import sqlite3
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

import structlog

from artindex.config import StorageConfig
from artindex.errors import ContextClosedError

logger = structlog.get_logger(__name__)

INDEX_FORMAT_VERSION = "1"

# SQLITE_BUSY, SQLITE_LOCKED
_BUSY_STATUSES = (5, 6)

DOCUMENT_COLUMNS = (
    "uinfo",
    "group_id",
    "artifact_id",
    "version",
    "classifier",
    "extension",
    "packaging",
    "sha1",
    "size",
    "last_modified",
    "file_name",
    "extra",
    "indexed_at",
)

ORDER_BY = "group_id, artifact_id, version, COALESCE(classifier, ''), extension"


@dataclass
class StoreStats:
    """Document count and descriptor data of one store."""

    documents: int
    repository_id: str | None
    timestamp: datetime | None
    format_version: str | None


class IndexReader:
    """
    A read-only connection holding one read transaction.

    Every statement run through a reader sees the same committed state of the
    index, even while the owning store is being replaced.
    """

    def __init__(self, store: "IndexStore", conn: sqlite3.Connection) -> None:
        self._store = store
        self._conn = conn
        self._closed = False
        # BEGIN is deferred; the first read pins the snapshot.
        self._conn.execute("BEGIN")
        self._conn.execute("SELECT COUNT(*) FROM descriptor").fetchone()

    @property
    def closed(self) -> bool:
        return self._closed

    def count(self, where: str = "1=1", params: list[Any] | None = None) -> int:
        """Count documents matching a WHERE clause."""
        row = self._conn.execute(
            f"SELECT COUNT(*) FROM artifacts WHERE {where}",
            params or [],
        ).fetchone()
        return row[0] if row else 0

    def select(
        self,
        where: str = "1=1",
        params: list[Any] | None = None,
    ) -> Iterator[dict[str, Any]]:
        """Lazily yield matching documents in the canonical ordering."""
        cursor = self._conn.execute(
            f"SELECT * FROM artifacts WHERE {where} ORDER BY {ORDER_BY}",
            params or [],
        )
        columns = [d[0] for d in cursor.description]
        for row in cursor:
            yield dict(zip(columns, row))

    def close(self) -> None:
        """Release the snapshot and the connection. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        try:
            self._conn.execute("ROLLBACK")
        except sqlite3.Error:
            pass
        finally:
            self._conn.close()
            self._store._reader_closed(self)

    def __enter__(self) -> "IndexReader":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class IndexStore:
    """
    SQLite backend for one index directory.

    Features:
    - One writer connection guarded by a lock
    - WAL mode so readers are never blocked by a swap
    - Descriptor table recording format version, repository id and timestamp
    """

    SCHEMA = """
    -- Artifacts table: one row per artifact file
    CREATE TABLE IF NOT EXISTS artifacts (
        uinfo TEXT PRIMARY KEY,
        group_id TEXT NOT NULL,
        artifact_id TEXT NOT NULL,
        version TEXT NOT NULL,
        classifier TEXT,
        extension TEXT NOT NULL,
        packaging TEXT,
        sha1 TEXT,
        size INTEGER,
        last_modified INTEGER,
        file_name TEXT,
        extra TEXT DEFAULT '{}',
        indexed_at TEXT NOT NULL
    );

    -- Indexes for common queries
    CREATE INDEX IF NOT EXISTS idx_artifacts_group_id ON artifacts(group_id);
    CREATE INDEX IF NOT EXISTS idx_artifacts_artifact_id ON artifacts(artifact_id);
    CREATE INDEX IF NOT EXISTS idx_artifacts_sha1 ON artifacts(sha1);
    CREATE INDEX IF NOT EXISTS idx_artifacts_order ON artifacts(
        group_id, artifact_id, version, classifier, extension
    );

    -- Descriptor: key/value facts about the index itself
    CREATE TABLE IF NOT EXISTS descriptor (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    );
    """

    def __init__(
        self,
        directory: Path,
        config: StorageConfig | None = None,
    ) -> None:
        """
        Initialize the store.

        Args:
            directory: Index directory (created on open).
            config: Storage configuration.
        """
        self.directory = Path(directory)
        self.config = config or StorageConfig()
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._readers: set[IndexReader] = set()
        self._readers_lock = threading.Lock()

    @property
    def db_path(self) -> Path:
        return self.directory / self.config.db_filename

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def open_reader_count(self) -> int:
        with self._readers_lock:
            return len(self._readers)

    def exists(self) -> bool:
        """Whether an index database is present on disk."""
        return self.db_path.exists()

    def check_compatibility(self, repository_id: str | None) -> str | None:
        """
        Inspect an existing index without modifying it.

        Returns:
            None when the index is absent or reusable, otherwise the reason
            it cannot be reused.
        """
        if not self.exists():
            return None

        try:
            conn = sqlite3.connect(self._reader_uri(), uri=True)
            try:
                rows = conn.execute("SELECT key, value FROM descriptor").fetchall()
                conn.execute("SELECT COUNT(*) FROM artifacts").fetchone()
            finally:
                conn.close()
        except sqlite3.DatabaseError as e:
            return f"unreadable index: {e}"

        descriptor = dict(rows)
        format_version = descriptor.get("format_version")
        if format_version != INDEX_FORMAT_VERSION:
            return f"unsupported index format version: {format_version}"

        existing_repository = descriptor.get("repository_id")
        if (
            repository_id is not None
            and existing_repository is not None
            and existing_repository != repository_id
        ):
            return (
                f"index belongs to repository {existing_repository}, "
                f"not {repository_id}"
            )

        return None

    def open(self, repository_id: str | None = None) -> None:
        """Open (creating if needed) the database and its schema."""
        with self._lock:
            if self._conn is not None:
                return

            self.directory.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                self.db_path,
                timeout=self.config.busy_timeout_ms / 1000.0,
                check_same_thread=False,
            )
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute(f"PRAGMA busy_timeout={self.config.busy_timeout_ms}")
            conn.execute("PRAGMA synchronous=NORMAL")
            conn.executescript(self.SCHEMA)

            conn.execute(
                "INSERT OR IGNORE INTO descriptor (key, value) VALUES (?, ?)",
                ("format_version", INDEX_FORMAT_VERSION),
            )
            if repository_id is not None:
                conn.execute(
                    "INSERT OR IGNORE INTO descriptor (key, value) VALUES (?, ?)",
                    ("repository_id", repository_id),
                )
            conn.commit()

            self._conn = conn
            logger.debug("Index store opened", path=str(self.db_path))

    def close(self) -> None:
        """Commit pending writes and close the writer connection."""
        with self._lock:
            if self._conn is None:
                return
            try:
                self._conn.commit()
            finally:
                self._conn.close()
                self._conn = None
            logger.debug("Index store closed", path=str(self.db_path))

        with self._readers_lock:
            leaked = len(self._readers)
        if leaked:
            logger.warning(
                "Index store closed with open readers",
                path=str(self.db_path),
                readers=leaked,
            )

    def destroy(self) -> None:
        """Close the store and delete its directory."""
        self.close()
        if self.directory.exists():
            shutil.rmtree(self.directory)
            logger.debug("Index store deleted", path=str(self.directory))

    def _writer(self) -> sqlite3.Connection:
        if self._conn is None:
            raise ContextClosedError(f"Index store is not open: {self.db_path}")
        return self._conn

    def _reader_uri(self) -> str:
        return f"{self.db_path.resolve().as_uri()}?mode=ro"

    def upsert(self, document: dict[str, Any]) -> None:
        """Insert or replace a document. Not visible to readers until commit."""
        row = dict(document)
        row["extra"] = json.dumps(row.get("extra") or {}, sort_keys=True)
        row.setdefault("indexed_at", datetime.now(timezone.utc).isoformat())
        values = [row.get(column) for column in DOCUMENT_COLUMNS]

        with self._lock:
            self._writer().execute(
                f"""
                INSERT OR REPLACE INTO artifacts ({", ".join(DOCUMENT_COLUMNS)})
                VALUES ({", ".join("?" * len(DOCUMENT_COLUMNS))})
                """,
                values,
            )

    def delete(self, uinfo: str) -> int:
        """Delete a document by key. Returns the number of deleted rows."""
        with self._lock:
            cursor = self._writer().execute(
                "DELETE FROM artifacts WHERE uinfo = ?",
                (uinfo,),
            )
            return cursor.rowcount

    def commit(self) -> None:
        """Make pending writes visible to new readers."""
        with self._lock:
            self._writer().commit()

    def rollback(self) -> None:
        """Discard pending writes."""
        with self._lock:
            self._writer().rollback()

    def count(self) -> int:
        """Number of documents, pending writes included."""
        with self._lock:
            row = self._writer().execute("SELECT COUNT(*) FROM artifacts").fetchone()
            return row[0] if row else 0

    def uinfos(self) -> list[str]:
        """All document keys in canonical order, pending writes included."""
        with self._lock:
            rows = self._writer().execute(
                f"SELECT uinfo FROM artifacts ORDER BY {ORDER_BY}"
            ).fetchall()
            return [row[0] for row in rows]

    def get_descriptor(self, key: str) -> str | None:
        with self._lock:
            row = self._writer().execute(
                "SELECT value FROM descriptor WHERE key = ?",
                (key,),
            ).fetchone()
            return row[0] if row else None

    def set_descriptor(self, key: str, value: str) -> None:
        with self._lock:
            self._writer().execute(
                "INSERT OR REPLACE INTO descriptor (key, value) VALUES (?, ?)",
                (key, value),
            )

    @property
    def timestamp(self) -> datetime | None:
        value = self.get_descriptor("timestamp")
        return datetime.fromisoformat(value) if value else None

    def set_timestamp(self, timestamp: datetime) -> None:
        self.set_descriptor("timestamp", timestamp.isoformat())

    def open_reader(self) -> IndexReader:
        """
        Open a read-only snapshot of the committed index.

        Readers must be closed by the caller.
        """
        self._writer()
        conn = sqlite3.connect(
            self._reader_uri(),
            uri=True,
            timeout=self.config.busy_timeout_ms / 1000.0,
            isolation_level=None,
            check_same_thread=False,
        )
        try:
            reader = IndexReader(self, conn)
        except sqlite3.Error:
            conn.close()
            raise
        with self._readers_lock:
            self._readers.add(reader)
        return reader

    def _reader_closed(self, reader: IndexReader) -> None:
        with self._readers_lock:
            self._readers.discard(reader)

    def copy_into(self, target: "IndexStore") -> None:
        """
        Copy this store's committed contents over the target's contents.

        Raises sqlite3.OperationalError if the copy is kept busy for longer
        than the configured busy timeout.
        """
        deadline = time.monotonic() + self.config.busy_timeout_ms / 1000.0

        def progress(status: int, remaining: int, total: int) -> None:
            if status in _BUSY_STATUSES and time.monotonic() > deadline:
                raise sqlite3.OperationalError(
                    f"Index copy timed out after {self.config.busy_timeout_ms} ms: "
                    f"{self.db_path} -> {target.db_path}"
                )

        source = sqlite3.connect(self._reader_uri(), uri=True)
        try:
            with target._lock:
                target_conn = target._writer()
                target_conn.commit()
                source.backup(target_conn, progress=progress)
        finally:
            source.close()
        logger.debug(
            "Index copied",
            source=str(self.db_path),
            target=str(target.db_path),
        )

    def replace_from(self, source: "IndexStore") -> None:
        """
        Replace this store's contents with the source's committed contents.

        The whole database is copied in a single backup step while the writer
        lock is held, so readers observe either the old or the new index.
        """
        source.copy_into(self)
        logger.debug(
            "Index replaced",
            target=str(self.db_path),
            source=str(source.db_path),
        )

    def get_stats(self) -> StoreStats:
        """Get storage statistics."""
        timestamp = self.timestamp
        return StoreStats(
            documents=self.count(),
            repository_id=self.get_descriptor("repository_id"),
            timestamp=timestamp,
            format_version=self.get_descriptor("format_version"),
        )
