"""SQLite-backed, content-addressed cache of built indexes."""

import hashlib
import json
import logging
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any, Optional

import numpy as np

from .errors import StorageError
from .models import CacheRecord, Fragment, Index

logger = logging.getLogger(__name__)


def content_hash(content: Any) -> str:
    """
    SHA-256 hex digest of the exact content that gets chunked.

    Strings are hashed as-is; structured data is serialized as compact JSON
    with key order preserved, since key order decides fragment order.
    """
    if isinstance(content, str):
        text = content
    else:
        text = json.dumps(content, ensure_ascii=False, separators=(",", ":"), default=str)
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _encode_fragments(index: Index) -> str:
    return json.dumps([
        {
            "text": e.fragment.text,
            "location": e.fragment.location,
            "label": e.fragment.label,
            "source_id": e.fragment.source_id,
            "source_name": e.fragment.source_name,
        }
        for e in index.entries
    ], ensure_ascii=False)


def _decode_index(row: sqlite3.Row) -> Index:
    fragments = [Fragment(**item) for item in json.loads(row["fragments_json"])]
    dimension = row["dimension"]
    vectors = np.frombuffer(row["vectors"], dtype=np.float32)
    if vectors.size != len(fragments) * dimension:
        raise ValueError("Vector blob does not match fragment count")
    matrix = vectors.reshape(len(fragments), dimension)
    return Index.from_vectors(fragments, matrix.tolist(), model=row["model"])


class IndexCache:
    """
    Persistent store of built indexes keyed by content hash.

    Records are namespaced by model identity and file type, so switching
    models never serves embeddings from a different vector space. Storage
    problems are logged and treated as a miss (reads) or a no-op (writes);
    the cache never raises to its callers.
    """

    def __init__(self, db_path: str):
        self.db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    def _connection(self) -> sqlite3.Connection:
        if self._conn is not None:
            return self._conn
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("""
                CREATE TABLE IF NOT EXISTS indexes (
                    content_hash TEXT NOT NULL,
                    model TEXT NOT NULL,
                    file_type TEXT NOT NULL,
                    dimension INTEGER NOT NULL,
                    fragments_json TEXT NOT NULL,
                    vectors BLOB NOT NULL,
                    created_at REAL NOT NULL,
                    PRIMARY KEY (content_hash, model, file_type)
                )
            """)
            conn.commit()
        except (OSError, sqlite3.Error) as exc:
            raise StorageError(f"Cannot open index cache at {self.db_path}: {exc}") from exc
        self._conn = conn
        return conn

    def get_record(
        self,
        content_hash: str,
        *,
        model: str,
        file_type: str = "",
    ) -> Optional[CacheRecord]:
        """Fetch the full cache record, or None on a miss or storage error."""
        try:
            with self._lock:
                row = self._connection().execute(
                    "SELECT * FROM indexes WHERE content_hash = ? AND model = ? AND file_type = ?",
                    (content_hash, model, file_type),
                ).fetchone()
            if row is None:
                return None
            return CacheRecord(
                content_hash=row["content_hash"],
                model=row["model"],
                file_type=row["file_type"],
                index=_decode_index(row),
                created_at=row["created_at"],
            )
        except (StorageError, sqlite3.Error, ValueError, TypeError) as exc:
            logger.warning("Index cache read failed for %s: %s", content_hash[:12], exc)
            return None

    def get(self, content_hash: str, *, model: str, file_type: str = "") -> Optional[Index]:
        record = self.get_record(content_hash, model=model, file_type=file_type)
        return record.index if record else None

    def put(self, content_hash: str, index: Index, *, file_type: str = "") -> None:
        """Store ``index``. Best effort: failures are logged and ignored."""
        if not index:
            return
        try:
            with self._lock:
                conn = self._connection()
                with conn:
                    conn.execute("""
                        INSERT OR REPLACE INTO indexes (
                            content_hash, model, file_type, dimension,
                            fragments_json, vectors, created_at
                        ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """, (
                        content_hash,
                        index.model,
                        file_type,
                        index.dimension,
                        _encode_fragments(index),
                        index.matrix.astype(np.float32).tobytes(),
                        time.time(),
                    ))
        except (StorageError, sqlite3.Error, TypeError, ValueError) as exc:
            logger.warning("Index cache write failed for %s: %s", content_hash[:12], exc)

    def clear(self) -> None:
        """Remove every cached index."""
        try:
            with self._lock:
                conn = self._connection()
                with conn:
                    conn.execute("DELETE FROM indexes")
        except (StorageError, sqlite3.Error) as exc:
            logger.warning("Index cache clear failed: %s", exc)

    def __len__(self) -> int:
        try:
            with self._lock:
                return self._connection().execute("SELECT COUNT(*) FROM indexes").fetchone()[0]
        except (StorageError, sqlite3.Error) as exc:
            logger.warning("Index cache count failed: %s", exc)
            return 0

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
