"""Persistent bookmark, chunk, snapshot and settings storage backed by SQLite."""

from __future__ import annotations

import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, Sequence

import numpy as np

from .errors import StorageError
from .text import Messages

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path(os.path.expanduser("~")) / ".semmark"
DATA_DIR = DEFAULT_DATA_DIR
_DATA_DIR_OVERRIDE: ContextVar[Path | None] = ContextVar(
    "semmark_data_dir_override",
    default=None,
)
DB_FILENAME = "semmark.db"
SCHEMA_VERSION = 1
SNAPSHOT_KEY = "vector_index"
INDEXED_FOLDERS_KEY = "indexedFolders"
DEAD_LINK_IDS_KEY = "deadLinkIds"
EMBEDDING_MODEL_KEY = "embeddingModel"
FLOAT_BYTES = np.dtype(np.float32).itemsize


@dataclass(frozen=True, slots=True)
class BookmarkRecord:
    id: str
    title: str
    url: str


@dataclass(slots=True)
class ChunkRecord:
    chunk_id: int
    bookmark_id: str
    chunk_text: str
    embedding: np.ndarray


@dataclass(slots=True)
class IndexedRow:
    """A chunk embedding joined with its bookmark's title and url."""

    bookmark_id: str
    title: str
    url: str
    embedding: np.ndarray


def _chunk_values(values: Sequence[object], size: int) -> Iterable[Sequence[object]]:
    for idx in range(0, len(values), size):
        yield values[idx : idx + size]


def _resolve_data_dir() -> Path:
    override = _DATA_DIR_OVERRIDE.get()
    return override if override is not None else DATA_DIR


@contextmanager
def data_dir_context(path: Path | str | None):
    """Temporarily override the data directory for the current context."""

    if path is None:
        yield
        return
    dir_path = Path(path).expanduser().resolve()
    if dir_path.exists() and not dir_path.is_dir():
        raise NotADirectoryError(f"Path is not a directory: {dir_path}")
    token = _DATA_DIR_OVERRIDE.set(dir_path)
    try:
        yield
    finally:
        _DATA_DIR_OVERRIDE.reset(token)


def ensure_data_dir() -> Path:
    data_dir = _resolve_data_dir()
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


def set_data_dir(path: Path | str | None) -> None:
    global DATA_DIR
    if path is None:
        DATA_DIR = DEFAULT_DATA_DIR
        return
    dir_path = Path(path).expanduser().resolve()
    if dir_path.exists() and not dir_path.is_dir():
        raise NotADirectoryError(f"Path is not a directory: {dir_path}")
    DATA_DIR = dir_path


def store_db_path() -> Path:
    """Return the absolute path to the semmark SQLite database."""

    return ensure_data_dir() / DB_FILENAME


def _connect(db_path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(db_path, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL;")
    conn.execute("PRAGMA synchronous = NORMAL;")
    conn.execute("PRAGMA temp_store = MEMORY;")
    conn.execute("PRAGMA busy_timeout = 5000;")
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def _ensure_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS bookmark (
            id TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            url TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS chunk (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            bookmark_id TEXT NOT NULL REFERENCES bookmark(id) ON DELETE CASCADE,
            chunk_text TEXT NOT NULL,
            vector_blob BLOB NOT NULL
        );

        CREATE TABLE IF NOT EXISTS index_snapshot (
            key TEXT PRIMARY KEY,
            blob BLOB NOT NULL
        );

        CREATE TABLE IF NOT EXISTS settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_chunk_bookmark
            ON chunk(bookmark_id);
        """
    )
    conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION};")


def _width_filter(dimension: int | None, prefix: str = "c.") -> tuple[str, tuple[int, ...]]:
    if dimension is None:
        return "", ()
    return f" AND length({prefix}vector_blob) = ?", (int(dimension) * FLOAT_BYTES,)


def _vector_from_blob(blob: bytes) -> np.ndarray:
    return np.frombuffer(blob, dtype=np.float32)


def _vector_to_blob(vector: np.ndarray) -> bytes:
    return np.asarray(vector, dtype=np.float32).ravel().tobytes()


class BookmarkStore:
    """Transactional store for bookmarks, their chunks and engine settings.

    Every public mutation runs in its own transaction, so readers only ever
    observe committed records. ``sqlite3.Error`` is re-raised as
    :class:`~semmark.errors.StorageError`.
    """

    def __init__(self, db_path: Path | str | None = None) -> None:
        self._db_path = Path(db_path) if db_path is not None else None
        self._conn: sqlite3.Connection | None = None

    @property
    def db_path(self) -> Path:
        if self._db_path is None:
            self._db_path = store_db_path()
        return self._db_path

    def open(self) -> "BookmarkStore":
        if self._conn is not None:
            return self
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            conn = _connect(self.db_path)
            _ensure_schema(conn)
        except sqlite3.Error as exc:
            raise StorageError(Messages.ERROR_STORAGE.format(reason=exc)) from exc
        self._conn = conn
        return self

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "BookmarkStore":
        return self.open()

    def __exit__(self, *_exc) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self.open()
        assert self._conn is not None
        return self._conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the block in one write transaction; commit on success, roll back on error."""

        conn = self.conn
        try:
            conn.execute("BEGIN IMMEDIATE;")
        except sqlite3.Error as exc:
            raise StorageError(Messages.ERROR_STORAGE.format(reason=exc)) from exc
        try:
            yield conn
        except sqlite3.Error as exc:
            conn.execute("ROLLBACK;")
            raise StorageError(Messages.ERROR_STORAGE.format(reason=exc)) from exc
        except BaseException:
            conn.execute("ROLLBACK;")
            raise
        try:
            conn.execute("COMMIT;")
        except sqlite3.Error as exc:
            raise StorageError(Messages.ERROR_STORAGE.format(reason=exc)) from exc

    @contextmanager
    def _reading(self) -> Iterator[sqlite3.Connection]:
        try:
            yield self.conn
        except sqlite3.Error as exc:
            raise StorageError(Messages.ERROR_STORAGE.format(reason=exc)) from exc

    # -- bookmarks and chunks -------------------------------------------------

    def bookmark_ids(self) -> set[str]:
        with self._reading() as conn:
            rows = conn.execute("SELECT id FROM bookmark").fetchall()
        return {row["id"] for row in rows}

    def get_bookmarks(self, bookmark_ids: Sequence[str]) -> dict[str, BookmarkRecord]:
        unique_ids = list(dict.fromkeys(bookmark_ids))
        results: dict[str, BookmarkRecord] = {}
        with self._reading() as conn:
            for chunk in _chunk_values(unique_ids, 900):
                placeholders = ", ".join("?" for _ in chunk)
                rows = conn.execute(
                    f"SELECT id, title, url FROM bookmark WHERE id IN ({placeholders})",
                    tuple(chunk),
                ).fetchall()
                for row in rows:
                    results[row["id"]] = BookmarkRecord(
                        id=row["id"], title=row["title"], url=row["url"]
                    )
        return results

    def add_bookmark(
        self,
        bookmark: BookmarkRecord,
        chunks: Sequence[tuple[str, np.ndarray]],
    ) -> list[int]:
        """Insert *bookmark* and its ``(chunk_text, embedding)`` pairs atomically."""

        with self.transaction() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO bookmark (id, title, url) VALUES (?, ?, ?)",
                (bookmark.id, bookmark.title, bookmark.url),
            )
            chunk_ids: list[int] = []
            for chunk_text, embedding in chunks:
                cursor = conn.execute(
                    "INSERT INTO chunk (bookmark_id, chunk_text, vector_blob) VALUES (?, ?, ?)",
                    (bookmark.id, chunk_text, _vector_to_blob(embedding)),
                )
                chunk_ids.append(int(cursor.lastrowid))
        return chunk_ids

    def delete_bookmarks(self, bookmark_ids: Sequence[str]) -> int:
        """Delete bookmarks and, through the cascade, all their chunks."""

        unique_ids = list(dict.fromkeys(bookmark_ids))
        if not unique_ids:
            return 0
        deleted = 0
        with self.transaction() as conn:
            for chunk in _chunk_values(unique_ids, 900):
                placeholders = ", ".join("?" for _ in chunk)
                conn.execute(
                    f"DELETE FROM chunk WHERE bookmark_id IN ({placeholders})",
                    tuple(chunk),
                )
                cursor = conn.execute(
                    f"DELETE FROM bookmark WHERE id IN ({placeholders})",
                    tuple(chunk),
                )
                deleted += cursor.rowcount
        return deleted

    def chunks_for_bookmarks(self, bookmark_ids: Sequence[str]) -> list[ChunkRecord]:
        unique_ids = list(dict.fromkeys(bookmark_ids))
        records: list[ChunkRecord] = []
        with self._reading() as conn:
            for chunk in _chunk_values(unique_ids, 900):
                placeholders = ", ".join("?" for _ in chunk)
                rows = conn.execute(
                    f"""
                    SELECT id, bookmark_id, chunk_text, vector_blob
                    FROM chunk
                    WHERE bookmark_id IN ({placeholders})
                    ORDER BY id ASC
                    """,
                    tuple(chunk),
                ).fetchall()
                for row in rows:
                    records.append(
                        ChunkRecord(
                            chunk_id=int(row["id"]),
                            bookmark_id=row["bookmark_id"],
                            chunk_text=row["chunk_text"],
                            embedding=_vector_from_blob(row["vector_blob"]),
                        )
                    )
        return records

    def first_chunk_texts(self, bookmark_ids: Sequence[str]) -> dict[str, str]:
        """Return the earliest stored chunk text for each bookmark id."""

        unique_ids = list(dict.fromkeys(bookmark_ids))
        results: dict[str, str] = {}
        with self._reading() as conn:
            for chunk in _chunk_values(unique_ids, 900):
                placeholders = ", ".join("?" for _ in chunk)
                rows = conn.execute(
                    f"""
                    SELECT c.bookmark_id, c.chunk_text
                    FROM chunk AS c
                    JOIN (
                        SELECT bookmark_id, MIN(id) AS first_id
                        FROM chunk
                        WHERE bookmark_id IN ({placeholders})
                        GROUP BY bookmark_id
                    ) AS f ON f.first_id = c.id
                    """,
                    tuple(chunk),
                ).fetchall()
                for row in rows:
                    results[row["bookmark_id"]] = row["chunk_text"]
        return results

    def iter_indexed_rows(
        self, batch_size: int = 1000, *, dimension: int | None = None
    ) -> Iterator[list[IndexedRow]]:
        """Stream every chunk embedding joined with its bookmark, *batch_size* at a time.

        With *dimension* set, chunks embedded at any other width are skipped.
        """

        width_clause, width_params = _width_filter(dimension)
        last_id = 0
        while True:
            with self._reading() as conn:
                rows = conn.execute(
                    """
                    SELECT c.id, c.bookmark_id, c.vector_blob, b.title, b.url
                    FROM chunk AS c
                    JOIN bookmark AS b ON b.id = c.bookmark_id
                    WHERE c.id > ?{width_clause}
                    ORDER BY c.id ASC
                    LIMIT ?
                    """.format(width_clause=width_clause),
                    (last_id, *width_params, batch_size),
                ).fetchall()
            if not rows:
                return
            last_id = int(rows[-1]["id"])
            yield [
                IndexedRow(
                    bookmark_id=row["bookmark_id"],
                    title=row["title"],
                    url=row["url"],
                    embedding=_vector_from_blob(row["vector_blob"]),
                )
                for row in rows
            ]

    def iter_chunk_batches(self, batch_size: int = 1000) -> Iterator[list[ChunkRecord]]:
        """Stream every chunk record in insertion order, *batch_size* at a time."""

        last_id = 0
        while True:
            with self._reading() as conn:
                rows = conn.execute(
                    """
                    SELECT id, bookmark_id, chunk_text, vector_blob
                    FROM chunk
                    WHERE id > ?
                    ORDER BY id ASC
                    LIMIT ?
                    """,
                    (last_id, batch_size),
                ).fetchall()
            if not rows:
                return
            last_id = int(rows[-1]["id"])
            yield [
                ChunkRecord(
                    chunk_id=int(row["id"]),
                    bookmark_id=row["bookmark_id"],
                    chunk_text=row["chunk_text"],
                    embedding=_vector_from_blob(row["vector_blob"]),
                )
                for row in rows
            ]

    def chunk_id_counts(self, *, dimension: int | None = None) -> dict[str, int]:
        """Return the number of stored chunks per bookmark id."""

        width_clause, width_params = _width_filter(dimension)
        with self._reading() as conn:
            rows = conn.execute(
                "SELECT bookmark_id, COUNT(*) AS total FROM chunk AS c"
                f" WHERE c.id > 0{width_clause} GROUP BY bookmark_id",
                width_params,
            ).fetchall()
        return {row["bookmark_id"]: int(row["total"]) for row in rows}

    def latest_embedding_dimension(self) -> int | None:
        """Return the width of the most recently stored chunk embedding."""

        with self._reading() as conn:
            row = conn.execute(
                "SELECT length(vector_blob) AS size FROM chunk ORDER BY id DESC LIMIT 1"
            ).fetchone()
        if row is None:
            return None
        return int(row["size"]) // FLOAT_BYTES

    def count_bookmarks(self) -> int:
        with self._reading() as conn:
            row = conn.execute("SELECT COUNT(*) AS total FROM bookmark").fetchone()
        return int(row["total"] if row is not None else 0)

    def count_chunks(self) -> int:
        with self._reading() as conn:
            row = conn.execute("SELECT COUNT(*) AS total FROM chunk").fetchone()
        return int(row["total"] if row is not None else 0)

    # -- index snapshot -------------------------------------------------------

    def load_snapshot(self) -> bytes | None:
        with self._reading() as conn:
            row = conn.execute(
                "SELECT blob FROM index_snapshot WHERE key = ?",
                (SNAPSHOT_KEY,),
            ).fetchone()
        if row is None or not row["blob"]:
            return None
        return bytes(row["blob"])

    def store_snapshot(self, blob: bytes) -> None:
        with self.transaction() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO index_snapshot (key, blob) VALUES (?, ?)",
                (SNAPSHOT_KEY, sqlite3.Binary(blob)),
            )

    def delete_snapshot(self) -> None:
        with self.transaction() as conn:
            conn.execute("DELETE FROM index_snapshot WHERE key = ?", (SNAPSHOT_KEY,))

    # -- settings -------------------------------------------------------------

    def get_setting(self, key: str, default=None):
        with self._reading() as conn:
            row = conn.execute(
                "SELECT value FROM settings WHERE key = ?",
                (key,),
            ).fetchone()
        if row is None:
            return default
        return json.loads(row["value"])

    def set_setting(self, key: str, value) -> None:
        with self.transaction() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
                (key, json.dumps(value)),
            )

    def indexed_folders(self) -> list[str]:
        return list(self.get_setting(INDEXED_FOLDERS_KEY, []) or [])

    def set_indexed_folders(self, folder_ids: Sequence[str]) -> None:
        self.set_setting(INDEXED_FOLDERS_KEY, list(dict.fromkeys(folder_ids)))

    def embedding_model(self) -> str | None:
        return self.get_setting(EMBEDDING_MODEL_KEY)

    def set_embedding_model(self, signature: str) -> None:
        self.set_setting(EMBEDDING_MODEL_KEY, signature)

    # -- reset ----------------------------------------------------------------

    def clear_all(self) -> None:
        """Delete the database file and recreate an empty schema."""

        db_path = self.db_path
        self.close()
        if db_path.exists():
            db_path.unlink()
        for suffix in ("-wal", "-shm"):
            sidecar = Path(f"{db_path}{suffix}")
            if sidecar.exists():
                sidecar.unlink()
        logger.info("Removed store at %s", db_path)
        self.open()
