"""
Storage Engine — SQLite store for normalized items, embeddings and config.

Owns the schema (via :mod:`commdash.storage.migrations`) and is the only
component that mutates rows.  Every write goes through :meth:`transaction`,
which wraps the work in ``BEGIN IMMEDIATE … COMMIT`` and rolls back on any
failure, translating SQLite errors into the package taxonomy:

    sqlite3.IntegrityError  →  ConstraintError
    other sqlite3.Error     →  StorageError

The full-text index ``items_fts`` is maintained by hand inside the same
transaction as the ``items`` row it mirrors, so a committed item is always
searchable and a search hit always points at a live item.

Concurrency
-----------
Writers are serialized by one lock: concurrent :meth:`upsert_items` calls
queue.  File-backed databases run in WAL mode with one read-only connection
per thread, so readers proceed during a write and see the last committed
state.  ``":memory:"`` databases have a single connection; readers take the
same lock and therefore see either the pre- or post-transaction state.

Usage::

    engine = StorageEngine(":memory:")
    engine.initialize()
    engine.upsert_items([Item("slack:1", "hi", "hello world")])
    hits = engine.search("hello")
    engine.close()
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

import numpy as np

from commdash.errors import ConstraintError, NotInitializedError, StorageError
from commdash.models import ConfigEntry, Embedding, Item, ItemRecord, UpsertSummary
from commdash.storage.migrations import applied_versions, migrate

logger = logging.getLogger(__name__)

MEMORY = ":memory:"

_PROVIDER_CLAUSE = (
    "instr(items.source_key, ':') > 0 "
    "AND substr(items.source_key, 1, instr(items.source_key, ':') - 1) = ?"
)


def fts_phrase(term: str) -> str:
    """Quote *term* as a single FTS5 phrase so user input is never parsed as syntax."""
    return '"' + term.strip().replace('"', '""') + '"'


def vector_to_blob(vector: Any) -> bytes:
    """Encode an embedding vector for storage.

    ``bytes``-like input is stored as-is; anything else is converted to a
    1-D little-endian float32 array.
    """
    if isinstance(vector, (bytes, bytearray, memoryview)):
        return bytes(vector)
    arr = np.asarray(vector, dtype="<f4")
    if arr.ndim != 1:
        raise ValueError(f"Embedding vector must be 1-D, got shape {arr.shape}")
    return arr.tobytes()


class StorageEngine:
    """SQLite-backed item store with synchronized FTS5 index.

    Parameters
    ----------
    db_path : str | Path
        Path to the SQLite file, or ``":memory:"`` (default).
    busy_timeout_ms : int
        How long a connection waits on a locked database before failing.
    """

    def __init__(
        self,
        db_path: str | Path = MEMORY,
        *,
        busy_timeout_ms: int = 5000,
    ) -> None:
        if str(db_path) == MEMORY:
            self._db_path = MEMORY
        else:
            self._db_path = str(Path(str(db_path)).expanduser())
        self._busy_timeout_ms = int(busy_timeout_ms)

        self._conn: Optional[sqlite3.Connection] = None
        self._write_lock = threading.RLock()
        self._init_lock = threading.Lock()

        self._local = threading.local()
        self._readers: List[sqlite3.Connection] = []
        self._readers_lock = threading.Lock()
        self._generation = 0

    # ── state ─────────────────────────────────────────────────

    @property
    def db_path(self) -> str:
        return self._db_path

    @property
    def in_memory(self) -> bool:
        return self._db_path == MEMORY

    @property
    def is_initialized(self) -> bool:
        return self._conn is not None

    # ── connection helpers ────────────────────────────────────

    def _connect(self, *, read_only: bool = False) -> sqlite3.Connection:
        try:
            if not self.in_memory:
                Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                self._db_path,
                isolation_level=None,
                check_same_thread=False,
                timeout=self._busy_timeout_ms / 1000,
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys=ON")
            conn.execute(f"PRAGMA busy_timeout={self._busy_timeout_ms}")
            if not self.in_memory:
                conn.execute("PRAGMA journal_mode=WAL")
            if read_only:
                conn.execute("PRAGMA query_only=ON")
        except (sqlite3.Error, OSError) as exc:
            raise StorageError(f"Cannot open database {self._db_path}: {exc}") from exc
        return conn

    def _require(self, operation: str) -> sqlite3.Connection:
        conn = self._conn
        if conn is None:
            raise NotInitializedError(operation)
        return conn

    def _thread_reader(self) -> sqlite3.Connection:
        reader = getattr(self._local, "conn", None)
        if reader is None or getattr(self._local, "generation", -1) != self._generation:
            reader = self._connect(read_only=True)
            self._local.conn = reader
            self._local.generation = self._generation
            with self._readers_lock:
                self._readers.append(reader)
        return reader

    @staticmethod
    def _rollback(conn: sqlite3.Connection) -> None:
        if conn.in_transaction:
            conn.execute("ROLLBACK")

    @contextmanager
    def _reader(self, operation: str) -> Iterator[sqlite3.Connection]:
        conn = self._require(operation)
        try:
            if self.in_memory:
                with self._write_lock:
                    yield conn
            else:
                yield self._thread_reader()
        except sqlite3.Error as exc:
            raise StorageError(f"{operation} failed: {exc}") from exc

    # ── lifecycle ─────────────────────────────────────────────

    def initialize(self) -> int:
        """Open the database and apply pending migrations.

        Idempotent and thread-safe: calling it again (from any thread, or
        from another engine on the same file) applies nothing twice.

        Returns the schema version.
        """
        with self._init_lock:
            fresh = self._conn is None
            conn = self._connect() if fresh else self._conn
            try:
                with self._write_lock:
                    version = migrate(conn)
            except (sqlite3.Error, ValueError) as exc:
                if fresh:
                    conn.close()
                raise StorageError(f"Migration failed: {exc}") from exc
            self._conn = conn
        logger.info("[storage] Ready at %s (schema v%d)", self._db_path, version)
        return version

    def close(self) -> None:
        """Close all connections.  The engine returns to the uninitialized state."""
        with self._init_lock, self._write_lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
            with self._readers_lock:
                for reader in self._readers:
                    reader.close()
                self._readers.clear()
            self._generation += 1

    def __enter__(self) -> "StorageEngine":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # ── transactions ──────────────────────────────────────────

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block inside one write transaction.

        Commits on normal exit and rolls back on any exception.  SQLite
        errors are re-raised as :class:`ConstraintError` or
        :class:`StorageError`; other exceptions propagate unchanged.
        """
        conn = self._require("transaction")
        with self._write_lock:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as exc:
                raise StorageError(f"Cannot begin transaction: {exc}") from exc
            try:
                yield conn
                conn.execute("COMMIT")
            except sqlite3.IntegrityError as exc:
                self._rollback(conn)
                raise ConstraintError(str(exc)) from exc
            except sqlite3.Error as exc:
                self._rollback(conn)
                raise StorageError(str(exc)) from exc
            except BaseException:
                self._rollback(conn)
                raise

    # ── items: writes ─────────────────────────────────────────

    def upsert_items(
        self,
        items: Iterable[Item],
        *,
        config: Optional[Mapping[str, Any]] = None,
    ) -> UpsertSummary:
        """Insert or update *items* keyed by ``source_key``, all-or-nothing.

        New keys are inserted with ``created_at == updated_at``; existing
        keys get ``title``, ``content`` and ``updated_at`` overwritten.  The
        FTS row of every touched item is replaced in the same transaction.
        Optional *config* entries are written in that transaction too.
        """
        batch = list(items)
        summary = UpsertSummary()
        now = time.time()

        with self.transaction() as conn:
            for item in batch:
                row = conn.execute(
                    "SELECT id FROM items WHERE source_key = ?", (item.source_key,)
                ).fetchone()
                if row is None:
                    cur = conn.execute(
                        """INSERT INTO items
                           (source_key, title, content, created_at, updated_at)
                           VALUES (?, ?, ?, ?, ?)""",
                        (item.source_key, item.title, item.content, now, now),
                    )
                    item_id = int(cur.lastrowid)
                    summary.inserted += 1
                else:
                    item_id = int(row["id"])
                    conn.execute(
                        "UPDATE items SET title = ?, content = ?, updated_at = ? WHERE id = ?",
                        (item.title, item.content, now, item_id),
                    )
                    summary.updated += 1
                self._index(conn, item_id, item.title, item.content)
                summary.ids.append(item_id)

            for key, value in (config or {}).items():
                self._write_config(conn, key, value, now)

        logger.debug(
            "[storage] Upserted %d items (%d new, %d updated)",
            summary.total, summary.inserted, summary.updated,
        )
        return summary

    def insert_item(self, item: Item) -> int:
        """Plain insert.  A duplicate ``source_key`` raises :class:`ConstraintError`."""
        now = time.time()
        with self.transaction() as conn:
            cur = conn.execute(
                """INSERT INTO items
                   (source_key, title, content, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (item.source_key, item.title, item.content, now, now),
            )
            item_id = int(cur.lastrowid)
            self._index(conn, item_id, item.title, item.content)
        return item_id

    def delete_item(self, item_id: int) -> bool:
        """Delete an item, its index row and (by cascade) its embeddings."""
        with self.transaction() as conn:
            conn.execute("DELETE FROM items_fts WHERE rowid = ?", (item_id,))
            cur = conn.execute("DELETE FROM items WHERE id = ?", (item_id,))
            deleted = cur.rowcount > 0
        if deleted:
            logger.debug("[storage] Deleted item id=%d", item_id)
        return deleted

    def rebuild_index(self) -> int:
        """Repopulate ``items_fts`` from ``items``.  Returns rows indexed."""
        with self.transaction() as conn:
            conn.execute("DELETE FROM items_fts")
            conn.execute(
                "INSERT INTO items_fts (rowid, title, content) "
                "SELECT id, title, content FROM items"
            )
            count = conn.execute("SELECT COUNT(*) FROM items_fts").fetchone()[0]
        logger.info("[storage] Rebuilt search index: %d rows", count)
        return int(count)

    # ── items: reads ──────────────────────────────────────────

    def get_item(self, item_id: int) -> Optional[ItemRecord]:
        with self._reader("get_item") as conn:
            row = conn.execute("SELECT * FROM items WHERE id = ?", (item_id,)).fetchone()
        return self._row_to_item(row) if row else None

    def get_item_by_key(self, source_key: str) -> Optional[ItemRecord]:
        with self._reader("get_item_by_key") as conn:
            row = conn.execute(
                "SELECT * FROM items WHERE source_key = ?", (source_key,)
            ).fetchone()
        return self._row_to_item(row) if row else None

    def count_items(self, provider: Optional[str] = None) -> int:
        sql = "SELECT COUNT(*) FROM items"
        params: Tuple[Any, ...] = ()
        if provider is not None:
            sql += " WHERE " + _PROVIDER_CLAUSE
            params = (provider,)
        with self._reader("count_items") as conn:
            return int(conn.execute(sql, params).fetchone()[0])

    def query(
        self,
        *,
        provider: Optional[str] = None,
        updated_since: Optional[float] = None,
        text: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[ItemRecord]:
        """List items with optional filters, most recently updated first.

        *text* is a plain substring filter on title/content; use
        :meth:`search` for full-text matching.
        """
        clauses: List[str] = []
        params: List[Any] = []

        if provider is not None:
            clauses.append(_PROVIDER_CLAUSE)
            params.append(provider)
        if updated_since is not None:
            clauses.append("items.updated_at >= ?")
            params.append(float(updated_since))
        if text:
            clauses.append("(items.title LIKE ? OR items.content LIKE ?)")
            pattern = f"%{text}%"
            params.extend([pattern, pattern])

        where = (" WHERE " + " AND ".join(clauses)) if clauses else ""
        sql = (
            f"SELECT * FROM items{where} "
            "ORDER BY items.updated_at DESC, items.id DESC LIMIT ? OFFSET ?"
        )
        params.extend([int(limit), int(offset)])

        with self._reader("query") as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._row_to_item(r) for r in rows]

    def search(self, term: str, *, limit: int = 50) -> List[ItemRecord]:
        """Full-text search over title and content, best match first.

        *term* is matched as one phrase.  A blank term returns ``[]``.
        """
        if not (term or "").strip():
            return []
        sql = (
            "SELECT items.* FROM items_fts "
            "JOIN items ON items.id = items_fts.rowid "
            "WHERE items_fts MATCH ? "
            "ORDER BY bm25(items_fts), items.updated_at DESC "
            "LIMIT ?"
        )
        with self._reader("search") as conn:
            rows = conn.execute(sql, (fts_phrase(term), int(limit))).fetchall()
        return [self._row_to_item(r) for r in rows]

    # ── config ────────────────────────────────────────────────

    def set_config(self, key: str, value: Any) -> None:
        """Insert or replace the value stored under *key*."""
        with self.transaction() as conn:
            self._write_config(conn, key, value, time.time())

    def get_config(self, key: str, default: Optional[str] = None) -> Optional[str]:
        entry = self.get_config_entry(key)
        return entry.value if entry is not None else default

    def get_config_entry(self, key: str) -> Optional[ConfigEntry]:
        with self._reader("get_config") as conn:
            row = conn.execute(
                "SELECT * FROM config_versions WHERE key = ?", (key,)
            ).fetchone()
        return self._row_to_config(row) if row else None

    def list_config(self, prefix: str = "") -> List[ConfigEntry]:
        with self._reader("list_config") as conn:
            rows = conn.execute(
                "SELECT * FROM config_versions WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(prefix), prefix),
            ).fetchall()
        return [self._row_to_config(r) for r in rows]

    # ── embeddings ────────────────────────────────────────────

    def attach_embedding(self, item_id: int, vector: Any, model_version: str) -> int:
        """Store *vector* for *item_id* under *model_version*; returns the row id.

        Re-attaching the same model version replaces the vector.  An unknown
        *item_id* raises :class:`ConstraintError` and writes nothing.
        """
        if not model_version:
            raise ValueError("model_version must not be empty")
        blob = vector_to_blob(vector)
        with self.transaction() as conn:
            conn.execute(
                """INSERT INTO embeddings (item_id, vector, model_version, created_at)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT(item_id, model_version)
                   DO UPDATE SET vector = excluded.vector, created_at = excluded.created_at""",
                (item_id, blob, model_version, time.time()),
            )
            row = conn.execute(
                "SELECT id FROM embeddings WHERE item_id = ? AND model_version = ?",
                (item_id, model_version),
            ).fetchone()
        return int(row["id"])

    def embeddings_for(self, item_id: int) -> List[Embedding]:
        with self._reader("embeddings_for") as conn:
            rows = conn.execute(
                "SELECT * FROM embeddings WHERE item_id = ? ORDER BY model_version",
                (item_id,),
            ).fetchall()
        return [self._row_to_embedding(r) for r in rows]

    def embeddings_by_model(self, model_version: str) -> List[Embedding]:
        with self._reader("embeddings_by_model") as conn:
            rows = conn.execute(
                "SELECT * FROM embeddings WHERE model_version = ? ORDER BY item_id",
                (model_version,),
            ).fetchall()
        return [self._row_to_embedding(r) for r in rows]

    def iter_embeddings(self, model_version: str) -> Iterator[Embedding]:
        """Yield every stored embedding of *model_version*, by item id."""
        yield from self.embeddings_by_model(model_version)

    def items_without_embedding(self, model_version: str, *, limit: int = 500) -> List[ItemRecord]:
        with self._reader("items_without_embedding") as conn:
            rows = conn.execute(
                """SELECT items.* FROM items
                   WHERE NOT EXISTS (
                       SELECT 1 FROM embeddings
                       WHERE embeddings.item_id = items.id
                         AND embeddings.model_version = ?
                   )
                   ORDER BY items.id LIMIT ?""",
                (model_version, int(limit)),
            ).fetchall()
        return [self._row_to_item(r) for r in rows]

    # ── introspection ─────────────────────────────────────────

    def applied_migrations(self) -> List[Tuple[int, str]]:
        with self._reader("applied_migrations") as conn:
            return applied_versions(conn)

    def stats(self) -> Dict[str, Any]:
        """Return basic store statistics."""
        with self._reader("stats") as conn:
            total = conn.execute("SELECT COUNT(*) FROM items").fetchone()[0]
            by_provider = {
                row[0]: row[1]
                for row in conn.execute(
                    "SELECT substr(source_key, 1, instr(source_key, ':') - 1) AS provider, "
                    "COUNT(*) FROM items GROUP BY provider"
                ).fetchall()
            }
            embeddings = conn.execute("SELECT COUNT(*) FROM embeddings").fetchone()[0]
            config = conn.execute("SELECT COUNT(*) FROM config_versions").fetchone()[0]
            versions = applied_versions(conn)

        return {
            "items": total,
            "by_provider": by_provider,
            "embeddings": embeddings,
            "config_entries": config,
            "schema_version": versions[-1][0] if versions else 0,
            "db_path": self._db_path,
        }

    # ── private helpers ───────────────────────────────────────

    @staticmethod
    def _index(conn: sqlite3.Connection, item_id: int, title: str, content: str) -> None:
        conn.execute("DELETE FROM items_fts WHERE rowid = ?", (item_id,))
        conn.execute(
            "INSERT INTO items_fts (rowid, title, content) VALUES (?, ?, ?)",
            (item_id, title, content),
        )

    @staticmethod
    def _write_config(conn: sqlite3.Connection, key: str, value: Any, now: float) -> None:
        conn.execute(
            """INSERT INTO config_versions (key, value, updated_at) VALUES (?, ?, ?)
               ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                              updated_at = excluded.updated_at""",
            (key, str(value), now),
        )

    @staticmethod
    def _row_to_item(row: sqlite3.Row) -> ItemRecord:
        return ItemRecord(
            id=int(row["id"]),
            source_key=row["source_key"],
            title=row["title"],
            content=row["content"],
            created_at=float(row["created_at"]),
            updated_at=float(row["updated_at"]),
        )

    @staticmethod
    def _row_to_config(row: sqlite3.Row) -> ConfigEntry:
        return ConfigEntry(
            id=int(row["id"]),
            key=row["key"],
            value=row["value"],
            updated_at=float(row["updated_at"]),
        )

    @staticmethod
    def _row_to_embedding(row: sqlite3.Row) -> Embedding:
        return Embedding(
            id=int(row["id"]),
            item_id=int(row["item_id"]),
            vector=bytes(row["vector"]),
            model_version=row["model_version"],
            created_at=float(row["created_at"]),
        )
