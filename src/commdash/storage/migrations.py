"""Versioned schema migrations for the commdash store.

Each migration is a ``(name, sql)`` pair keyed by its target version.
:func:`migrate` applies outstanding migrations in strictly ascending order,
each one inside its own ``BEGIN IMMEDIATE`` transaction together with the
row that records it in ``schema_version``.  A migration is therefore either
fully applied and recorded, or not applied at all, and two connections
racing to migrate the same file never apply a version twice.

Usage::

    conn = sqlite3.connect(path, isolation_level=None)
    version = migrate(conn)
"""

from __future__ import annotations

import logging
import sqlite3
import time
from typing import Dict, Iterator, List, Tuple

logger = logging.getLogger(__name__)

# ── Migration registry — version → (name, SQL) ──────────────────

MIGRATIONS: Dict[int, Tuple[str, str]] = {
    1: (
        "initial_schema",
        """
        CREATE TABLE IF NOT EXISTS items (
            id          INTEGER PRIMARY KEY AUTOINCREMENT,
            title       TEXT NOT NULL CHECK (length(title) > 0),
            content     TEXT NOT NULL,
            created_at  REAL NOT NULL,
            updated_at  REAL NOT NULL
        );

        CREATE TABLE IF NOT EXISTS embeddings (
            id            INTEGER PRIMARY KEY AUTOINCREMENT,
            item_id       INTEGER NOT NULL
                          REFERENCES items(id) ON DELETE CASCADE,
            vector        BLOB NOT NULL,
            model_version TEXT NOT NULL,
            created_at    REAL NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_embeddings_item ON embeddings(item_id);

        CREATE TABLE IF NOT EXISTS config_versions (
            id          INTEGER PRIMARY KEY AUTOINCREMENT,
            key         TEXT NOT NULL UNIQUE,
            value       TEXT NOT NULL,
            updated_at  REAL NOT NULL
        );

        CREATE VIRTUAL TABLE IF NOT EXISTS items_fts USING fts5(title, content);
        """,
    ),
    2: (
        "item_source_key",
        """
        ALTER TABLE items ADD COLUMN source_key TEXT;
        CREATE UNIQUE INDEX IF NOT EXISTS idx_items_source_key ON items(source_key);
        CREATE INDEX IF NOT EXISTS idx_items_updated ON items(updated_at);

        CREATE TRIGGER IF NOT EXISTS trg_items_source_key_insert
        BEFORE INSERT ON items
        WHEN NEW.source_key IS NULL OR length(NEW.source_key) = 0
        BEGIN
            SELECT RAISE(ABORT, 'items.source_key must not be empty');
        END;

        CREATE TRIGGER IF NOT EXISTS trg_items_source_key_update
        BEFORE UPDATE OF source_key ON items
        WHEN NEW.source_key IS NULL OR length(NEW.source_key) = 0
        BEGIN
            SELECT RAISE(ABORT, 'items.source_key must not be empty');
        END;
        """,
    ),
    3: (
        "embedding_per_model_version",
        """
        CREATE UNIQUE INDEX IF NOT EXISTS idx_embeddings_item_model
            ON embeddings(item_id, model_version);
        """,
    ),
    4: (
        "item_title_not_blank",
        """
        CREATE TRIGGER IF NOT EXISTS trg_items_title_insert
        BEFORE INSERT ON items
        WHEN length(trim(NEW.title)) = 0
        BEGIN
            SELECT RAISE(ABORT, 'items.title must not be blank');
        END;

        CREATE TRIGGER IF NOT EXISTS trg_items_title_update
        BEFORE UPDATE OF title ON items
        WHEN length(trim(NEW.title)) = 0
        BEGIN
            SELECT RAISE(ABORT, 'items.title must not be blank');
        END;
        """,
    ),
}

LATEST_VERSION = max(MIGRATIONS.keys())

_SCHEMA_VERSION_DDL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER PRIMARY KEY,
    name       TEXT NOT NULL,
    applied_at REAL NOT NULL
)
"""


def split_statements(script: str) -> Iterator[str]:
    """Yield complete SQL statements from *script*.

    Uses :func:`sqlite3.complete_statement`, so ``CREATE TRIGGER ... BEGIN
    ...; END;`` bodies stay in one piece.
    """
    buf: List[str] = []
    for line in script.splitlines():
        if not buf and not line.strip():
            continue
        buf.append(line)
        candidate = "\n".join(buf)
        if sqlite3.complete_statement(candidate):
            yield candidate.strip()
            buf = []
    rest = "\n".join(buf).strip()
    if rest:
        raise sqlite3.ProgrammingError(f"Incomplete SQL statement in migration: {rest[:60]!r}")


def applied_versions(conn: sqlite3.Connection) -> List[Tuple[int, str]]:
    """Return ``(version, name)`` for every recorded migration, ascending."""
    try:
        rows = conn.execute(
            "SELECT version, name FROM schema_version ORDER BY version"
        ).fetchall()
    except sqlite3.OperationalError:
        # schema_version doesn't exist yet → nothing applied
        return []
    return [(int(r[0]), str(r[1])) for r in rows]


def current_version(conn: sqlite3.Connection) -> int:
    """Return the highest applied version (0 for a fresh database)."""
    versions = applied_versions(conn)
    return versions[-1][0] if versions else 0


def migrate(
    conn: sqlite3.Connection,
    migrations: Dict[int, Tuple[str, str]] = MIGRATIONS,
) -> int:
    """Apply all outstanding migrations and return the new version.

    Parameters
    ----------
    conn:
        An open SQLite connection in autocommit mode
        (``isolation_level=None``); transactions are managed here.
    migrations:
        Version → ``(name, SQL)`` registry.  Versions must be positive
        integers.

    Returns
    -------
    int
        The schema version after migration.

    Raises
    ------
    sqlite3.Error
        When a migration fails.  The failing migration is rolled back;
        earlier ones stay committed.
    """
    if not migrations:
        return 0
    if any(not isinstance(v, int) or v <= 0 for v in migrations):
        raise ValueError("Migration versions must be positive integers")

    latest = max(migrations)
    conn.execute(_SCHEMA_VERSION_DDL)

    applied = {v for v, _ in applied_versions(conn)}
    newer = [v for v in applied if v not in migrations]
    if newer:
        raise sqlite3.DatabaseError(
            f"Database has migration v{max(newer)} unknown to this build (latest v{latest})"
        )
    if applied.issuperset(migrations):
        logger.debug("[migrate] Schema already at v%d, nothing to do.", latest)
        return latest

    for version in sorted(migrations):
        if version in applied:
            continue
        name, sql = migrations[version]
        conn.execute("BEGIN IMMEDIATE")
        try:
            # Another connection may have applied it while we waited for the lock.
            row = conn.execute(
                "SELECT 1 FROM schema_version WHERE version = ?", (version,)
            ).fetchone()
            if row is not None:
                conn.execute("COMMIT")
                logger.debug("[migrate] v%d already applied elsewhere.", version)
                continue
            logger.info("[migrate] Applying migration v%d (%s) …", version, name)
            for statement in split_statements(sql):
                conn.execute(statement)
            conn.execute(
                "INSERT INTO schema_version (version, name, applied_at) VALUES (?, ?, ?)",
                (version, name, time.time()),
            )
            conn.execute("COMMIT")
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        logger.info("[migrate] Migration v%d applied.", version)

    return current_version(conn)
