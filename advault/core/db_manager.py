"""
Database manager utilities for the Ad Vault SQLite store.

The goal of this module is to centralise schema management.  It exposes a
small helper that applies the canonical tables, indexes and column patches
idempotently, so libraries created before asset versioning existed pick up
the ``master_id`` / ``version_number`` columns on first open.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Sequence

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ColumnPatch:
    """Represents an optional column addition to keep a table aligned."""

    name: str
    ddl: str


@dataclass(frozen=True)
class TableDefinition:
    """Wrapper describing a table and the DDL required to keep it current."""

    name: str
    create_sql: str
    column_patches: Sequence[ColumnPatch] = ()
    index_sql: Sequence[str] = ()


TABLE_DEFINITIONS: tuple[TableDefinition, ...] = (
    TableDefinition(
        name="assets",
        create_sql="""
            CREATE TABLE IF NOT EXISTS assets (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                file_name TEXT NOT NULL,
                storage_path TEXT NOT NULL UNIQUE,
                mime_type TEXT NOT NULL,
                size_bytes INTEGER NOT NULL,
                created_at TEXT NOT NULL,
                year INTEGER,
                advertiser TEXT,
                niche TEXT,
                share_count INTEGER CHECK (share_count IS NULL OR share_count >= 0),
                master_id INTEGER REFERENCES assets (id) ON DELETE SET NULL,
                version_number INTEGER NOT NULL DEFAULT 1 CHECK (version_number >= 1)
            )
        """,
        column_patches=(
            ColumnPatch("share_count", "INTEGER"),
            ColumnPatch(
                "master_id", "INTEGER REFERENCES assets (id) ON DELETE SET NULL"
            ),
            ColumnPatch("version_number", "INTEGER NOT NULL DEFAULT 1"),
        ),
        index_sql=(
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_assets_storage_path "
            "ON assets (storage_path)",
            "CREATE INDEX IF NOT EXISTS idx_assets_master_version "
            "ON assets (master_id, version_number)",
        ),
    ),
    TableDefinition(
        name="custom_fields",
        create_sql="""
            CREATE TABLE IF NOT EXISTS custom_fields (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                asset_id INTEGER NOT NULL REFERENCES assets (id) ON DELETE CASCADE,
                key TEXT NOT NULL,
                value TEXT
            )
        """,
        index_sql=(
            "CREATE INDEX IF NOT EXISTS idx_custom_fields_asset_id "
            "ON custom_fields (asset_id)",
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_custom_fields_asset_key "
            "ON custom_fields (asset_id, key)",
        ),
    ),
)


class DBManager:
    """Lightweight helper that applies the schema and optional patches."""

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def connect(self) -> sqlite3.Connection:
        """Open a connection with foreign keys enforced and dict-like rows.

        ``isolation_level=None`` leaves transaction control to callers, which
        issue ``BEGIN IMMEDIATE`` for every mutation.
        """
        conn = sqlite3.connect(self.db_path, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON;")
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        return conn

    def ensure_schema(self) -> None:
        """Apply all table definitions, indexes and column patches idempotently."""
        conn = self.connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            for table in TABLE_DEFINITIONS:
                LOGGER.debug("Ensuring table %s", table.name)
                conn.execute(table.create_sql)
                if table.column_patches:
                    self._apply_column_patches(conn, table.name, table.column_patches)
                for statement in table.index_sql:
                    conn.execute(statement)
            conn.execute("COMMIT")
        except sqlite3.Error:
            conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    def existing_tables(self) -> set[str]:
        """Return the set of tables currently present in the database."""
        query = "SELECT name FROM sqlite_master WHERE type='table'"
        conn = self.connect()
        try:
            rows = conn.execute(query).fetchall()
        finally:
            conn.close()
        return {row[0] for row in rows}

    def existing_indexes(self, table_name: str) -> set[str]:
        query = "SELECT name FROM sqlite_master WHERE type='index' AND tbl_name = ?"
        conn = self.connect()
        try:
            rows = conn.execute(query, (table_name,)).fetchall()
        finally:
            conn.close()
        return {row[0] for row in rows}

    def _apply_column_patches(
        self, conn: sqlite3.Connection, table_name: str, patches: Iterable[ColumnPatch]
    ) -> None:
        """Add missing columns to an existing table without clobbering data."""
        cursor = conn.execute(f"PRAGMA table_info({table_name})")
        existing = {row[1] for row in cursor.fetchall()}
        for patch in patches:
            if patch.name in existing:
                continue
            LOGGER.info("Applying column patch %s.%s", table_name, patch.name)
            conn.execute(f"ALTER TABLE {table_name} ADD COLUMN {patch.name} {patch.ddl}")
