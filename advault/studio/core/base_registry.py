"""
Shared SQLite access helpers for the library registries.

The goal is to provide a single, centralised location where all library
components obtain their database connections.  Higher-level registries
subclass :class:`BaseRegistry` and implement domain-specific helpers.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Generator, Iterable, Mapping, Optional

from advault.core.errors import NotFoundError, ValidationError
from advault.studio.core.models import ASSET_COLUMNS, Asset

if TYPE_CHECKING:
    from advault.core.runtime import LibraryRuntime

SELECT_ASSET = f"SELECT {', '.join(ASSET_COLUMNS)} FROM assets"


class BaseRegistry:
    """Base class for registry objects backed by the runtime's SQLite store."""

    def __init__(self, runtime: "LibraryRuntime"):
        self.runtime = runtime

    @contextmanager
    def connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Yield an autocommit connection for read-only work."""
        conn = self.runtime.connect()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """Yield a connection inside ``BEGIN IMMEDIATE``; roll back on any error."""
        conn = self.runtime.connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    def fetchall(self, sql: str, params: Iterable | None = None) -> list[sqlite3.Row]:
        with self.connection() as conn:
            cur = conn.execute(sql, list(params or []))
            return cur.fetchall()

    def fetchone(
        self, sql: str, params: Iterable | None = None
    ) -> Optional[sqlite3.Row]:
        with self.connection() as conn:
            cur = conn.execute(sql, list(params or []))
            return cur.fetchone()

    @staticmethod
    def load_asset(conn: sqlite3.Connection, asset_id: int) -> Asset:
        """Read one asset on ``conn`` or raise :class:`NotFoundError`."""
        row = conn.execute(f"{SELECT_ASSET} WHERE id = ?", (asset_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Asset {asset_id} not found.", asset_id=asset_id)
        return Asset.from_row(row)

    @staticmethod
    def insert_asset(
        conn: sqlite3.Connection,
        fields: Mapping[str, Any],
        *,
        master_id: Optional[int] = None,
        version_number: int = 1,
    ) -> Asset:
        """Insert a row on ``conn`` and return it; the caller owns the transaction."""
        try:
            cur = conn.execute(
                """
                INSERT INTO assets (
                    file_name, storage_path, mime_type, size_bytes, created_at,
                    year, advertiser, niche, share_count, master_id, version_number
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    fields["file_name"],
                    fields["storage_path"],
                    fields["mime_type"],
                    fields["size_bytes"],
                    fields.get("created_at") or utc_timestamp(),
                    fields.get("year"),
                    fields.get("advertiser"),
                    fields.get("niche"),
                    fields.get("share_count"),
                    master_id,
                    version_number,
                ),
            )
        except sqlite3.IntegrityError as exc:
            raise ValidationError(
                f"Cannot store asset at {fields['storage_path']!r}: {exc}"
            ) from exc
        return BaseRegistry.load_asset(conn, int(cur.lastrowid))


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision (``...Z``)."""
    now = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    return now.replace("+00:00", "Z")
