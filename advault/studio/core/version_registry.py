"""
Master/version grouping for library assets.

An asset is either a MASTER (``master_id IS NULL``) or a VERSION pointing at
exactly one master.  Every operation here normalises the store to at most one
hop and runs inside a single ``BEGIN IMMEDIATE`` transaction.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import asdict
from pathlib import Path
from typing import List, Optional

from advault.core.errors import GroupError, StorageError
from advault.studio.core.base_registry import SELECT_ASSET, BaseRegistry
from advault.studio.core.models import Asset

LOGGER = logging.getLogger(__name__)

CLONED_FIELDS = ("year", "advertiser", "niche", "share_count")


class VersionRegistry(BaseRegistry):
    # ---------------------
    # Internal helpers
    # ---------------------
    @staticmethod
    def next_version_number(conn: sqlite3.Connection, master_id: int) -> int:
        """``1 + max(version numbers in the group)``; the master counts as 1."""
        row = conn.execute(
            "SELECT COALESCE(MAX(version_number), 1) FROM assets WHERE master_id = ?",
            (master_id,),
        ).fetchone()
        return max(int(row[0]), 1) + 1

    def _require_master(self, conn: sqlite3.Connection, asset_id: int) -> Asset:
        asset = self.load_asset(conn, asset_id)
        if not asset.is_master:
            raise GroupError(
                f"Asset {asset_id} is a version of {asset.master_id}, not a master.",
                asset_id=asset_id,
            )
        return asset

    def _require_version(self, conn: sqlite3.Connection, asset_id: int) -> Asset:
        asset = self.load_asset(conn, asset_id)
        if asset.is_master:
            raise GroupError(
                f"Asset {asset_id} is not part of a version group.",
                asset_id=asset_id,
            )
        return asset

    # ---------------------
    # Grouping operations
    # ---------------------
    def add_to_group(self, candidate_id: int, master_id: int) -> Asset:
        """Attach the master ``candidate_id`` (and its versions) to ``master_id``."""

        if candidate_id == master_id:
            raise GroupError(
                "An asset cannot be added to its own group.", asset_id=candidate_id
            )
        with self.transaction() as conn:
            self._require_master(conn, candidate_id)
            self._require_master(conn, master_id)
            next_number = self.next_version_number(conn, master_id)
            conn.execute(
                "UPDATE assets SET master_id = ?, version_number = ? WHERE id = ?",
                (master_id, next_number, candidate_id),
            )
            # the candidate's own versions move with it so no chain can form
            moved = conn.execute(
                "SELECT id FROM assets WHERE master_id = ? "
                "ORDER BY version_number ASC, id ASC",
                (candidate_id,),
            ).fetchall()
            for row in moved:
                next_number += 1
                conn.execute(
                    "UPDATE assets SET master_id = ?, version_number = ? WHERE id = ?",
                    (master_id, next_number, row["id"]),
                )
            asset = self.load_asset(conn, candidate_id)
        LOGGER.info(
            "Added asset %s to group %s as v%s (%d re-pointed)",
            candidate_id,
            master_id,
            asset.version_number,
            len(moved),
        )
        return asset

    def remove_from_group(self, version_id: int) -> Asset:
        with self.transaction() as conn:
            version = self._require_version(conn, version_id)
            conn.execute(
                "UPDATE assets SET master_id = NULL, version_number = 1 WHERE id = ?",
                (version_id,),
            )
            asset = self.load_asset(conn, version_id)
        LOGGER.info("Removed asset %s from group %s", version_id, version.master_id)
        return asset

    def promote(self, version_id: int) -> Asset:
        """Make ``version_id`` the master of its group.

        The promoted asset takes ``(None, 1)``, every sibling and the previous
        master point at it, and the previous master receives the next version
        number of the new group.  Sibling version numbers are left unchanged.
        """

        with self.transaction() as conn:
            version = self._require_version(conn, version_id)
            old_master_id = int(version.master_id)
            conn.execute(
                "UPDATE assets SET master_id = NULL, version_number = 1 WHERE id = ?",
                (version_id,),
            )
            conn.execute(
                "UPDATE assets SET master_id = ? WHERE master_id = ?",
                (version_id, old_master_id),
            )
            next_number = self.next_version_number(conn, version_id)
            conn.execute(
                "UPDATE assets SET master_id = ?, version_number = ? WHERE id = ?",
                (version_id, next_number, old_master_id),
            )
            asset = self.load_asset(conn, version_id)
        LOGGER.info(
            "Promoted asset %s over %s (old master is now v%s)",
            version_id,
            old_master_id,
            next_number,
        )
        return asset

    def create_version(self, master_id: int, source_path: Path | str) -> Asset:
        """Import ``source_path`` as the next version of ``master_id``.

        Metadata (year, advertiser, niche, share count) is cloned from the
        master.  The copied vault file is removed again if the insert fails.
        """

        with self.connection() as conn:
            self._require_master(conn, master_id)
        vault = self.runtime.vault
        vault_file = vault.import_file(source_path)
        try:
            with self.transaction() as conn:
                master = self._require_master(conn, master_id)
                fields = asdict(vault_file)
                fields.update({name: getattr(master, name) for name in CLONED_FIELDS})
                asset = self.insert_asset(
                    conn,
                    fields,
                    master_id=master_id,
                    version_number=self.next_version_number(conn, master_id),
                )
        except Exception:
            try:
                vault.remove(vault_file.storage_path)
            except StorageError as cleanup_exc:
                LOGGER.error(
                    "Failed to clean up %s after version error: %s",
                    vault_file.storage_path,
                    cleanup_exc,
                )
            raise
        LOGGER.info(
            "Created version %s of master %s (v%s)",
            asset.id,
            master_id,
            asset.version_number,
        )
        self.runtime.thumbnails.schedule(asset.id, vault.resolve(asset.storage_path))
        return asset

    # ---------------------
    # Aggregates
    # ---------------------
    def group_members(self, master_id: int) -> List[Asset]:
        """The master followed by its versions, newest version number first."""
        with self.connection() as conn:
            master = self._require_master(conn, master_id)
            rows = conn.execute(
                f"{SELECT_ASSET} WHERE master_id = ? ORDER BY version_number DESC, id ASC",
                (master_id,),
            ).fetchall()
        return [master, *(Asset.from_row(row) for row in rows)]

    def accumulated_shares(self, master_id: int) -> Optional[int]:
        members = self.group_members(master_id)
        master, versions = members[0], members[1:]
        if not versions and master.share_count is None:
            return None
        return sum(member.share_count or 0 for member in members)

    def version_count(self, master_id: int) -> int:
        with self.connection() as conn:
            self._require_master(conn, master_id)
            row = conn.execute(
                "SELECT COUNT(*) FROM assets WHERE master_id = ?", (master_id,)
            ).fetchone()
        return 1 + int(row[0])
