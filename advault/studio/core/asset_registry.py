"""
Asset repository for the library.

The database row is the authoritative existence record for an asset.  Vault
files and cached thumbnails are side effects handled outside the database
transaction, so a filesystem failure can never leave a half-updated row.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional

from advault.core.errors import StorageError, ValidationError
from advault.studio.core.base_registry import SELECT_ASSET, BaseRegistry
from advault.studio.core.models import Asset, VaultFile

if TYPE_CHECKING:
    from advault.studio.core.asset_query import AssetFilters, AssetSort

LOGGER = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("file_name", "year", "advertiser", "niche", "share_count")
FIELD_ALIASES = {
    "fileName": "file_name",
    "shares": "share_count",
    "shareCount": "share_count",
}
PROTECTED_FIELDS = frozenset(
    {
        "id",
        "storage_path",
        "mime_type",
        "size_bytes",
        "created_at",
        "master_id",
        "version_number",
    }
)
REQUIRED_FIELDS = ("file_name", "storage_path", "mime_type", "size_bytes")


def _coerce_int(field: str, value: Any, *, minimum: int, maximum: Optional[int] = None):
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer, got {value!r}.")
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            value = int(text, 10)
        except ValueError as exc:
            raise ValidationError(f"{field} must be an integer, got {text!r}.") from exc
    elif isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"{field} must be a whole number, got {value!r}.")
        value = int(value)
    elif not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer, got {value!r}.")
    if value < minimum or (maximum is not None and value > maximum):
        raise ValidationError(f"{field} is out of range: {value}.")
    return value


def _coerce_text(field: str, value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string, got {value!r}.")
    return value.strip() or None


def normalise_updates(updates: Mapping[str, Any]) -> Dict[str, Any]:
    """Validate a partial update against the whitelist and coerce its values."""

    normalised: Dict[str, Any] = {}
    for raw_key, value in dict(updates or {}).items():
        key = FIELD_ALIASES.get(raw_key, raw_key)
        if key in PROTECTED_FIELDS:
            raise ValidationError(f"Field {raw_key!r} cannot be updated directly.")
        if key not in UPDATABLE_FIELDS:
            raise ValidationError(f"Unknown asset field {raw_key!r}.")
        if key == "file_name":
            text = _coerce_text(key, value)
            if not text:
                raise ValidationError("file_name cannot be empty.")
            normalised[key] = text
        elif key == "year":
            normalised[key] = _coerce_int(key, value, minimum=1, maximum=9999)
        elif key == "share_count":
            normalised[key] = _coerce_int(key, value, minimum=0)
        else:
            normalised[key] = _coerce_text(key, value)
    return normalised


def normalise_custom_fields(
    custom_fields: Optional[Mapping[str, Any]],
) -> Dict[str, Optional[str]]:
    normalised: Dict[str, Optional[str]] = {}
    for key, value in dict(custom_fields or {}).items():
        name = str(key).strip() if key is not None else ""
        if not name:
            raise ValidationError("Custom field keys cannot be empty.")
        if value is None or (isinstance(value, str) and not value.strip()):
            normalised[name] = None
        else:
            normalised[name] = str(value)
    return normalised


class AssetRegistry(BaseRegistry):
    # ---------------------
    # Core CRUD
    # ---------------------
    def create(self, record: Mapping[str, Any] | VaultFile) -> Asset:
        """Insert a new master row (``master_id=None``, ``version_number=1``)."""

        fields = dict(asdict(record) if isinstance(record, VaultFile) else record)
        missing = [
            name
            for name in REQUIRED_FIELDS
            if fields.get(name) is None or str(fields.get(name)).strip() == ""
        ]
        if missing:
            raise ValidationError(f"Missing required asset fields: {', '.join(missing)}")
        size = _coerce_int("size_bytes", fields["size_bytes"], minimum=0)
        metadata = normalise_updates(
            {key: fields[key] for key in UPDATABLE_FIELDS if key in fields}
        )
        fields.update(metadata)
        fields["size_bytes"] = size

        with self.transaction() as conn:
            asset = self.insert_asset(conn, fields)
        LOGGER.info("Created asset %s (%s)", asset.id, asset.storage_path)
        return asset

    def get(self, asset_id: int) -> Asset:
        with self.connection() as conn:
            return self.load_asset(conn, asset_id)

    def update(
        self,
        asset_id: int,
        updates: Mapping[str, Any] | None = None,
        custom_fields: Optional[Mapping[str, Any]] = None,
    ) -> Asset:
        """Apply whitelisted scalar updates and custom-field changes atomically."""

        values = normalise_updates(updates or {})
        extras = normalise_custom_fields(custom_fields)
        with self.transaction() as conn:
            self.load_asset(conn, asset_id)
            if values:
                assignments = ", ".join(f"{column} = ?" for column in values)
                conn.execute(
                    f"UPDATE assets SET {assignments} WHERE id = ?",
                    [*values.values(), asset_id],
                )
            for key, value in extras.items():
                if value is None:
                    conn.execute(
                        "DELETE FROM custom_fields WHERE asset_id = ? AND key = ?",
                        (asset_id, key),
                    )
                else:
                    conn.execute(
                        """
                        INSERT INTO custom_fields (asset_id, key, value)
                        VALUES (?, ?, ?)
                        ON CONFLICT (asset_id, key) DO UPDATE SET value = excluded.value
                        """,
                        (asset_id, key, value),
                    )
            asset = self.load_asset(conn, asset_id)
        LOGGER.debug(
            "Updated asset %s fields=%s custom=%s",
            asset_id,
            sorted(values),
            sorted(extras),
        )
        return asset

    def delete(self, asset_id: int) -> Asset:
        """Remove the row and its custom fields; versions become standalone.

        Deleting a master never deletes its versions: each one is detached
        (``master_id=None``, ``version_number=1``) in the same transaction.
        """

        with self.transaction() as conn:
            asset = self.load_asset(conn, asset_id)
            detached = conn.execute(
                "UPDATE assets SET master_id = NULL, version_number = 1 "
                "WHERE master_id = ?",
                (asset_id,),
            ).rowcount
            conn.execute("DELETE FROM custom_fields WHERE asset_id = ?", (asset_id,))
            conn.execute("DELETE FROM assets WHERE id = ?", (asset_id,))
        if detached:
            LOGGER.info(
                "Deleted master %s; %s version(s) are now standalone masters",
                asset_id,
                detached,
            )
        else:
            LOGGER.info("Deleted asset %s", asset_id)
        return asset

    def remove_asset(self, asset_id: int) -> Asset:
        """Delete the row, then clean up the vault file and cached thumbnail.

        Cleanup failures are logged only: once the row is gone the asset no
        longer exists, whatever is left on disk.
        """

        asset = self.delete(asset_id)
        try:
            self.runtime.vault.remove(asset.storage_path)
        except (StorageError, ValidationError) as exc:
            LOGGER.error("Vault cleanup failed for asset %s: %s", asset_id, exc)
        try:
            self.runtime.thumbnails.invalidate(asset_id)
        except StorageError as exc:
            LOGGER.error("Thumbnail cleanup failed for asset %s: %s", asset_id, exc)
        return asset

    # ---------------------
    # Import helpers
    # ---------------------
    def import_file(self, source_path: Path | str) -> Asset:
        """Copy a source file into the vault and register it as a new master."""

        vault = self.runtime.vault
        vault_file = vault.import_file(source_path)
        try:
            asset = self.create(vault_file)
        except Exception:
            try:
                vault.remove(vault_file.storage_path)
            except StorageError as cleanup_exc:
                LOGGER.error(
                    "Failed to clean up %s after import error: %s",
                    vault_file.storage_path,
                    cleanup_exc,
                )
            raise
        self.runtime.thumbnails.schedule(asset.id, vault.resolve(asset.storage_path))
        return asset

    # ---------------------
    # Query helpers
    # ---------------------
    def list_masters(
        self,
        filters: Optional["AssetFilters"] = None,
        sort: Optional["AssetSort"] = None,
    ) -> List[Asset]:
        from advault.studio.core.asset_query import AssetQuery

        views = AssetQuery(self.runtime).list_masters(filters, sort)
        return [view.asset for view in views]

    def list_versions(self, master_id: int) -> List[Asset]:
        rows = self.fetchall(
            f"{SELECT_ASSET} WHERE master_id = ? ORDER BY version_number DESC, id ASC",
            [master_id],
        )
        return [Asset.from_row(row) for row in rows]

    def list_all(self) -> List[Asset]:
        rows = self.fetchall(f"{SELECT_ASSET} ORDER BY id ASC")
        return [Asset.from_row(row) for row in rows]

    def get_custom_fields(self, asset_id: int) -> Dict[str, str]:
        with self.connection() as conn:
            self.load_asset(conn, asset_id)
            rows = conn.execute(
                "SELECT key, value FROM custom_fields WHERE asset_id = ? ORDER BY key",
                (asset_id,),
            ).fetchall()
        return {row["key"]: row["value"] for row in rows}
