"""Sequential bulk operations with per-item error collection."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping

from advault.core.errors import AdVaultError
from advault.studio.core.asset_registry import AssetRegistry, normalise_updates
from advault.studio.core.models import Asset
from advault.studio.core.version_registry import VersionRegistry

if TYPE_CHECKING:
    from advault.core.runtime import LibraryRuntime

LOGGER = logging.getLogger(__name__)


@dataclass
class BulkResult:
    count: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def fail(self, asset_id: Any, exc: BaseException) -> None:
        self.errors.append({"id": asset_id, "error": str(exc)})

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def updated_count(self) -> int:
        return self.count

    @property
    def deleted_count(self) -> int:
        return self.count


@dataclass
class ImportResult:
    imported: List[Asset] = field(default_factory=list)
    errors: List[Dict[str, str]] = field(default_factory=list)


class BulkCoordinator:
    """Applies one operation per id; a failing id never aborts the batch."""

    def __init__(self, runtime: "LibraryRuntime"):
        self.runtime = runtime
        self.assets = AssetRegistry(runtime)
        self.versions = VersionRegistry(runtime)

    def bulk_update(self, ids: Iterable[int], updates: Mapping[str, Any]) -> BulkResult:
        result = BulkResult()
        ids = list(ids)
        try:
            # validate the shared payload once; a bad payload fails every id
            normalise_updates(updates)
        except AdVaultError as exc:
            for asset_id in ids:
                result.fail(asset_id, exc)
            return result
        for asset_id in ids:
            try:
                self.assets.update(asset_id, updates)
            except AdVaultError as exc:
                LOGGER.warning("Bulk update skipped asset %s: %s", asset_id, exc)
                result.fail(asset_id, exc)
            else:
                result.count += 1
        LOGGER.info(
            "Bulk update: %d updated, %d failed", result.count, len(result.errors)
        )
        return result

    def bulk_delete(self, ids: Iterable[int]) -> BulkResult:
        result = BulkResult()
        for asset_id in ids:
            try:
                self.assets.remove_asset(asset_id)
            except AdVaultError as exc:
                LOGGER.warning("Bulk delete skipped asset %s: %s", asset_id, exc)
                result.fail(asset_id, exc)
            else:
                result.count += 1
        LOGGER.info(
            "Bulk delete: %d deleted, %d failed", result.count, len(result.errors)
        )
        return result

    def bulk_add_to_group(self, version_ids: Iterable[int], master_id: int) -> BulkResult:
        result = BulkResult()
        for version_id in version_ids:
            try:
                self.versions.add_to_group(version_id, master_id)
            except AdVaultError as exc:
                LOGGER.warning(
                    "Bulk grouping skipped asset %s -> %s: %s", version_id, master_id, exc
                )
                result.fail(version_id, exc)
            else:
                result.count += 1
        return result

    def bulk_import(self, source_paths: Iterable[Path | str]) -> ImportResult:
        result = ImportResult()
        for source in source_paths:
            try:
                result.imported.append(self.assets.import_file(source))
            except AdVaultError as exc:
                name = Path(str(source)).name or str(source)
                LOGGER.warning("Import failed for %s: %s", source, exc)
                result.errors.append({"file": name, "error": str(exc)})
        LOGGER.info(
            "Bulk import: %d imported, %d failed",
            len(result.imported),
            len(result.errors),
        )
        return result
