"""
Collaborator-facing facade over the asset library.

Each method maps one UI channel onto the registries and returns that
channel's response model.  Domain failures (missing ids, grouping violations,
bad input) are reported through ``success``/``error`` fields; anything else
propagates to the caller.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Iterable, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from advault.core.errors import AdVaultError, ValidationError
from advault.schema.assets import (
    AddToGroupResponse,
    AssetRecord,
    BulkAddToGroupResponse,
    BulkError,
    BulkImportResponse,
    BulkUpdateResponse,
    CreateAssetResponse,
    CreateVersionResponse,
    DeleteAssetResponse,
    FilterParams,
    GetAssetsResponse,
    GetVersionsResponse,
    ImportFailure,
    PromoteVersionResponse,
    RegenerateThumbnailsResponse,
    RemoveFromGroupResponse,
    SortParams,
    UpdateAssetResponse,
)
from advault.studio.core.asset_query import AssetFilters, AssetQuery, AssetSort
from advault.studio.core.asset_registry import AssetRegistry
from advault.studio.core.bulk import BulkCoordinator
from advault.studio.core.version_registry import VersionRegistry

if TYPE_CHECKING:
    from advault.core.runtime import LibraryRuntime

LOGGER = logging.getLogger(__name__)

FilterInput = Union[FilterParams, AssetFilters, Mapping[str, Any], None]
SortInput = Union[SortParams, AssetSort, Mapping[str, Any], None]


def _validate(model, payload: Mapping[str, Any]):
    try:
        return model.model_validate(dict(payload))
    except PydanticValidationError as exc:
        raise ValidationError(str(exc)) from exc


NESTED_CUSTOM_KEYS = ("customFields", "custom_fields")


def _split_custom_fields(
    updates: Optional[Mapping[str, Any]], custom_fields: Optional[Mapping[str, Any]]
):
    """Lift a ``customFields`` mapping nested in ``updates`` into its own argument.

    Explicit ``custom_fields`` entries win over nested ones with the same key.
    """
    scalars = dict(updates or {})
    merged: Dict[str, Any] = {}
    for key in NESTED_CUSTOM_KEYS:
        nested = scalars.pop(key, None)
        if nested is None:
            continue
        if not isinstance(nested, Mapping):
            raise ValidationError(f"{key} must be an object, got {nested!r}.")
        merged.update(nested)
    merged.update(custom_fields or {})
    return scalars, (merged or custom_fields)


def _as_filters(filters: FilterInput) -> AssetFilters:
    if filters is None:
        return AssetFilters()
    if isinstance(filters, AssetFilters):
        return filters
    if not isinstance(filters, FilterParams):
        filters = _validate(FilterParams, filters)
    return AssetFilters(**filters.model_dump())


def _as_sort(sort: SortInput) -> AssetSort:
    if sort is None:
        return AssetSort()
    if isinstance(sort, AssetSort):
        return sort
    if not isinstance(sort, SortParams):
        sort = _validate(SortParams, sort)
    return AssetSort(field=sort.field, direction=sort.direction)


class AssetLibrary:
    def __init__(self, runtime: "LibraryRuntime"):
        self.runtime = runtime
        self.assets = AssetRegistry(runtime)
        self.versions = VersionRegistry(runtime)
        self.query = AssetQuery(runtime)
        self.bulk = BulkCoordinator(runtime)

    def _record(self, asset_id: int) -> Optional[AssetRecord]:
        view = self.query.get_view(asset_id)
        return AssetRecord.from_asset(view) if view is not None else None

    # ---------------------
    # Listing
    # ---------------------
    def get_assets(
        self, filters: FilterInput = None, sort: SortInput = None
    ) -> GetAssetsResponse:
        try:
            views = self.query.list_masters(_as_filters(filters), _as_sort(sort))
        except AdVaultError as exc:
            LOGGER.warning("Asset listing rejected: %s", exc)
            return GetAssetsResponse(success=False, error=str(exc))
        return GetAssetsResponse(
            success=True, assets=[AssetRecord.from_asset(view) for view in views]
        )

    # ---------------------
    # Import
    # ---------------------
    def create_asset(self, source_file_path: Union[str, Path]) -> CreateAssetResponse:
        try:
            asset = self.assets.import_file(source_file_path)
        except AdVaultError as exc:
            LOGGER.warning("Failed to create asset from %s: %s", source_file_path, exc)
            return CreateAssetResponse(success=False, error=str(exc))
        return CreateAssetResponse(success=True, asset=self._record(asset.id))

    def bulk_import_assets(
        self, source_paths: Iterable[Union[str, Path]]
    ) -> BulkImportResponse:
        result = self.bulk.bulk_import(source_paths)
        return BulkImportResponse(
            success=not result.errors,
            imported_count=len(result.imported),
            assets=[self._record(asset.id) for asset in result.imported],
            errors=[ImportFailure(**entry) for entry in result.errors],
        )

    # ---------------------
    # Metadata
    # ---------------------
    def update_asset(
        self,
        asset_id: int,
        updates: Optional[Mapping[str, Any]] = None,
        custom_fields: Optional[Mapping[str, Any]] = None,
    ) -> UpdateAssetResponse:
        try:
            updates, custom_fields = _split_custom_fields(updates, custom_fields)
            asset = self.assets.update(asset_id, updates, custom_fields=custom_fields)
            extras = self.assets.get_custom_fields(asset.id)
        except AdVaultError as exc:
            LOGGER.warning("Update of asset %s rejected: %s", asset_id, exc)
            return UpdateAssetResponse(success=False, error=str(exc))
        return UpdateAssetResponse(
            success=True, asset=self._record(asset.id), custom_fields=extras
        )

    def delete_asset(self, asset_id: int) -> DeleteAssetResponse:
        try:
            self.assets.remove_asset(asset_id)
        except AdVaultError as exc:
            LOGGER.warning("Delete of asset %s failed: %s", asset_id, exc)
            return DeleteAssetResponse(success=False, error=str(exc))
        return DeleteAssetResponse(success=True)

    def bulk_update_assets(
        self, ids: Iterable[int], updates: Mapping[str, Any]
    ) -> BulkUpdateResponse:
        result = self.bulk.bulk_update(ids, updates)
        return BulkUpdateResponse(
            success=result.ok,
            updated_count=result.updated_count,
            errors=[BulkError(**entry) for entry in result.errors],
        )

    # ---------------------
    # Versioning
    # ---------------------
    def create_version(
        self, master_id: int, source_file_path: Union[str, Path]
    ) -> CreateVersionResponse:
        try:
            asset = self.versions.create_version(master_id, source_file_path)
        except AdVaultError as exc:
            LOGGER.warning("Failed to create version of %s: %s", master_id, exc)
            return CreateVersionResponse(success=False, error=str(exc))
        return CreateVersionResponse(
            success=True, new_id=asset.id, asset=self._record(asset.id)
        )

    def get_versions(self, master_id: int) -> GetVersionsResponse:
        try:
            master = self.assets.get(master_id)
            if not master.is_master:
                return GetVersionsResponse(
                    success=False,
                    error=f"Asset {master_id} is a version, not a master.",
                )
            views = self.query.list_versions(master_id)
        except AdVaultError as exc:
            return GetVersionsResponse(success=False, error=str(exc))
        return GetVersionsResponse(
            success=True, assets=[AssetRecord.from_asset(view) for view in views]
        )

    def add_to_group(self, version_id: int, master_id: int) -> AddToGroupResponse:
        try:
            asset = self.versions.add_to_group(version_id, master_id)
        except AdVaultError as exc:
            LOGGER.warning("Cannot add %s to group %s: %s", version_id, master_id, exc)
            return AddToGroupResponse(success=False, error=str(exc))
        return AddToGroupResponse(success=True, asset=self._record(asset.id))

    def remove_from_group(self, version_id: int) -> RemoveFromGroupResponse:
        try:
            asset = self.versions.remove_from_group(version_id)
        except AdVaultError as exc:
            LOGGER.warning("Cannot remove %s from its group: %s", version_id, exc)
            return RemoveFromGroupResponse(success=False, error=str(exc))
        return RemoveFromGroupResponse(success=True, asset=self._record(asset.id))

    def promote_version(self, version_id: int) -> PromoteVersionResponse:
        try:
            asset = self.versions.promote(version_id)
        except AdVaultError as exc:
            LOGGER.warning("Cannot promote %s: %s", version_id, exc)
            return PromoteVersionResponse(success=False, error=str(exc))
        return PromoteVersionResponse(success=True, asset=self._record(asset.id))

    def bulk_add_to_group(
        self, version_ids: Iterable[int], master_id: int
    ) -> BulkAddToGroupResponse:
        result = self.bulk.bulk_add_to_group(version_ids, master_id)
        return BulkAddToGroupResponse(
            success=result.ok,
            added_count=result.count,
            errors=[BulkError(**entry) for entry in result.errors],
        )

    # ---------------------
    # Thumbnails
    # ---------------------
    def regenerate_thumbnails(self, *, force: bool = False) -> RegenerateThumbnailsResponse:
        """Render thumbnails synchronously for every asset that lacks one.

        With ``force`` every supported asset is re-rendered.
        """
        thumbs = self.runtime.thumbnails
        vault = self.runtime.vault
        regenerated = 0
        for asset in self.assets.list_all():
            if not force and thumbs.get_existing(asset.id):
                continue
            try:
                source = vault.resolve(asset.storage_path)
            except AdVaultError as exc:
                LOGGER.warning("Skipping thumbnail for asset %s: %s", asset.id, exc)
                continue
            if thumbs.generate(asset.id, source):
                regenerated += 1
        LOGGER.info("Regenerated %d thumbnail(s)", regenerated)
        return RegenerateThumbnailsResponse(success=True, regenerated_count=regenerated)
