"""Asset library API endpoints exposed via FastAPI."""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError as PydanticValidationError

from advault.schema.assets import (
    AddToGroupRequest,
    AddToGroupResponse,
    BulkAddToGroupRequest,
    BulkAddToGroupResponse,
    BulkImportRequest,
    BulkImportResponse,
    BulkUpdateRequest,
    BulkUpdateResponse,
    CreateAssetRequest,
    CreateAssetResponse,
    CreateVersionRequest,
    CreateVersionResponse,
    DeleteAssetResponse,
    FilterParams,
    GetAssetsResponse,
    GetVersionsResponse,
    PromoteVersionRequest,
    PromoteVersionResponse,
    RegenerateThumbnailsResponse,
    RemoveFromGroupRequest,
    RemoveFromGroupResponse,
    SortParams,
    UpdateAssetRequest,
    UpdateAssetResponse,
)
from advault.studio.core.library import AssetLibrary

LOGGER = logging.getLogger(__name__)

router = APIRouter(tags=["Assets"])

_SORT_KEYS = frozenset(
    choice
    for info in SortParams.model_fields.values()
    for choice in info.validation_alias.choices
)


def get_library(request: Request) -> AssetLibrary:
    return request.app.state.library


def _listing_params(request: Request) -> Dict[str, Any]:
    raw = dict(request.query_params)
    sort_raw = {key: raw.pop(key) for key in list(raw) if key in _SORT_KEYS}
    try:
        filters = FilterParams.model_validate(raw)
        sort = SortParams.model_validate(sort_raw)
    except PydanticValidationError as exc:
        raise RequestValidationError(exc.errors()) from exc
    return {"filters": filters, "sort": sort}


# ---------------------
# Assets
# ---------------------
@router.get("/api/assets", response_model=GetAssetsResponse)
async def list_assets(
    params: Dict[str, Any] = Depends(_listing_params),
    library: AssetLibrary = Depends(get_library),
) -> GetAssetsResponse:
    return await run_in_threadpool(library.get_assets, params["filters"], params["sort"])


@router.post("/api/assets", response_model=CreateAssetResponse)
async def create_asset(
    payload: CreateAssetRequest, library: AssetLibrary = Depends(get_library)
) -> CreateAssetResponse:
    return await run_in_threadpool(library.create_asset, payload.source_file_path)


@router.post("/api/assets/import", response_model=BulkImportResponse)
async def bulk_import_assets(
    payload: BulkImportRequest, library: AssetLibrary = Depends(get_library)
) -> BulkImportResponse:
    result = await run_in_threadpool(library.bulk_import_assets, payload.source_paths)
    LOGGER.info(
        "Imported %d/%d file(s) via API",
        result.imported_count,
        len(payload.source_paths),
    )
    return result


@router.post("/api/assets/update", response_model=UpdateAssetResponse)
async def update_asset(
    payload: UpdateAssetRequest, library: AssetLibrary = Depends(get_library)
) -> UpdateAssetResponse:
    return await run_in_threadpool(
        library.update_asset, payload.id, payload.updates, payload.custom_fields
    )


@router.post("/api/assets/bulk-update", response_model=BulkUpdateResponse)
async def bulk_update_assets(
    payload: BulkUpdateRequest, library: AssetLibrary = Depends(get_library)
) -> BulkUpdateResponse:
    return await run_in_threadpool(
        library.bulk_update_assets, payload.ids, payload.updates
    )


@router.delete("/api/assets/{asset_id}", response_model=DeleteAssetResponse)
async def delete_asset(
    asset_id: int, library: AssetLibrary = Depends(get_library)
) -> DeleteAssetResponse:
    return await run_in_threadpool(library.delete_asset, asset_id)


# ---------------------
# Versions & groups
# ---------------------
@router.post("/api/versions", response_model=CreateVersionResponse)
async def create_version(
    payload: CreateVersionRequest, library: AssetLibrary = Depends(get_library)
) -> CreateVersionResponse:
    return await run_in_threadpool(
        library.create_version, payload.master_id, payload.source_file_path
    )


@router.get("/api/versions/{master_id}", response_model=GetVersionsResponse)
async def get_versions(
    master_id: int, library: AssetLibrary = Depends(get_library)
) -> GetVersionsResponse:
    return await run_in_threadpool(library.get_versions, master_id)


@router.post("/api/groups/add", response_model=AddToGroupResponse)
async def add_to_group(
    payload: AddToGroupRequest, library: AssetLibrary = Depends(get_library)
) -> AddToGroupResponse:
    return await run_in_threadpool(
        library.add_to_group, payload.version_id, payload.master_id
    )


@router.post("/api/groups/remove", response_model=RemoveFromGroupResponse)
async def remove_from_group(
    payload: RemoveFromGroupRequest, library: AssetLibrary = Depends(get_library)
) -> RemoveFromGroupResponse:
    return await run_in_threadpool(library.remove_from_group, payload.version_id)


@router.post("/api/groups/promote", response_model=PromoteVersionResponse)
async def promote_version(
    payload: PromoteVersionRequest, library: AssetLibrary = Depends(get_library)
) -> PromoteVersionResponse:
    return await run_in_threadpool(library.promote_version, payload.version_id)


@router.post("/api/groups/bulk-add", response_model=BulkAddToGroupResponse)
async def bulk_add_to_group(
    payload: BulkAddToGroupRequest, library: AssetLibrary = Depends(get_library)
) -> BulkAddToGroupResponse:
    return await run_in_threadpool(
        library.bulk_add_to_group, payload.version_ids, payload.master_id
    )


# ---------------------
# Thumbnails
# ---------------------
@router.post("/api/thumbnails/regenerate", response_model=RegenerateThumbnailsResponse)
async def regenerate_thumbnails(
    force: bool = False, library: AssetLibrary = Depends(get_library)
) -> RegenerateThumbnailsResponse:
    return await run_in_threadpool(library.regenerate_thumbnails, force=force)
