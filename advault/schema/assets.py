"""
Request and response models for the asset library channels.

Every model accepts camelCase aliases as well as snake_case field names and
serialises with the camelCase aliases, matching what the UI collaborator
sends and expects.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

if TYPE_CHECKING:
    from advault.studio.core.models import Asset, AssetView


class LibraryModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# ---------------------
# Shared payloads
# ---------------------
class AssetRecord(LibraryModel):
    id: int
    file_name: str
    storage_path: str
    mime_type: str
    size_bytes: int
    created_at: str
    year: Optional[int] = None
    advertiser: Optional[str] = None
    niche: Optional[str] = None
    share_count: Optional[int] = None
    master_id: Optional[int] = None
    version_number: int = 1
    accumulated_shares: Optional[int] = None
    version_count: Optional[int] = None
    thumbnail: Optional[str] = None

    @classmethod
    def from_asset(cls, item: Union[Asset, AssetView]) -> "AssetRecord":
        return cls.model_validate(item.to_dict())


class BulkError(LibraryModel):
    id: Any
    error: str


class ImportFailure(LibraryModel):
    file: str
    error: str


class FilterParams(LibraryModel):
    year: Optional[int] = None
    advertiser: Optional[str] = None
    niche: Optional[str] = None
    shares_min: Optional[int] = Field(default=None, ge=0)
    shares_max: Optional[int] = Field(default=None, ge=0)

    @field_validator("advertiser", "niche", mode="before")
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class SortParams(LibraryModel):
    model_config = ConfigDict(extra="forbid")

    field: str = Field(
        default="created_at",
        validation_alias=AliasChoices("field", "sort", "sortBy", "sort_by"),
    )
    direction: str = Field(
        default="DESC",
        validation_alias=AliasChoices(
            "direction", "order", "sortOrder", "sort_order"
        ),
    )

    @field_validator("direction", mode="before")
    def _upper(cls, value: Any) -> Any:
        return str(value or "DESC").upper()


# ---------------------
# getAssets
# ---------------------
class GetAssetsResponse(LibraryModel):
    success: bool = True
    assets: List[AssetRecord] = Field(default_factory=list)
    error: Optional[str] = None


# ---------------------
# createAsset / bulkImportAssets
# ---------------------
class CreateAssetRequest(LibraryModel):
    source_file_path: str = Field(min_length=1)


class CreateAssetResponse(LibraryModel):
    success: bool
    asset: Optional[AssetRecord] = None
    error: Optional[str] = None


class BulkImportRequest(LibraryModel):
    source_paths: List[str] = Field(default_factory=list)


class BulkImportResponse(LibraryModel):
    success: bool
    imported_count: int = 0
    assets: List[AssetRecord] = Field(default_factory=list)
    errors: List[ImportFailure] = Field(default_factory=list)


# ---------------------
# updateAsset / deleteAsset / bulkUpdateAssets
# ---------------------
class UpdateAssetRequest(LibraryModel):
    id: int
    updates: Dict[str, Any] = Field(default_factory=dict)
    custom_fields: Optional[Dict[str, Optional[str]]] = None


class UpdateAssetResponse(LibraryModel):
    success: bool
    asset: Optional[AssetRecord] = None
    custom_fields: Dict[str, str] = Field(default_factory=dict)
    error: Optional[str] = None


class DeleteAssetResponse(LibraryModel):
    success: bool
    error: Optional[str] = None


class BulkUpdateRequest(LibraryModel):
    ids: List[int]
    updates: Dict[str, Any] = Field(default_factory=dict)


class BulkUpdateResponse(LibraryModel):
    success: bool
    updated_count: int = 0
    errors: List[BulkError] = Field(default_factory=list)


# ---------------------
# Versioning
# ---------------------
class CreateVersionRequest(LibraryModel):
    master_id: int
    source_file_path: str = Field(min_length=1)


class CreateVersionResponse(LibraryModel):
    success: bool
    new_id: Optional[int] = None
    asset: Optional[AssetRecord] = None
    error: Optional[str] = None


class GetVersionsResponse(LibraryModel):
    success: bool
    assets: List[AssetRecord] = Field(default_factory=list)
    error: Optional[str] = None


class AddToGroupRequest(LibraryModel):
    version_id: int
    master_id: int


class RemoveFromGroupRequest(LibraryModel):
    version_id: int


class PromoteVersionRequest(LibraryModel):
    version_id: int


class GroupChangeResponse(LibraryModel):
    success: bool
    asset: Optional[AssetRecord] = None
    error: Optional[str] = None


class AddToGroupResponse(GroupChangeResponse):
    pass


class RemoveFromGroupResponse(GroupChangeResponse):
    pass


class PromoteVersionResponse(GroupChangeResponse):
    pass


class BulkAddToGroupRequest(LibraryModel):
    version_ids: List[int]
    master_id: int


class BulkAddToGroupResponse(LibraryModel):
    success: bool
    added_count: int = 0
    errors: List[BulkError] = Field(default_factory=list)


# ---------------------
# Thumbnails
# ---------------------
class RegenerateThumbnailsResponse(LibraryModel):
    success: bool
    regenerated_count: int = 0
    error: Optional[str] = None
