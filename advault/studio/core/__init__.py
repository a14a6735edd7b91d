"""
Core registries and shared data access for the asset library.

Every registry receives a :class:`~advault.core.runtime.LibraryRuntime` and
opens its own short-lived SQLite connections from it, so the HTTP routes, the
CLI and the tests all share one source of truth.
"""

from .asset_query import AssetFilters, AssetQuery, AssetSort
from .asset_registry import AssetRegistry
from .base_registry import BaseRegistry
from .bulk import BulkCoordinator, BulkResult, ImportResult
from .library import AssetLibrary
from .thumbnail_service import ThumbnailService, ThumbnailStatus
from .vault import Vault
from .version_registry import VersionRegistry

__all__ = [
    "BaseRegistry",
    "AssetRegistry",
    "VersionRegistry",
    "AssetQuery",
    "AssetFilters",
    "AssetSort",
    "BulkCoordinator",
    "BulkResult",
    "ImportResult",
    "AssetLibrary",
    "ThumbnailService",
    "ThumbnailStatus",
    "Vault",
]
