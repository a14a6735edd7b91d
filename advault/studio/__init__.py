"""
Asset library package exports.
"""

from .core import (AssetLibrary, AssetQuery, AssetRegistry, BaseRegistry,
                   BulkCoordinator, ThumbnailService, VersionRegistry)

__all__ = [
    "BaseRegistry",
    "AssetRegistry",
    "VersionRegistry",
    "AssetQuery",
    "BulkCoordinator",
    "ThumbnailService",
    "AssetLibrary",
]
