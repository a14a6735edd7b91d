"""Pydantic request/response models for the library channels."""

from .assets import AssetRecord, LibraryModel

__all__ = ["AssetRecord", "LibraryModel"]
