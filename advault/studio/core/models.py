"""Record types shared by the registries and the query layer."""

from __future__ import annotations

import sqlite3
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

ASSET_COLUMNS = (
    "id",
    "file_name",
    "storage_path",
    "mime_type",
    "size_bytes",
    "created_at",
    "year",
    "advertiser",
    "niche",
    "share_count",
    "master_id",
    "version_number",
)


@dataclass(frozen=True)
class Asset:
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

    @property
    def is_master(self) -> bool:
        return self.master_id is None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Asset":
        return cls(**{name: row[name] for name in ASSET_COLUMNS})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class AssetView:
    """An asset merged with its group aggregates and cached thumbnail."""

    asset: Asset
    accumulated_shares: Optional[int] = None
    version_count: Optional[int] = None
    thumbnail: Optional[str] = None

    @property
    def id(self) -> int:
        return self.asset.id

    def to_dict(self) -> Dict[str, Any]:
        payload = self.asset.to_dict()
        payload["accumulated_shares"] = self.accumulated_shares
        payload["version_count"] = self.version_count
        payload["thumbnail"] = self.thumbnail
        return payload


@dataclass(frozen=True)
class VaultFile:
    """A source file copied into the vault, ready to be inserted."""

    file_name: str
    storage_path: str
    mime_type: str
    size_bytes: int
