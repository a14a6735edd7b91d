"""
Read-side query layer: filtered, sorted master listings with group aggregates.

Aggregates are computed in one pass with a grouped sub-select joined onto the
masters, so a listing never issues per-row queries against the store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, List, Optional, Tuple

from advault.core.errors import ValidationError
from advault.studio.core.models import ASSET_COLUMNS, Asset, AssetView

if TYPE_CHECKING:
    from advault.core.runtime import LibraryRuntime

LOGGER = logging.getLogger(__name__)

ACCUMULATED_SHARES_SQL = (
    "CASE WHEN a.share_count IS NULL AND COALESCE(g.n, 0) = 0 THEN NULL "
    "ELSE COALESCE(a.share_count, 0) + COALESCE(g.s, 0) END"
)

SORT_COLUMNS = {
    "file_name": "a.file_name",
    "year": "a.year",
    "share_count": "a.share_count",
    "accumulated_shares": ACCUMULATED_SHARES_SQL,
    "created_at": "a.created_at",
}
SORT_ALIASES = {
    "fileName": "file_name",
    "shares": "share_count",
    "shareCount": "share_count",
    "accumulatedShares": "accumulated_shares",
    "createdAt": "created_at",
}

_AGGREGATE_SELECT = f"""
SELECT {', '.join(f'a.{name}' for name in ASSET_COLUMNS)},
       {ACCUMULATED_SHARES_SQL} AS accumulated_shares,
       1 + COALESCE(g.n, 0) AS version_count
FROM assets a
LEFT JOIN (
    SELECT master_id, COUNT(*) AS n, SUM(COALESCE(share_count, 0)) AS s
    FROM assets
    WHERE master_id IS NOT NULL
    GROUP BY master_id
) g ON g.master_id = a.id
"""


def _optional_int(name: str, value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{name} must be an integer, got {value!r}.") from exc


@dataclass(frozen=True)
class AssetFilters:
    """Exact-match filters; ``shares_*`` bound the master's own share count."""

    year: Optional[int] = None
    advertiser: Optional[str] = None
    niche: Optional[str] = None
    shares_min: Optional[int] = None
    shares_max: Optional[int] = None

    def __post_init__(self) -> None:
        year = _optional_int("year", self.year)
        # 0 is the collaborator's "all years" sentinel
        object.__setattr__(self, "year", year or None)
        object.__setattr__(self, "advertiser", self.advertiser or None)
        object.__setattr__(self, "niche", self.niche or None)
        object.__setattr__(self, "shares_min", _optional_int("shares_min", self.shares_min))
        object.__setattr__(self, "shares_max", _optional_int("shares_max", self.shares_max))

    def clauses(self) -> Tuple[List[str], List[Any]]:
        where = ["a.master_id IS NULL"]
        params: List[Any] = []
        if self.year is not None:
            where.append("a.year = ?")
            params.append(self.year)
        if self.advertiser is not None:
            where.append("a.advertiser = ?")
            params.append(self.advertiser)
        if self.niche is not None:
            where.append("a.niche = ?")
            params.append(self.niche)
        if self.shares_min is not None:
            where.append("a.share_count >= ?")
            params.append(self.shares_min)
        if self.shares_max is not None:
            where.append("a.share_count <= ?")
            params.append(self.shares_max)
        return where, params


@dataclass(frozen=True)
class AssetSort:
    field: str = "created_at"
    direction: str = "DESC"

    def __post_init__(self) -> None:
        field = SORT_ALIASES.get(self.field or "created_at", self.field or "created_at")
        if field not in SORT_COLUMNS:
            raise ValidationError(f"Unsupported sort field {self.field!r}.")
        direction = (self.direction or "DESC").upper()
        if direction not in {"ASC", "DESC"}:
            raise ValidationError(f"Unsupported sort direction {self.direction!r}.")
        object.__setattr__(self, "field", field)
        object.__setattr__(self, "direction", direction)

    def order_by(self) -> str:
        column = SORT_COLUMNS[self.field]
        # SQLite sorts NULL first ascending; keep unset values at the end either way
        return (
            f"ORDER BY ({column} IS NULL) ASC, {column} {self.direction}, a.id ASC"
        )


class AssetQuery:
    def __init__(self, runtime: "LibraryRuntime"):
        self.runtime = runtime

    def _views(self, sql: str, params: List[Any]) -> List[AssetView]:
        conn = self.runtime.connect()
        try:
            rows = conn.execute(sql, params).fetchall()
        finally:
            conn.close()
        thumbs = self.runtime.thumbnails
        return [
            AssetView(
                asset=Asset.from_row(row),
                accumulated_shares=row["accumulated_shares"],
                version_count=row["version_count"],
                thumbnail=thumbs.get_existing(row["id"]),
            )
            for row in rows
        ]

    def list_masters(
        self,
        filters: Optional[AssetFilters] = None,
        sort: Optional[AssetSort] = None,
    ) -> List[AssetView]:
        filters = filters or AssetFilters()
        sort = sort or AssetSort()
        where, params = filters.clauses()
        sql = f"{_AGGREGATE_SELECT} WHERE {' AND '.join(where)} {sort.order_by()}"
        views = self._views(sql, params)
        LOGGER.debug(
            "Listed %d masters (filters=%s, sort=%s %s)",
            len(views),
            filters,
            sort.field,
            sort.direction,
        )
        return views

    def get_view(self, asset_id: int) -> Optional[AssetView]:
        views = self._views(f"{_AGGREGATE_SELECT} WHERE a.id = ?", [asset_id])
        return views[0] if views else None

    def list_versions(self, master_id: int) -> List[AssetView]:
        """Versions of ``master_id``, newest version number first."""
        conn = self.runtime.connect()
        try:
            rows = conn.execute(
                f"SELECT {', '.join(ASSET_COLUMNS)} FROM assets "
                "WHERE master_id = ? ORDER BY version_number DESC, id ASC",
                (master_id,),
            ).fetchall()
        finally:
            conn.close()
        thumbs = self.runtime.thumbnails
        return [
            AssetView(
                asset=Asset.from_row(row),
                thumbnail=thumbs.get_existing(row["id"]),
            )
            for row in rows
        ]
