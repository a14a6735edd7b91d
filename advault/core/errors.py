"""
Error types raised by the asset repository, grouping engine and thumbnail
pipeline.

``NotFoundError`` and ``GroupError`` are converted into ``success``/``error``
fields by :class:`advault.studio.core.library.AssetLibrary`; they never cross
the collaborator boundary as exceptions.
"""

from __future__ import annotations

from typing import Any, Optional


class AdVaultError(Exception):
    """Base class for every domain error."""

    code = "advault_error"

    def __init__(self, message: str, *, asset_id: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.asset_id = asset_id

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.asset_id is not None:
            payload["id"] = self.asset_id
        return payload


class ValidationError(AdVaultError):
    """Malformed or colliding input; nothing was written."""

    code = "validation_error"


class NotFoundError(AdVaultError):
    """The referenced asset id does not exist."""

    code = "not_found"


class GroupError(AdVaultError):
    """A master/version invariant would be violated."""

    code = "group_error"


class ExternalToolError(AdVaultError):
    """A thumbnail renderer is missing, failed or timed out."""

    code = "external_tool_error"

    def __init__(
        self,
        message: str,
        *,
        asset_id: Optional[int] = None,
        tool: Optional[str] = None,
    ) -> None:
        super().__init__(message, asset_id=asset_id)
        self.tool = tool


class StorageError(AdVaultError):
    """Filesystem or database I/O failure."""

    code = "storage_error"
