"""Managed content directory holding renamed copies of imported files."""

from __future__ import annotations

import logging
import mimetypes
import secrets
import shutil
from pathlib import Path, PurePosixPath

from advault.core.errors import StorageError, ValidationError
from advault.studio.core.models import VaultFile

LOGGER = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"
_NAME_ATTEMPTS = 8


class Vault:
    def __init__(self, root: Path | str):
        self.root = Path(root).expanduser().resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def resolve(self, storage_path: str) -> Path:
        """Map a vault-relative path onto the filesystem."""
        rel = PurePosixPath(storage_path)
        if rel.is_absolute() or ".." in rel.parts:
            raise ValidationError(f"Storage path escapes the vault: {storage_path}")
        return self.root.joinpath(*rel.parts)

    def _unique_name(self, suffix: str) -> str:
        for _ in range(_NAME_ATTEMPTS):
            candidate = f"{secrets.token_hex(8)}{suffix}"
            if not (self.root / candidate).exists():
                return candidate
            LOGGER.warning("Vault name collision for %s; retrying", candidate)
        raise StorageError("Unable to allocate a unique vault file name.")

    @staticmethod
    def guess_mime_type(path: Path | str) -> str:
        mime_type, _encoding = mimetypes.guess_type(str(path))
        return mime_type or DEFAULT_MIME_TYPE

    def import_file(self, source_path: Path | str) -> VaultFile:
        """Copy ``source_path`` into the vault under a collision-free name."""
        if not str(source_path or "").strip():
            raise ValidationError("A source file path is required.")
        source = Path(source_path).expanduser()
        if not source.is_file():
            raise ValidationError(f"Source file does not exist: {source}")

        name = self._unique_name(source.suffix.lower())
        dest = self.root / name
        try:
            shutil.copy2(source, dest)
        except OSError as exc:
            dest.unlink(missing_ok=True)
            raise StorageError(f"Failed to copy {source} into the vault: {exc}") from exc
        LOGGER.debug("Copied %s -> %s", source, dest)

        return VaultFile(
            file_name=source.name,
            storage_path=name,
            mime_type=self.guess_mime_type(source),
            size_bytes=dest.stat().st_size,
        )

    def remove(self, storage_path: str) -> bool:
        """Delete a vault file; a file that is already gone is not an error."""
        path = self.resolve(storage_path)
        try:
            path.unlink()
        except FileNotFoundError:
            LOGGER.warning("Vault file already missing: %s", path)
            return False
        except OSError as exc:
            raise StorageError(f"Failed to remove vault file {path}: {exc}") from exc
        LOGGER.debug("Removed vault file %s", path)
        return True
