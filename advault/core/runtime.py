"""
Process-wide runtime for the asset library.

``LibraryRuntime`` owns everything that used to live in module globals: the
SQLite store, the vault directory, the thumbnail cache directory and the
worker pool used for background thumbnail generation.  Registries and
services receive the runtime explicitly instead of importing shared state.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Optional

from advault.config import runtime_paths
from advault.core.db_manager import DBManager

LOGGER = logging.getLogger(__name__)


class LibraryRuntime:
    """Explicitly initialised owner of the library's shared resources."""

    def __init__(
        self,
        *,
        db_path: Path | str | None = None,
        vault_root: Path | str | None = None,
        thumb_root: Path | str | None = None,
        render_timeout: Optional[float] = None,
        thumb_workers: Optional[int] = None,
        thumb_width: int = 400,
    ) -> None:
        self.db_path = self._resolve(db_path) or runtime_paths.db_path()
        self.vault_root = self._resolve(vault_root) or runtime_paths.vault_dir()
        self.thumb_root = self._resolve(thumb_root) or runtime_paths.thumb_cache_dir()
        self.render_timeout = render_timeout or runtime_paths.render_timeout()
        self.thumb_workers = thumb_workers or runtime_paths.thumb_workers()
        self.thumb_width = thumb_width
        self._db_manager = DBManager(self.db_path)
        self._executor: ThreadPoolExecutor | None = None
        self._vault = None
        self._thumbnails = None
        self._lock = threading.Lock()

    @staticmethod
    def _resolve(value: Path | str | None) -> Optional[Path]:
        if value is None:
            return None
        return Path(value).expanduser().resolve()

    @property
    def started(self) -> bool:
        return self._executor is not None

    def init(self) -> "LibraryRuntime":
        """Create directories, apply the schema and start the worker pool."""
        from advault.studio.core.thumbnail_service import ThumbnailService
        from advault.studio.core.vault import Vault

        with self._lock:
            if self._executor is not None:
                return self
            self.vault_root.mkdir(parents=True, exist_ok=True)
            self.thumb_root.mkdir(parents=True, exist_ok=True)
            self._db_manager.ensure_schema()
            self._executor = ThreadPoolExecutor(
                max_workers=self.thumb_workers,
                thread_name_prefix="AssetThumb",
            )
            self._vault = Vault(self.vault_root)
            self._thumbnails = ThumbnailService(
                self.thumb_root,
                executor=self._executor,
                render_timeout=self.render_timeout,
                width=self.thumb_width,
            )
        LOGGER.info(
            "Library runtime ready (db=%s, vault=%s, thumbs=%s)",
            self.db_path,
            self.vault_root,
            self.thumb_root,
        )
        return self

    def shutdown(self, *, wait: bool = True) -> None:
        """Stop the worker pool; pending thumbnail jobs finish when ``wait``."""
        with self._lock:
            executor = self._executor
            self._executor = None
        if executor is None:
            return
        executor.shutdown(wait=wait, cancel_futures=not wait)
        LOGGER.info("Library runtime shut down")

    def __enter__(self) -> "LibraryRuntime":
        return self.init()

    def __exit__(self, *exc_info) -> None:
        self.shutdown()

    def _require_started(self) -> None:
        if self._executor is None:
            raise RuntimeError("LibraryRuntime.init() must be called first.")

    def connect(self) -> sqlite3.Connection:
        self._require_started()
        return self._db_manager.connect()

    @property
    def db_manager(self) -> DBManager:
        return self._db_manager

    @property
    def vault(self):
        self._require_started()
        return self._vault

    @property
    def thumbnails(self):
        self._require_started()
        return self._thumbnails
