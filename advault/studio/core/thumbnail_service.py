"""
Thumbnail cache for library assets.

Previews are derived from an asset's vault file and written to a path keyed
only by the asset id, so the cache can always be rebuilt from
``(asset_id, source_path)``.  Images are rendered with Pillow, videos with
``ffmpeg`` and PDFs with ``pdftocairo``.  Every failure is recovered here:
the caller gets ``None`` ("no thumbnail"), never an exception.
"""

from __future__ import annotations

import logging
import os
import secrets
import shutil
import subprocess
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from PIL import Image

from advault.config.runtime_paths import renderer_binary
from advault.core.errors import ExternalToolError, StorageError

LOGGER = logging.getLogger(__name__)


class ThumbnailStatus(str, Enum):
    PENDING = "pending"
    READY = "ready"
    MISSING = "missing"


class ThumbnailService:
    URL_PREFIX = "/cache/thumbnails"
    THUMB_SUFFIX = ".jpg"
    _IMAGE_SUFFIXES = {
        ".png",
        ".jpg",
        ".jpeg",
        ".webp",
        ".bmp",
        ".gif",
        ".tif",
        ".tiff",
        ".avif",
    }
    _VIDEO_SUFFIXES = {".mp4", ".mov", ".avi", ".mkv", ".webm", ".wmv"}
    _PDF_SUFFIXES = {".pdf"}

    def __init__(
        self,
        cache_root: Path | str,
        *,
        executor: ThreadPoolExecutor | None = None,
        render_timeout: float = 30.0,
        width: int = 400,
        quality: int = 90,
        ffmpeg: Optional[str] = None,
        pdftocairo: Optional[str] = None,
    ):
        self.cache_root = Path(cache_root).expanduser().resolve()
        self.cache_root.mkdir(parents=True, exist_ok=True)
        self.render_timeout = render_timeout
        self.width = width
        self.quality = quality
        self.ffmpeg = ffmpeg or renderer_binary("ffmpeg")
        self.pdftocairo = pdftocairo or renderer_binary("pdftocairo")
        self._executor = executor
        self._lock = threading.RLock()
        self._pending: Dict[int, Future] = {}
        # bumped by invalidate() while a render is queued or running; a render
        # that started under an older epoch discards its output.  Entries are
        # dropped once no render for the asset is outstanding.
        self._epochs: Dict[int, int] = {}
        self._rendering: Dict[int, int] = {}

    # ---------------------
    # Cache layout
    # ---------------------
    def cache_path(self, asset_id: int) -> Path:
        return self.cache_root / f"{int(asset_id)}{self.THUMB_SUFFIX}"

    def cache_ref(self, asset_id: int) -> str:
        return f"{self.URL_PREFIX}/{int(asset_id)}{self.THUMB_SUFFIX}"

    @classmethod
    def category(cls, source_path: Path | str) -> Optional[str]:
        suffix = Path(source_path).suffix.lower()
        if suffix in cls._IMAGE_SUFFIXES:
            return "image"
        if suffix in cls._VIDEO_SUFFIXES:
            return "video"
        if suffix in cls._PDF_SUFFIXES:
            return "pdf"
        return None

    # ---------------------
    # Public API
    # ---------------------
    def get_existing(self, asset_id: int) -> Optional[str]:
        """Return the cache ref when the thumbnail exists; never renders."""
        if self.cache_path(asset_id).is_file():
            return self.cache_ref(asset_id)
        return None

    def status(self, asset_id: int) -> ThumbnailStatus:
        with self._lock:
            future = self._pending.get(asset_id)
        if future is not None and not future.done():
            return ThumbnailStatus.PENDING
        if self.cache_path(asset_id).is_file():
            return ThumbnailStatus.READY
        return ThumbnailStatus.MISSING

    def generate(self, asset_id: int, source_path: Path | str) -> Optional[str]:
        """Render the thumbnail for ``asset_id`` synchronously.

        Safe to call repeatedly: the output always lands on the same path.
        Returns ``None`` for unsupported types and for any renderer failure.
        """
        return self._generate(asset_id, source_path, None)

    def _generate(
        self, asset_id: int, source_path: Path | str, epoch: Optional[int]
    ) -> Optional[str]:
        source = Path(source_path)
        category = self.category(source)
        if category is None:
            LOGGER.debug("Skipping thumbnail for %s (unsupported suffix)", source)
            return None

        with self._lock:
            if epoch is None:
                epoch = self._epochs.get(asset_id, 0)
            self._rendering[asset_id] = self._rendering.get(asset_id, 0) + 1
        try:
            return self._render_to_cache(asset_id, source, category, epoch)
        finally:
            with self._lock:
                remaining = self._rendering.pop(asset_id, 1) - 1
                if remaining:
                    self._rendering[asset_id] = remaining
                self._forget_epoch(asset_id)

    def _render_to_cache(
        self, asset_id: int, source: Path, category: str, epoch: int
    ) -> Optional[str]:
        target = self.cache_path(asset_id)
        staging = self.cache_root / (
            f".{int(asset_id)}.{secrets.token_hex(4)}{self.THUMB_SUFFIX}"
        )
        try:
            if not source.is_file():
                raise ExternalToolError(
                    f"Source file missing: {source}", asset_id=asset_id
                )
            if category == "image":
                self._render_image(asset_id, source, staging)
            elif category == "video":
                self._render_video(asset_id, source, staging)
            else:
                self._render_pdf(asset_id, source, staging)
            if not staging.is_file():
                raise ExternalToolError(
                    f"{category} renderer produced no output", asset_id=asset_id
                )
        except ExternalToolError as exc:
            LOGGER.warning(
                "Thumbnail generation failed for asset %s (%s): %s",
                asset_id,
                source.name,
                exc,
            )
            staging.unlink(missing_ok=True)
            return None

        with self._lock:
            if self._epochs.get(asset_id, 0) != epoch:
                LOGGER.info(
                    "Discarding thumbnail for asset %s invalidated during render",
                    asset_id,
                )
                staging.unlink(missing_ok=True)
                return None
            try:
                os.replace(staging, target)
            except OSError as exc:
                LOGGER.error(
                    "Could not move thumbnail for asset %s into place: %s",
                    asset_id,
                    exc,
                )
                staging.unlink(missing_ok=True)
                return None
        LOGGER.debug("Wrote thumbnail %s", target)
        return self.cache_ref(asset_id)

    def _forget_epoch(self, asset_id: int) -> None:
        # caller holds the lock
        if asset_id not in self._rendering and asset_id not in self._pending:
            self._epochs.pop(asset_id, None)

    def schedule(self, asset_id: int, source_path: Path | str) -> Optional[Future]:
        """Queue background generation; the caller never waits on it."""
        if self.category(source_path) is None:
            LOGGER.debug("No thumbnail renderer for %s", source_path)
            return None
        if self._executor is None:
            LOGGER.debug("No executor configured; rendering %s inline", asset_id)
            self.generate(asset_id, source_path)
            return None
        with self._lock:
            epoch = self._epochs.get(asset_id, 0)
            try:
                future = self._executor.submit(
                    self._generate, asset_id, source_path, epoch
                )
            except RuntimeError as exc:
                LOGGER.warning(
                    "Thumbnail queue unavailable for asset %s: %s", asset_id, exc
                )
                return None
            self._pending[asset_id] = future

        def _cleanup(fut: Future) -> None:
            with self._lock:
                if self._pending.get(asset_id) is fut:
                    self._pending.pop(asset_id, None)
                self._forget_epoch(asset_id)
            if not fut.cancelled() and fut.exception() is not None:
                LOGGER.error(
                    "Thumbnail job for asset %s crashed",
                    asset_id,
                    exc_info=fut.exception(),
                )

        future.add_done_callback(_cleanup)
        return future

    def invalidate(self, asset_id: int) -> None:
        """Drop the cached thumbnail; a missing file is not an error."""
        with self._lock:
            pending = self._pending.get(asset_id)
            if asset_id in self._rendering or pending is not None:
                self._epochs[asset_id] = self._epochs.get(asset_id, 0) + 1
            if pending is not None:
                pending.cancel()
            path = self.cache_path(asset_id)
            try:
                path.unlink()
            except FileNotFoundError:
                return
            except OSError as exc:
                raise StorageError(
                    f"Failed to remove thumbnail {path}: {exc}", asset_id=asset_id
                ) from exc
        LOGGER.debug("Invalidated thumbnail for asset %s", asset_id)

    def wait_for_thumbnails(self, timeout: float | None = None) -> bool:
        with self._lock:
            pending: List[Future] = list(self._pending.values())
        if not pending:
            return True
        _done, not_done = wait(pending, timeout=timeout)
        return not not_done

    # ---------------------
    # Renderers
    # ---------------------
    def _render_image(self, asset_id: int, source: Path, output: Path) -> None:
        try:
            with Image.open(source) as img:
                img.thumbnail((self.width, self.width * 8))
                img.convert("RGB").save(output, format="JPEG", quality=self.quality)
        except Exception as exc:
            output.unlink(missing_ok=True)
            raise ExternalToolError(
                f"Pillow could not render {source.name}: {exc}",
                asset_id=asset_id,
                tool="pillow",
            ) from exc

    def _render_video(self, asset_id: int, source: Path, output: Path) -> None:
        self._run_tool(
            self.ffmpeg,
            [
                "-y",
                "-loglevel",
                "error",
                "-i",
                str(source),
                "-ss",
                "00:00:01",
                "-frames:v",
                "1",
                "-vf",
                f"scale='min({self.width},iw)':-2",
                str(output),
            ],
            asset_id=asset_id,
        )

    def _render_pdf(self, asset_id: int, source: Path, output: Path) -> None:
        # pdftocairo appends the extension to the output prefix itself
        prefix = output.with_suffix("")
        self._run_tool(
            self.pdftocairo,
            [
                "-jpeg",
                "-singlefile",
                "-scale-to",
                str(self.width),
                str(source),
                str(prefix),
            ],
            asset_id=asset_id,
        )

    def _run_tool(self, tool: str, args: List[str], *, asset_id: int) -> None:
        binary = shutil.which(tool)
        if not binary:
            raise ExternalToolError(
                f"{tool} not available on PATH", asset_id=asset_id, tool=tool
            )
        cmd = [binary, *args]
        LOGGER.debug("Running renderer %s", cmd)
        try:
            result = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                timeout=self.render_timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise ExternalToolError(
                f"{tool} timed out after {self.render_timeout}s",
                asset_id=asset_id,
                tool=tool,
            ) from exc
        except OSError as exc:
            raise ExternalToolError(
                f"{tool} could not be started: {exc}", asset_id=asset_id, tool=tool
            ) from exc
        if result.returncode != 0:
            raise ExternalToolError(
                f"{tool} exited with code {result.returncode}: "
                f"{(result.stderr or '').strip()[:400]}",
                asset_id=asset_id,
                tool=tool,
            )
