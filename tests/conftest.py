from __future__ import annotations

from pathlib import Path
from typing import Callable, Tuple

import pytest
from PIL import Image

from advault.core.runtime import LibraryRuntime
from advault.studio.core.asset_registry import AssetRegistry
from advault.studio.core.library import AssetLibrary
from advault.studio.core.version_registry import VersionRegistry


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch, tmp_path):
    monkeypatch.setenv("ADVAULT_RUNTIME_ROOT", str(tmp_path / "runtime"))
    for name in ("ADVAULT_FFMPEG", "ADVAULT_PDFTOCAIRO", "ADVAULT_THUMB_WORKERS"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def runtime(tmp_path: Path):
    rt = LibraryRuntime(
        db_path=tmp_path / "advault.db",
        vault_root=tmp_path / "vault",
        thumb_root=tmp_path / "cache" / "thumbnails",
        render_timeout=5.0,
        thumb_workers=1,
    )
    rt.init()
    try:
        yield rt
    finally:
        rt.shutdown()


@pytest.fixture
def assets(runtime) -> AssetRegistry:
    return AssetRegistry(runtime)


@pytest.fixture
def versions(runtime) -> VersionRegistry:
    return VersionRegistry(runtime)


@pytest.fixture
def library(runtime) -> AssetLibrary:
    return AssetLibrary(runtime)


@pytest.fixture
def source_dir(tmp_path: Path) -> Path:
    path = tmp_path / "incoming"
    path.mkdir()
    return path


@pytest.fixture
def make_source(source_dir: Path) -> Callable[..., Path]:
    def _make(name: str, content: bytes = b"payload") -> Path:
        path = source_dir / name
        path.write_bytes(content)
        return path

    return _make


@pytest.fixture
def make_png(source_dir: Path) -> Callable[..., Path]:
    def _make(
        name: str = "frame.png",
        size: Tuple[int, int] = (800, 600),
        color: Tuple[int, int, int] = (200, 40, 40),
    ) -> Path:
        path = source_dir / name
        Image.new("RGB", size, color).save(path, format="PNG")
        return path

    return _make
