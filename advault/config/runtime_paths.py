"""
Runtime paths helpers for Ad Vault.

This module centralises access to mutable directories (data, cache, logs)
and redirects them to OS-appropriate locations using ``platformdirs``.
Portable layouts are still supported via environment overrides so the
vault, database and thumbnail cache can live next to each other.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Iterable, Optional

from platformdirs import PlatformDirs

APP_NAME = os.getenv("ADVAULT_APP_NAME", "Ad Vault")
APP_AUTHOR = os.getenv("ADVAULT_APP_AUTHOR", "AdVault")

DEFAULT_DB_NAME = "advault.db"
DEFAULT_RENDER_TIMEOUT = 30.0
DEFAULT_THUMB_WORKERS = 2


def _expand(path: Optional[str]) -> Optional[Path]:
    if not path:
        return None
    return Path(path).expanduser().resolve()


@dataclass(frozen=True)
class _RuntimeRoots:
    data: Path
    cache: Path
    logs: Path


@lru_cache(maxsize=1)
def _runtime_roots() -> _RuntimeRoots:
    override_root = _expand(os.getenv("ADVAULT_RUNTIME_ROOT"))
    if override_root:
        override_root.mkdir(parents=True, exist_ok=True)
        data = override_root / "data"
        cache = override_root / "cache"
        logs = override_root / "logs"
    else:
        dirs = PlatformDirs(appname=APP_NAME, appauthor=APP_AUTHOR, roaming=False)
        data = Path(dirs.user_data_path)
        cache = Path(dirs.user_cache_path)
        logs = Path(dirs.user_log_path)

    data = _expand(os.getenv("ADVAULT_DATA_DIR")) or data
    cache = _expand(os.getenv("ADVAULT_CACHE_DIR")) or cache
    logs = _expand(os.getenv("ADVAULT_LOG_DIR")) or logs

    for root in (data, cache, logs):
        if root.exists() and not root.is_dir():
            raise RuntimeError(
                f"Runtime path {root} exists but is not a directory. "
                "Remove or relocate the conflicting file and retry."
            )
        root.mkdir(parents=True, exist_ok=True)

    return _RuntimeRoots(data=data, cache=cache, logs=logs)


def refresh_roots() -> None:
    """Forget cached roots so environment overrides are re-read."""
    _runtime_roots.cache_clear()


def _join(base: Path, parts: Iterable[str | os.PathLike[str]]) -> Path:
    path = base.joinpath(*[Path(p) for p in parts if p])
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def data_dir(*parts: str | os.PathLike[str]) -> Path:
    return _join(_runtime_roots().data, parts or ())


def cache_dir(*parts: str | os.PathLike[str]) -> Path:
    return _join(_runtime_roots().cache, parts or ())


def logs_dir(*parts: str | os.PathLike[str]) -> Path:
    return _join(_runtime_roots().logs, parts or ())


def db_path() -> Path:
    return _expand(os.getenv("ADVAULT_DB_PATH")) or data_dir(DEFAULT_DB_NAME)


def vault_dir() -> Path:
    return _expand(os.getenv("ADVAULT_VAULT_ROOT")) or data_dir("vault")


def thumb_cache_dir() -> Path:
    return _expand(os.getenv("ADVAULT_THUMBS_ROOT")) or cache_dir("thumbnails")


def render_timeout() -> float:
    raw = os.getenv("ADVAULT_RENDER_TIMEOUT")
    if not raw:
        return DEFAULT_RENDER_TIMEOUT
    try:
        value = float(raw)
    except ValueError:
        return DEFAULT_RENDER_TIMEOUT
    return value if value > 0 else DEFAULT_RENDER_TIMEOUT


def thumb_workers() -> int:
    raw = os.getenv("ADVAULT_THUMB_WORKERS")
    try:
        value = int(raw) if raw else DEFAULT_THUMB_WORKERS
    except ValueError:
        return DEFAULT_THUMB_WORKERS
    return max(1, value)


def renderer_binary(name: str) -> str:
    """Return the configured binary for an external renderer (``ffmpeg``...)."""
    env_name = f"ADVAULT_{name.upper()}"
    return os.getenv(env_name) or name
