from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer
from pydantic import BaseModel

from advault.core.runtime import LibraryRuntime
from advault.logging_config import init_logging
from advault.studio.core.library import AssetLibrary

app = typer.Typer(add_completion=False, help="AdVault asset library utilities.")
logger = logging.getLogger(__name__)


def _runtime(ctx: typer.Context) -> LibraryRuntime:
    opts = ctx.obj or {}
    return LibraryRuntime(
        db_path=opts.get("db"),
        vault_root=opts.get("vault"),
        thumb_root=opts.get("thumbs"),
    )


def _emit(result: BaseModel) -> None:
    print(result.model_dump_json(by_alias=True, indent=2))
    if getattr(result, "success", True) is False:
        raise typer.Exit(code=1)


@app.callback()
def main(
    ctx: typer.Context,
    db: Optional[Path] = typer.Option(None, help="SQLite database path."),
    vault: Optional[Path] = typer.Option(None, help="Vault directory for imported files."),
    thumbs: Optional[Path] = typer.Option(None, help="Thumbnail cache directory."),
    log_level: str = typer.Option("INFO", help="Root log level."),
) -> None:
    """Shared runtime options for every command."""
    ctx.obj = {"db": db, "vault": vault, "thumbs": thumbs, "log_level": log_level}


@app.command()
def serve(
    ctx: typer.Context,
    host: str = typer.Option("127.0.0.1", help="Bind address."),
    port: int = typer.Option(8741, help="Bind port."),
) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    from advault.server.app import create_app

    init_logging(level=ctx.obj["log_level"])
    logger.info("Starting asset library API on %s:%s", host, port)
    uvicorn.run(create_app(_runtime(ctx)), host=host, port=port, log_config=None)


@app.command("import")
def import_files(
    ctx: typer.Context,
    paths: List[Path] = typer.Argument(..., help="Files to import into the vault."),
    wait: float = typer.Option(60.0, help="Seconds to wait for thumbnails."),
) -> None:
    """Import files as new masters."""
    init_logging(level=ctx.obj["log_level"], console=False)
    with _runtime(ctx) as runtime:
        result = AssetLibrary(runtime).bulk_import_assets(paths)
        if not runtime.thumbnails.wait_for_thumbnails(timeout=wait):
            logger.warning("Thumbnail generation still running after %ss", wait)
    _emit(result)


@app.command("list")
def list_assets(
    ctx: typer.Context,
    year: Optional[int] = typer.Option(None, help="Exact year (0 for all)."),
    advertiser: Optional[str] = typer.Option(None),
    niche: Optional[str] = typer.Option(None),
    shares_min: Optional[int] = typer.Option(None, help="Minimum own share count."),
    shares_max: Optional[int] = typer.Option(None, help="Maximum own share count."),
    sort: str = typer.Option("created_at", help="Sort field."),
    direction: str = typer.Option("DESC", help="ASC or DESC."),
) -> None:
    """Print master assets with their aggregated shares as JSON."""
    init_logging(level=ctx.obj["log_level"], console=False)
    filters = {
        "year": year,
        "advertiser": advertiser,
        "niche": niche,
        "shares_min": shares_min,
        "shares_max": shares_max,
    }
    with _runtime(ctx) as runtime:
        result = AssetLibrary(runtime).get_assets(
            filters, {"field": sort, "direction": direction}
        )
    _emit(result)


@app.command()
def versions(ctx: typer.Context, master_id: int) -> None:
    """Print the versions of a master asset."""
    init_logging(level=ctx.obj["log_level"], console=False)
    with _runtime(ctx) as runtime:
        result = AssetLibrary(runtime).get_versions(master_id)
    _emit(result)


@app.command("regenerate-thumbnails")
def regenerate_thumbnails(
    ctx: typer.Context,
    force: bool = typer.Option(False, help="Re-render thumbnails that already exist."),
) -> None:
    """Render missing thumbnails for every asset."""
    init_logging(level=ctx.obj["log_level"], console=False)
    with _runtime(ctx) as runtime:
        result = AssetLibrary(runtime).regenerate_thumbnails(force=force)
    logger.info("Regenerated %d thumbnail(s)", result.regenerated_count)
    _emit(result)


if __name__ == "__main__":
    app()
