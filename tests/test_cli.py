from __future__ import annotations

import json
import logging

import pytest
from typer.testing import CliRunner

from advault.cli import app

runner = CliRunner()


@pytest.fixture
def cli_args(tmp_path, monkeypatch):
    monkeypatch.setenv("ADVAULT_LOG_DIR", str(tmp_path / "logs"))
    yield [
        "--db",
        str(tmp_path / "cli.db"),
        "--vault",
        str(tmp_path / "cli-vault"),
        "--thumbs",
        str(tmp_path / "cli-thumbs"),
    ]
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, logging.FileHandler):
            root.removeHandler(handler)
            handler.close()


def test_import_list_and_versions(cli_args, make_source, make_png):
    result = runner.invoke(
        app, [*cli_args, "import", str(make_source("ad1.bin")), str(make_png("ad2.png"))]
    )
    assert result.exit_code == 0, result.output
    imported = json.loads(result.stdout)
    assert imported["importedCount"] == 2

    result = runner.invoke(app, [*cli_args, "list", "--sort", "file_name", "--direction", "ASC"])
    assert result.exit_code == 0, result.output
    listing = json.loads(result.stdout)
    assert [a["fileName"] for a in listing["assets"]] == ["ad1.bin", "ad2.png"]
    assert listing["assets"][1]["thumbnail"] is not None

    master_id = listing["assets"][0]["id"]
    result = runner.invoke(app, [*cli_args, "versions", str(master_id)])
    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout)["assets"] == []


def test_versions_of_missing_master_exits_nonzero(cli_args):
    result = runner.invoke(app, [*cli_args, "versions", "42"])
    assert result.exit_code == 1
    assert json.loads(result.stdout)["success"] is False


def test_regenerate_thumbnails(cli_args, make_png, tmp_path):
    runner.invoke(app, [*cli_args, "import", str(make_png("hero.png"))])
    for thumb in (tmp_path / "cli-thumbs").iterdir():
        thumb.unlink()

    result = runner.invoke(app, [*cli_args, "regenerate-thumbnails"])

    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout)["regeneratedCount"] == 1
