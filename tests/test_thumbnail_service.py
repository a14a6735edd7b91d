from __future__ import annotations

import subprocess
import threading
from pathlib import Path

import pytest
from PIL import Image

from advault.core.errors import ExternalToolError
from advault.studio.core import thumbnail_service as thumbs_module
from advault.studio.core.thumbnail_service import ThumbnailService, ThumbnailStatus


@pytest.fixture
def service(tmp_path) -> ThumbnailService:
    return ThumbnailService(tmp_path / "thumbs", render_timeout=2.0)


def _fake_tool(monkeypatch, *, returncode=0, write_output=True, raise_exc=None):
    calls = []
    monkeypatch.setattr(thumbs_module.shutil, "which", lambda name: f"/usr/bin/{name}")

    def _run(cmd, **kwargs):
        calls.append((cmd, kwargs))
        if raise_exc is not None:
            raise raise_exc
        if write_output:
            if Path(cmd[0]).name == "pdftocairo":
                out = Path(cmd[-1] + ".jpg")
            else:
                out = Path(cmd[-1])
            out.write_bytes(b"\xff\xd8partial")
        return subprocess.CompletedProcess(cmd, returncode, stdout="", stderr="boom")

    monkeypatch.setattr(thumbs_module.subprocess, "run", _run)
    return calls


def _leftovers(service: ThumbnailService):
    return sorted(p.name for p in service.cache_root.iterdir())


def test_unsupported_extension_returns_none(service, tmp_path):
    source = tmp_path / "notes.txt"
    source.write_text("hello", encoding="utf-8")

    assert service.generate(7, source) is None
    assert service.schedule(7, source) is None
    assert _leftovers(service) == []
    assert service.status(7) is ThumbnailStatus.MISSING


def test_image_thumbnail_is_resized_jpeg(service, make_png):
    source = make_png(size=(1600, 900))

    ref = service.generate(3, source)

    assert ref == "/cache/thumbnails/3.jpg"
    assert service.get_existing(3) == ref
    assert service.status(3) is ThumbnailStatus.READY
    with Image.open(service.cache_path(3)) as img:
        assert img.format == "JPEG"
        assert img.size == (400, 225)
    assert _leftovers(service) == ["3.jpg"]


def test_generate_is_idempotent(service, make_png):
    source = make_png()
    assert service.generate(1, source) == service.generate(1, source)
    assert _leftovers(service) == ["1.jpg"]


def test_corrupt_image_returns_none(service, make_source):
    source = make_source("broken.png", b"not really a png")
    assert service.generate(2, source) is None
    assert _leftovers(service) == []


def test_video_uses_ffmpeg(service, make_source, monkeypatch):
    calls = _fake_tool(monkeypatch)
    source = make_source("ad1.mp4")

    assert service.generate(5, source) == "/cache/thumbnails/5.jpg"

    cmd, kwargs = calls[0]
    assert Path(cmd[0]).name == "ffmpeg"
    assert cmd[cmd.index("-i") + 1] == str(source)
    assert cmd[cmd.index("-ss") + 1] == "00:00:01"
    assert cmd[cmd.index("-frames:v") + 1] == "1"
    assert kwargs["timeout"] == 2.0
    assert _leftovers(service) == ["5.jpg"]


def test_pdf_uses_pdftocairo(service, make_source, monkeypatch):
    calls = _fake_tool(monkeypatch)
    source = make_source("brief.pdf")

    assert service.generate(6, source) == "/cache/thumbnails/6.jpg"

    cmd, _kwargs = calls[0]
    assert Path(cmd[0]).name == "pdftocairo"
    assert "-singlefile" in cmd
    assert cmd[cmd.index("-scale-to") + 1] == "400"
    assert _leftovers(service) == ["6.jpg"]


@pytest.mark.parametrize(
    "kwargs",
    [
        {"returncode": 1},
        {"raise_exc": subprocess.TimeoutExpired(cmd="ffmpeg", timeout=2.0)},
        {"raise_exc": OSError("exec format error")},
        {"write_output": False},
    ],
)
def test_renderer_failures_leave_no_output(service, make_source, monkeypatch, kwargs):
    _fake_tool(monkeypatch, **kwargs)
    assert service.generate(8, make_source("clip.mov")) is None
    assert _leftovers(service) == []


def test_missing_binary_returns_none(service, make_source, monkeypatch):
    monkeypatch.setattr(thumbs_module.shutil, "which", lambda name: None)
    assert service.generate(9, make_source("clip.mp4")) is None
    assert _leftovers(service) == []


def test_run_tool_reports_missing_binary(service, monkeypatch):
    monkeypatch.setattr(thumbs_module.shutil, "which", lambda name: None)
    with pytest.raises(ExternalToolError) as excinfo:
        service._run_tool("ffmpeg", ["-version"], asset_id=1)
    assert excinfo.value.tool == "ffmpeg"


def test_invalidate_is_idempotent(service, make_png):
    service.invalidate(11)

    service.generate(11, make_png())
    service.invalidate(11)
    service.invalidate(11)

    assert service.get_existing(11) is None
    assert service.status(11) is ThumbnailStatus.MISSING


def test_render_finishing_after_invalidate_is_discarded(service, make_png, monkeypatch):
    started = threading.Event()
    release = threading.Event()
    original = ThumbnailService._render_image

    def _slow_render(self, asset_id, source, output):
        started.set()
        release.wait(5)
        original(self, asset_id, source, output)

    monkeypatch.setattr(ThumbnailService, "_render_image", _slow_render)
    source = make_png()
    result = {}
    worker = threading.Thread(
        target=lambda: result.setdefault("ref", service.generate(12, source))
    )
    worker.start()
    assert started.wait(5)

    service.invalidate(12)
    release.set()
    worker.join(5)

    assert result["ref"] is None
    assert _leftovers(service) == []
    assert service._epochs == {}


def test_schedule_runs_on_executor(tmp_path, make_png):
    from concurrent.futures import ThreadPoolExecutor

    executor = ThreadPoolExecutor(max_workers=1)
    try:
        service = ThumbnailService(tmp_path / "thumbs", executor=executor)
        future = service.schedule(4, make_png())
        assert future is not None
        assert service.wait_for_thumbnails(timeout=10)
        assert future.result() == "/cache/thumbnails/4.jpg"
        assert service.status(4) is ThumbnailStatus.READY
    finally:
        executor.shutdown(wait=True)


def test_status_is_pending_while_job_runs(tmp_path, make_png, monkeypatch):
    from concurrent.futures import ThreadPoolExecutor

    release = threading.Event()
    original = ThumbnailService._render_image

    def _blocked(self, asset_id, source, output):
        release.wait(5)
        original(self, asset_id, source, output)

    monkeypatch.setattr(ThumbnailService, "_render_image", _blocked)
    executor = ThreadPoolExecutor(max_workers=1)
    try:
        service = ThumbnailService(tmp_path / "thumbs", executor=executor)
        service.schedule(13, make_png())
        assert service.status(13) is ThumbnailStatus.PENDING
        release.set()
        assert service.wait_for_thumbnails(timeout=10)
        assert service.status(13) is ThumbnailStatus.READY
    finally:
        release.set()
        executor.shutdown(wait=True)


def test_invalidate_without_outstanding_render_keeps_no_state(service, make_png):
    for asset_id in range(20, 30):
        service.generate(asset_id, make_png())
        service.invalidate(asset_id)

    assert service._epochs == {}
    assert service._rendering == {}


def test_failed_move_into_cache_returns_none(service, make_png, monkeypatch):
    def _denied(src, dst):
        raise PermissionError(13, "Permission denied", str(dst))

    monkeypatch.setattr(thumbs_module.os, "replace", _denied)

    assert service.generate(14, make_png()) is None
    assert _leftovers(service) == []
    assert service.status(14) is ThumbnailStatus.MISSING


def test_avif_is_rendered_with_pillow(service, tmp_path):
    from PIL import features

    if not features.check("avif"):
        pytest.skip("Pillow built without AVIF support")
    source = tmp_path / "banner.avif"
    Image.new("RGB", (640, 480), (10, 120, 200)).save(source, format="AVIF")

    assert service.generate(15, source) == "/cache/thumbnails/15.jpg"
