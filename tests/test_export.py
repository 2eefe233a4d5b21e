import asyncio
import io
import zipfile

import pytest
from PIL import Image

from conftest import image_source, make_item
from quickcrop.errors import (
    ArchiveConstructionFailure, ContainmentViolation, DeliveryFailure, EncodeFailure, ExportBusy,
    NothingToExport,
)
from quickcrop.export import (
    MODE_ARCHIVE, MODE_SEQUENTIAL, MODE_SINGLE, ExportPipeline, FolderSink,
    build_archive, member_name, render, single_name,
)
from quickcrop.geometry import SourceRect, fit_item, frame_for_ratio
from quickcrop.image_io import SourceFile
from quickcrop.models import Artifact, ExportSettings
from quickcrop.ratios import profile_by_id
from quickcrop.session import Session


class Recorder:
    """Collects delivered artifacts and requested delays."""

    def __init__(self):
        self.delivered: list[Artifact] = []
        self.events: list[tuple] = []

    def deliver(self, artifact):
        self.delivered.append(artifact)
        self.events.append(("deliver", artifact.name))

    async def sleep(self, seconds):
        self.events.append(("sleep", seconds))


def failing_archive(artifacts, name):
    raise ArchiveConstructionFailure("zip backend unavailable")


def _open(artifact) -> Image.Image:
    return Image.open(io.BytesIO(artifact.data))


def _run(coro):
    return asyncio.run(coro)


# =============================================================================
# Naming
# =============================================================================
def test_names():
    assert single_name("beach-cropped", "png") == "beach-cropped.png"
    assert member_name("out", 0, "jpeg") == "out-1.jpeg"
    assert member_name("out", 9, "webp") == "out-10.webp"


# =============================================================================
# Single item
# =============================================================================
def test_single_item_exports_one_file_without_archive(session):
    recorder = Recorder()
    archive_calls = []

    def spy_archive(artifacts, name):
        archive_calls.append(name)
        return build_archive(artifacts, name)

    session.ingest([image_source("beach.png", 400, 300)])
    pipeline = ExportPipeline(recorder.deliver, archive_builder=spy_archive, sleep=recorder.sleep)
    result = _run(session.export(pipeline))

    assert result.mode == MODE_SINGLE
    assert [a.name for a in recorder.delivered] == ["beach-cropped.jpeg"]
    assert recorder.delivered[0].mime_type == "image/jpeg"
    assert archive_calls == []
    assert _open(recorder.delivered[0]).size == (1080, 1080)
    assert not pipeline.busy


def test_single_item_preserve_original_size(session):
    recorder = Recorder()
    session.ingest([image_source("beach.png", 400, 300)])
    session.update_export_settings(preserve_original_size=True, format="png")
    _run(session.export(ExportPipeline(recorder.deliver, sleep=recorder.sleep)))
    img = _open(recorder.delivered[0])
    assert img.format == "PNG"
    assert img.size == (300, 300)


def test_landscape_canonical_size(session):
    recorder = Recorder()
    session.ingest([image_source("tall.png", 300, 400)])
    session.set_aspect_ratio_profile("landscape")
    session.update_export_settings(format="webp", quality=0.5)
    _run(session.export(ExportPipeline(recorder.deliver, sleep=recorder.sleep)))
    artifact = recorder.delivered[0]
    assert artifact.name.endswith(".webp")
    assert artifact.mime_type == "image/webp"
    assert _open(artifact).size == (1920, 1080)


# =============================================================================
# Batch
# =============================================================================
def test_batch_is_delivered_as_one_archive(session):
    recorder = Recorder()
    session.ingest([image_source("a.png"), image_source("b.png"), image_source("c.png")])
    session.update_export_settings(filename="out", format="png")

    result = _run(session.export(ExportPipeline(recorder.deliver, sleep=recorder.sleep)))

    assert result.mode == MODE_ARCHIVE
    assert [a.name for a in recorder.delivered] == ["quickcrop-batch.zip"]
    archive = recorder.delivered[0]
    assert archive.mime_type == "application/zip"
    with zipfile.ZipFile(io.BytesIO(archive.data)) as zf:
        assert zf.namelist() == ["out-1.png", "out-2.png", "out-3.png"]
        with Image.open(io.BytesIO(zf.read("out-2.png"))) as member:
            assert member.size == (1080, 1080)
    assert ("sleep", 0.5) not in recorder.events


def test_archive_failure_falls_back_to_sequential_files(session):
    recorder = Recorder()
    session.ingest([image_source("a.png"), image_source("b.png")])
    session.update_export_settings(filename="out", format="jpeg")
    pipeline = ExportPipeline(
        recorder.deliver, archive_builder=failing_archive, sleep=recorder.sleep, delay=0.5,
    )

    result = _run(session.export(pipeline))

    assert result.mode == MODE_SEQUENTIAL
    assert result.archive_error == "zip backend unavailable"
    assert recorder.events == [
        ("deliver", "out-1.jpeg"),
        ("sleep", 0.5),
        ("deliver", "out-2.jpeg"),
    ]
    assert not any(a.name.endswith(".zip") for a in recorder.delivered)
    for artifact in recorder.delivered:
        assert _open(artifact).format == "JPEG"


def test_archive_is_attempted_once(session):
    recorder = Recorder()
    calls = []

    def flaky_archive(artifacts, name):
        calls.append(name)
        raise ArchiveConstructionFailure("disk full")

    session.ingest([image_source("a.png"), image_source("b.png"), image_source("c.png")])
    _run(session.export(ExportPipeline(recorder.deliver, archive_builder=flaky_archive, sleep=recorder.sleep)))
    assert calls == ["quickcrop-batch.zip"]
    assert len(recorder.delivered) == 3


# =============================================================================
# Failures
# =============================================================================
class BrokenHandle:
    mode = "RGB"
    info: dict = {}

    def resize(self, *args, **kwargs):
        raise OSError("decoder exploded")


def test_encode_failure_aborts_batch():
    recorder = Recorder()
    good = make_item(400, 300, item_id="good")
    good.handle = Image.new("RGB", (400, 300))
    bad = make_item(400, 300, handle=BrokenHandle(), item_id="bad")

    frame = frame_for_ratio(1)
    for item in (good, bad):
        fit_item(item, frame)
    pipeline = ExportPipeline(recorder.deliver, sleep=recorder.sleep)

    with pytest.raises(EncodeFailure):
        _run(pipeline.export([good, bad], frame, profile_by_id("square"), ExportSettings()))
    assert recorder.delivered == []
    assert not pipeline.busy


def test_containment_violation_is_not_papered_over(session):
    recorder = Recorder()
    session.ingest([image_source("a.png", 400, 300)])
    session.items[0].x = 50.0
    with pytest.raises(ContainmentViolation):
        _run(session.export(ExportPipeline(recorder.deliver, sleep=recorder.sleep)))
    assert recorder.delivered == []


def test_empty_session_has_nothing_to_export(session):
    with pytest.raises(NothingToExport):
        _run(session.export(ExportPipeline(Recorder().deliver)))


def test_concurrent_export_is_rejected_while_busy(session):
    recorder = Recorder()
    session.ingest([image_source("a.png"), image_source("b.png")])
    pipeline = ExportPipeline(recorder.deliver, sleep=recorder.sleep)

    async def both():
        return await asyncio.gather(
            session.export(pipeline), session.export(pipeline), return_exceptions=True,
        )

    first, second = _run(both())
    assert first.mode == MODE_ARCHIVE
    assert isinstance(second, ExportBusy)
    assert len(recorder.delivered) == 1
    assert not pipeline.busy


# =============================================================================
# Encoding / archive helpers
# =============================================================================
def test_render_keeps_alpha_for_png_and_flattens_jpeg():
    source = Image.new("RGBA", (100, 100), (10, 20, 30, 100))
    rect = SourceRect(0, 0, 100, 100)

    png = render(source, rect, (50, 50), ExportSettings(format="png"), "a.png")
    jpeg = render(source, rect, (50, 50), ExportSettings(format="jpeg"), "a.jpeg")

    assert _open(png).mode == "RGBA"
    assert _open(jpeg).mode == "RGB"


def test_render_samples_only_the_source_rect():
    source = Image.new("RGB", (200, 100), (255, 0, 0))
    source.paste((0, 0, 255), (100, 0, 200, 100))
    artifact = render(source, SourceRect(100, 0, 100, 100), (20, 20), ExportSettings(format="png"), "x.png")
    img = _open(artifact).convert("RGB")
    assert img.getpixel((10, 10)) == (0, 0, 255)


def test_lower_quality_produces_smaller_jpeg():
    source = Image.effect_noise((256, 256), 64).convert("RGB")
    rect = SourceRect(0, 0, 256, 256)
    low = render(source, rect, (256, 256), ExportSettings(quality=0.1), "low.jpeg")
    high = render(source, rect, (256, 256), ExportSettings(quality=1.0), "high.jpeg")
    assert len(low.data) < len(high.data)


def test_build_archive_wraps_errors(monkeypatch):
    def disk_full(self, *args, **kwargs):
        raise OSError("No space left on device")

    monkeypatch.setattr(zipfile.ZipFile, "writestr", disk_full)
    with pytest.raises(ArchiveConstructionFailure, match="No space left"):
        build_archive([Artifact("a.png", "image/png", b"x")], "batch.zip")


def test_folder_sink_writes_unique_files(tmp_path):
    sink = FolderSink(tmp_path / "exports")
    sink(Artifact("out.png", "image/png", b"one"))
    sink(Artifact("out.png", "image/png", b"two"))
    assert [p.name for p in sink.written] == ["out.png", "out-01.png"]
    assert (tmp_path / "exports" / "out-01.png").read_bytes() == b"two"


# =============================================================================
# Consistency / delivery errors
# =============================================================================
def _two_tone_source(name: str) -> SourceFile:
    """400x300 PNG, red on the left half and blue on the right."""
    img = Image.new("RGB", (400, 300), (255, 0, 0))
    img.paste((0, 0, 255), (200, 0, 400, 300))
    buf = io.BytesIO()
    img.save(buf, "PNG")
    return SourceFile(name, buf.getvalue())


def _members(artifact) -> dict[str, bytes]:
    with zipfile.ZipFile(io.BytesIO(artifact.data)) as zf:
        return {name: zf.read(name) for name in zf.namelist()}


def test_profile_change_during_export_keeps_starting_crops(session):
    sources = [_two_tone_source("a.png"), _two_tone_source("b.png")]
    session.ingest(sources)
    session.update_export_settings(filename="out", format="png")
    recorder = Recorder()
    pipeline = ExportPipeline(recorder.deliver, sleep=recorder.sleep)

    async def export_then_switch():
        task = asyncio.create_task(session.export(pipeline))
        await asyncio.sleep(0)  # let the export start rendering
        session.set_aspect_ratio_profile("landscape")
        return await task

    result = _run(export_then_switch())
    assert result.mode == MODE_ARCHIVE
    assert session.profile.id == "landscape"

    untouched = Session()
    untouched.ingest(sources)
    untouched.update_export_settings(filename="out", format="png")
    expected = Recorder()
    _run(untouched.export(ExportPipeline(expected.deliver, sleep=expected.sleep)))
    untouched.reset()

    members = _members(recorder.delivered[0])
    assert members == _members(expected.delivered[0])
    with Image.open(io.BytesIO(members["out-2.png"])) as img:
        assert img.size == (1080, 1080)


def test_folder_sink_write_error_is_a_delivery_failure(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_bytes(b"")
    sink = FolderSink(blocker / "sub")
    with pytest.raises(DeliveryFailure) as info:
        sink(Artifact("out.png", "image/png", b"x"))
    assert isinstance(info.value.__cause__, OSError)
    assert sink.written == []


def test_export_reports_delivery_failure(session, tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_bytes(b"")
    session.ingest([image_source("a.png")])
    pipeline = ExportPipeline(FolderSink(blocker / "sub"))

    with pytest.raises(DeliveryFailure):
        _run(session.export(pipeline))
    assert not pipeline.busy


def test_sink_os_errors_are_wrapped_during_fallback(session):
    def disk_full(artifact):
        raise OSError("No space left on device")

    session.ingest([image_source("a.png"), image_source("b.png")])
    pipeline = ExportPipeline(disk_full, archive_builder=failing_archive, sleep=Recorder().sleep)
    with pytest.raises(DeliveryFailure, match="No space left"):
        _run(session.export(pipeline))
