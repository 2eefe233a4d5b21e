"""
Export pipeline: composite, encode and deliver cropped images.

Items are rendered strictly one at a time.  Each render runs in a worker
thread (``asyncio.to_thread``) and is awaited before the next starts, so at
most one full-size raster is alive at once.  The thread body is Qt-free and
only touches Pillow.

Delivery goes through a sink callable taking an ``Artifact``.  One item is
delivered as a single file; several are bundled into one zip archive, and if
the archive cannot be built each file is delivered on its own with a fixed
delay between downloads.
"""

import asyncio
import io
import logging
import zipfile
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from PIL import Image

from quickcrop.config import BATCH_ARCHIVE_NAME, INTER_DOWNLOAD_DELAY, PNG_COMPRESS_LEVEL
from quickcrop.errors import (
    ArchiveConstructionFailure, DeliveryFailure, EncodeFailure, ExportBusy, NothingToExport,
)
from quickcrop.geometry import SourceRect, checked_source_rect
from quickcrop.image_io import unique_path
from quickcrop.models import (
    Artifact, AspectRatioProfile, CropFrame, ExportFormat, ExportSettings, ImageItem,
)
from quickcrop.ratios import output_size

logger = logging.getLogger(__name__)

MODE_SINGLE = "single"
MODE_ARCHIVE = "archive"
MODE_SEQUENTIAL = "sequential"

ARCHIVE_MIME_TYPE = "application/zip"


# =============================================================================
# Naming
# =============================================================================
def single_name(base: str, extension: str) -> str:
    return f"{base}.{extension}"


def member_name(base: str, index: int, extension: str) -> str:
    """Batch member name; *index* is zero-based, names are one-based."""
    return f"{base}-{index + 1}.{extension}"


# =============================================================================
# Compositing / encoding (runs in a worker thread)
# =============================================================================
def _has_alpha(img: Image.Image) -> bool:
    return img.mode in ("RGBA", "LA", "PA") or (img.mode == "P" and "transparency" in img.info)


def composite(source: Image.Image, rect: SourceRect, size: tuple[int, int], fmt: ExportFormat) -> Image.Image:
    """Resample *rect* of *source* onto a fresh surface of *size* in one pass."""
    mode = "RGBA" if fmt != ExportFormat.JPEG and _has_alpha(source) else "RGB"
    img = source if source.mode == mode else source.convert(mode)
    return img.resize(size, Image.Resampling.LANCZOS, box=rect.box)


def encode(img: Image.Image, settings: ExportSettings) -> bytes:
    """Encode an image with the format and quality from *settings*."""
    spec = settings.spec
    buf = io.BytesIO()
    if spec.lossy:
        quality = int(round(settings.quality * 100))
        if settings.format == ExportFormat.JPEG:
            img.save(buf, spec.pil_format, quality=quality, optimize=True)
        else:
            img.save(buf, spec.pil_format, quality=quality)
    else:
        img.save(buf, spec.pil_format, compress_level=PNG_COMPRESS_LEVEL)
    return buf.getvalue()


def render(
    source: Image.Image, rect: SourceRect, size: tuple[int, int],
    settings: ExportSettings, name: str,
) -> Artifact:
    """Composite and encode one item into a named artifact."""
    try:
        data = encode(composite(source, rect, size, settings.format), settings)
    except (OSError, ValueError, KeyError) as exc:
        raise EncodeFailure(f"Failed to export {name}: {exc}") from exc
    return Artifact(name, settings.spec.mime_type, data)


# =============================================================================
# Archive
# =============================================================================
def build_archive(artifacts: Sequence[Artifact], name: str) -> Artifact:
    """Bundle artifacts into an in-memory zip archive."""
    buf = io.BytesIO()
    try:
        with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
            for artifact in artifacts:
                zf.writestr(artifact.name, artifact.data)
    except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError, ValueError) as exc:
        raise ArchiveConstructionFailure(f"Could not build {name}: {exc}") from exc
    return Artifact(name, ARCHIVE_MIME_TYPE, buf.getvalue())


# =============================================================================
# Delivery
# =============================================================================
class FolderSink:
    """Deliver artifacts by writing them into a directory."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self.written: list[Path] = []

    def __call__(self, artifact: Artifact) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            out_path = unique_path(self.directory / artifact.name)
            out_path.write_bytes(artifact.data)
        except OSError as exc:
            raise DeliveryFailure(f"Could not save {artifact.name} to {self.directory}: {exc}") from exc
        self.written.append(out_path)
        logger.info("Wrote %s (%d bytes)", out_path, len(artifact.data))


@dataclass
class ExportResult:
    mode: str
    artifacts: list[Artifact] = field(default_factory=list)
    archive_error: str | None = None


# =============================================================================
# Pipeline
# =============================================================================
class ExportPipeline:
    """Sequential exporter with a busy guard against overlapping exports."""

    def __init__(
        self,
        deliver: Callable[[Artifact], None],
        archive_builder: Callable[[Sequence[Artifact], str], Artifact] = build_archive,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        delay: float = INTER_DOWNLOAD_DELAY,
        archive_name: str = BATCH_ARCHIVE_NAME,
    ):
        self._deliver = deliver
        self._archive_builder = archive_builder
        self._sleep = sleep
        self._delay = delay
        self._archive_name = archive_name
        self._busy = False

    @property
    def busy(self) -> bool:
        return self._busy

    async def export(
        self,
        items: Sequence[ImageItem],
        frame: CropFrame,
        profile: AspectRatioProfile,
        settings: ExportSettings,
    ) -> ExportResult:
        """Render and deliver every item in order."""
        if self._busy:
            raise ExportBusy("An export is already in progress")
        if not items:
            raise NothingToExport("No images to export")

        self._busy = True
        try:
            # Crops are fixed before the first await; the session may change while rendering
            ext = settings.spec.extension
            if len(items) == 1:
                names = [single_name(settings.filename, ext)]
            else:
                names = [member_name(settings.filename, i, ext) for i in range(len(items))]
            jobs = [_plan(item, frame, profile, settings, name) for item, name in zip(items, names)]

            rendered: list[Artifact] = []
            for job in jobs:
                rendered.append(await self._render(job, settings))

            if len(rendered) == 1:
                self._send(rendered[0])
                logger.info("Exported %s", rendered[0].name)
                return ExportResult(MODE_SINGLE, rendered)

            archive_name = f"{self._archive_name}.zip"
            try:
                archive = self._archive_builder(rendered, archive_name)
            except ArchiveConstructionFailure as exc:
                logger.warning("%s; delivering %d files individually", exc, len(rendered))
                await self._deliver_sequentially(rendered)
                return ExportResult(MODE_SEQUENTIAL, rendered, archive_error=str(exc))

            self._send(archive)
            logger.info("Exported %d images to %s", len(rendered), archive_name)
            return ExportResult(MODE_ARCHIVE, [archive])
        finally:
            self._busy = False

    async def _render(self, job: "_RenderJob", settings: ExportSettings) -> Artifact:
        logger.debug("Rendering %s from %s at %dx%d", job.name, job.rect, *job.size)
        return await asyncio.to_thread(render, job.handle, job.rect, job.size, settings, job.name)

    def _send(self, artifact: Artifact) -> None:
        try:
            self._deliver(artifact)
        except OSError as exc:
            raise DeliveryFailure(f"Could not deliver {artifact.name}: {exc}") from exc

    async def _deliver_sequentially(self, artifacts: Sequence[Artifact]) -> None:
        for index, artifact in enumerate(artifacts):
            if index:
                await self._sleep(self._delay)
            self._send(artifact)
            logger.info("Exported %s", artifact.name)


@dataclass(frozen=True)
class _RenderJob:
    name: str
    handle: Image.Image = field(repr=False)
    rect: SourceRect
    size: tuple[int, int]


def _plan(
    item: ImageItem, frame: CropFrame, profile: AspectRatioProfile,
    settings: ExportSettings, name: str,
) -> _RenderJob:
    rect = checked_source_rect(frame, item)
    size = output_size(profile, item.natural_width, item.natural_height, settings.preserve_original_size)
    return _RenderJob(name, item.handle, rect, size)
