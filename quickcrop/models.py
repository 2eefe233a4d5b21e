"""
Data models shared by the session, the geometry engine and the exporter.

``ImageItem`` is the per-image crop record.  Its display size and offset are
always derived from the natural size and the active ``CropFrame`` by the
functions in ``geometry``; nothing else writes them.  ``ExportFormat`` plus
``FORMAT_SPECS`` form the closed capability table for encoders.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from quickcrop.config import (
    EXPORT_FORMAT_DEFAULT, EXPORT_QUALITY_DEFAULT, FILENAME_DEFAULT,
    INVALID_FILENAME_CHARS, RESERVED_FILENAMES,
)


# =============================================================================
# Export formats
# =============================================================================
class ExportFormat(str, Enum):
    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"


@dataclass(frozen=True)
class FormatSpec:
    """Encoder capabilities for one export format."""
    pil_format: str
    extension: str
    mime_type: str
    lossy: bool


FORMAT_SPECS: dict[ExportFormat, FormatSpec] = {
    ExportFormat.JPEG: FormatSpec("JPEG", "jpeg", "image/jpeg", lossy=True),
    ExportFormat.PNG: FormatSpec("PNG", "png", "image/png", lossy=False),
    ExportFormat.WEBP: FormatSpec("WEBP", "webp", "image/webp", lossy=True),
}


# =============================================================================
# Data classes
# =============================================================================
@dataclass(frozen=True)
class CropFrame:
    """Crop viewport size in layout units."""
    width: float
    height: float


@dataclass(frozen=True)
class AspectRatioProfile:
    """One selectable output shape with its canonical export resolution."""
    id: str
    label: str
    ratio_w: float
    ratio_h: float
    target_w: int
    target_h: int
    description: str = ""

    @property
    def ratio(self) -> float:
        return self.ratio_w / self.ratio_h


@dataclass(frozen=True)
class ExportSettings:
    format: ExportFormat = ExportFormat(EXPORT_FORMAT_DEFAULT)
    quality: float = EXPORT_QUALITY_DEFAULT  # 0..1, lossy formats only
    filename: str = FILENAME_DEFAULT
    preserve_original_size: bool = False

    @property
    def spec(self) -> FormatSpec:
        return FORMAT_SPECS[self.format]


@dataclass(eq=False)
class ImageItem:
    """Crop state for one ingested image."""
    id: str
    name: str
    natural_width: int
    natural_height: int
    handle: Any = field(default=None, repr=False)  # decoded PIL image, owned by the session
    display_width: float = 0.0
    display_height: float = 0.0
    x: float = 0.0  # top-left of the displayed image relative to the frame
    y: float = 0.0


@dataclass(frozen=True)
class Artifact:
    """A named, encoded byte buffer ready for delivery."""
    name: str
    mime_type: str
    data: bytes = field(repr=False)


# =============================================================================
# Validation
# =============================================================================
def validate_filename(filename: str) -> str | None:
    """
    Validate a filename base for use as a single path component.

    Returns an error string if invalid, or None if valid.
    """
    if not isinstance(filename, str) or not filename.strip():
        return "filename must be a non-empty string"

    if filename != filename.strip() or filename.startswith(".") or filename.endswith("."):
        return "filename must not start or end with a dot or space"

    if ".." in filename:
        return "filename must not contain '..'"

    bad = INVALID_FILENAME_CHARS & set(filename)
    if bad:
        return f"filename contains invalid characters: {' '.join(sorted(repr(c) for c in bad))}"

    stem = filename.split(".")[0].upper()
    if stem in RESERVED_FILENAMES:
        return f"filename uses reserved name '{stem}'"

    return None


def validate_export_settings(settings: ExportSettings) -> list[str]:
    """
    Validate export settings.

    Returns a list of error strings (empty means valid).
    """
    errors: list[str] = []

    try:
        ExportFormat(settings.format)
    except ValueError:
        supported = ", ".join(f.value for f in ExportFormat)
        errors.append(f"format must be one of {supported}, got {settings.format!r}")

    quality = settings.quality
    if isinstance(quality, bool) or not isinstance(quality, (int, float)) or not 0.0 <= quality <= 1.0:
        errors.append(f"quality must be a number in [0, 1], got {quality!r}")

    filename_err = validate_filename(settings.filename)
    if filename_err:
        errors.append(filename_err)

    if not isinstance(settings.preserve_original_size, bool):
        errors.append("preserve_original_size must be a boolean")

    return errors
