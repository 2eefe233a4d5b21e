"""
Qt-free image I/O: the raster source adapter.

Decodes raw bytes (including PSD and HEIC) into a fully loaded Pillow image plus its
natural dimensions, filters non-image inputs, and provides a collision-free
path helper for writing artifacts to disk.
"""

import io
import logging
import struct
from dataclasses import dataclass, field
from pathlib import Path

from PIL import Image, UnidentifiedImageError
from pillow_heif import register_heif_opener
from psd_tools import PSDImage

from quickcrop.config import HEIF_EXTENSIONS, IMAGE_EXTENSIONS, IMAGE_MIME_PREFIX
from quickcrop.errors import DecodeFailure

logger = logging.getLogger(__name__)

# Allow very large images (Pillow's default limit is ~178MP)
Image.MAX_IMAGE_PIXELS = None

# HEIC/HEIF photos decode through the regular Image.open path
register_heif_opener()

_PSD_SIGNATURE = b"8BPS"


@dataclass(frozen=True)
class SourceFile:
    """One raw input offered for ingestion."""
    name: str
    data: bytes = field(repr=False)
    mime_type: str | None = None

    @classmethod
    def from_path(cls, path: Path) -> "SourceFile":
        return cls(name=path.name, data=path.read_bytes())

    @property
    def stem(self) -> str:
        return Path(self.name).stem if self.name else ""


@dataclass(frozen=True)
class DecodedImage:
    natural_width: int
    natural_height: int
    handle: Image.Image = field(repr=False)


def is_image_source(source: SourceFile) -> bool:
    """True if the input declares itself as an image by MIME type or extension."""
    suffix = Path(source.name).suffix.lower()
    if source.mime_type:
        # HEIC uploads often arrive with a generic MIME type
        return source.mime_type.lower().startswith(IMAGE_MIME_PREFIX) or suffix in HEIF_EXTENSIONS
    return suffix in IMAGE_EXTENSIONS


def _open_psd(data: bytes) -> Image.Image:
    psd = PSDImage.open(io.BytesIO(data))
    return psd.composite()


def decode(data: bytes, name: str = "") -> DecodedImage:
    """Decode image bytes into a loaded Pillow image, or raise DecodeFailure."""
    try:
        if data[:4] == _PSD_SIGNATURE:
            img = _open_psd(data)
        else:
            img = Image.open(io.BytesIO(data))
            img.load()
    except (UnidentifiedImageError, OSError, ValueError, SyntaxError, EOFError, struct.error) as exc:
        raise DecodeFailure(f"Cannot decode {name or 'image'}: {exc}") from exc

    if img is None:
        raise DecodeFailure(f"Cannot decode {name or 'image'}: empty composite")

    width, height = img.size
    if width <= 0 or height <= 0:
        img.close()
        raise DecodeFailure(f"Cannot decode {name or 'image'}: zero-sized image")

    logger.debug("Decoded %s: %dx%d %s", name or "<bytes>", width, height, img.mode)
    return DecodedImage(width, height, img)


def release(handle: Image.Image | None) -> None:
    """Free the pixel buffer behind a decoded handle."""
    if handle is not None:
        handle.close()


def unique_path(out_path: Path) -> Path:
    """Return a unique path by appending -01, -02, etc. if file already exists."""
    if not out_path.exists():
        return out_path
    stem = out_path.stem
    suffix = out_path.suffix
    parent = out_path.parent
    counter = 1
    while True:
        candidate = parent / f"{stem}-{counter:02d}{suffix}"
        if not candidate.exists():
            return candidate
        counter += 1
