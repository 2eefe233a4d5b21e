"""
Geometry engine: cover-fit sizing, offset clamping and the inverse transform.

All functions are pure.  The crop frame is a fixed viewport; the image is
scaled just enough to cover it (``cover_fit``) and may only be moved so that
the frame stays fully covered (``clamp_offset``).  ``source_rect`` maps the
frame back onto the natural pixel grid for export.

Ratio changes always recompute from the natural size and reset the offset to
center, so repeated changes never accumulate rounding drift.
"""

import logging
from dataclasses import dataclass

from quickcrop.config import CROP_FRAME_BASE, GEOMETRY_EPSILON
from quickcrop.errors import ContainmentViolation, InvalidConfiguration
from quickcrop.models import CropFrame, ImageItem

logger = logging.getLogger(__name__)


def _require_positive(**values: float) -> None:
    for name, val in values.items():
        if not val > 0:
            raise InvalidConfiguration(f"{name} must be positive, got {val!r}")


# =============================================================================
# Frame and fit
# =============================================================================
def frame_for_ratio(ratio: float, base: float = CROP_FRAME_BASE) -> CropFrame:
    """Crop frame for an aspect ratio: fixed width, height from the ratio."""
    _require_positive(ratio=ratio, base=base)
    return CropFrame(base, base / ratio)


def cover_fit(natural_w: float, natural_h: float, frame_w: float, frame_h: float) -> tuple[float, float]:
    """Smallest display size of the image that fully covers the frame."""
    _require_positive(natural_w=natural_w, natural_h=natural_h, frame_w=frame_w, frame_h=frame_h)
    natural_aspect = natural_w / natural_h
    frame_aspect = frame_w / frame_h
    if natural_aspect > frame_aspect:
        # Wider than the frame - fit to height
        display_h = frame_h
        display_w = display_h * natural_aspect
    else:
        # Taller (or equal) - fit to width
        display_w = frame_w
        display_h = display_w / natural_aspect
    return display_w, display_h


def center_offset(frame_w: float, frame_h: float, display_w: float, display_h: float) -> tuple[float, float]:
    """Offset that centers the displayed image on the frame."""
    return (frame_w - display_w) / 2, (frame_h - display_h) / 2


def offset_bounds(frame_len: float, display_len: float) -> tuple[float, float]:
    """Allowed offset range on one axis."""
    slack = frame_len - display_len
    return min(0.0, slack), max(0.0, slack)


def clamp_offset(
    x: float, y: float,
    frame_w: float, frame_h: float,
    display_w: float, display_h: float,
) -> tuple[float, float]:
    """Clamp an offset so the image keeps covering the frame."""
    min_x, max_x = offset_bounds(frame_w, display_w)
    min_y, max_y = offset_bounds(frame_h, display_h)
    return max(min_x, min(max_x, x)), max(min_y, min(max_y, y))


# =============================================================================
# Item recompute
# =============================================================================
def fit_item(item: ImageItem, frame: CropFrame) -> None:
    """Recompute display size from the natural size and center the item."""
    item.display_width, item.display_height = cover_fit(
        item.natural_width, item.natural_height, frame.width, frame.height,
    )
    item.x, item.y = center_offset(frame.width, frame.height, item.display_width, item.display_height)
    logger.debug(
        "Fitted %s: display %.2fx%.2f offset (%.2f, %.2f)",
        item.id, item.display_width, item.display_height, item.x, item.y,
    )


# =============================================================================
# Drag
# =============================================================================
@dataclass(frozen=True)
class DragAnchor:
    """Pointer position and item offset captured when a drag starts."""
    item_id: str
    pointer_x: float
    pointer_y: float
    origin_x: float
    origin_y: float

    def offset_for(self, pointer_x: float, pointer_y: float, frame: CropFrame, item: ImageItem) -> tuple[float, float]:
        """Clamped offset for the total pointer delta since the anchor."""
        return clamp_offset(
            self.origin_x + (pointer_x - self.pointer_x),
            self.origin_y + (pointer_y - self.pointer_y),
            frame.width, frame.height,
            item.display_width, item.display_height,
        )


# =============================================================================
# Inverse transform
# =============================================================================
@dataclass(frozen=True)
class SourceRect:
    """Region of the natural pixel grid shown through the crop frame."""
    x: float
    y: float
    width: float
    height: float

    @property
    def box(self) -> tuple[float, float, float, float]:
        """(left, upper, right, lower) as used by Pillow."""
        return self.x, self.y, self.x + self.width, self.y + self.height


def source_rect(frame: CropFrame, item: ImageItem) -> SourceRect:
    """Map the crop frame onto the item's natural pixel grid."""
    scale_x = item.natural_width / item.display_width
    scale_y = item.natural_height / item.display_height
    return SourceRect(
        -item.x * scale_x,
        -item.y * scale_y,
        frame.width * scale_x,
        frame.height * scale_y,
    )


def _snap(val: float, bound: float, eps: float) -> float:
    return bound if abs(val - bound) <= eps else val


def checked_source_rect(frame: CropFrame, item: ImageItem, eps: float = GEOMETRY_EPSILON) -> SourceRect:
    """
    Source rectangle for export, verified against the natural bounds.

    Float noise within *eps* (relative to the image size) is snapped onto the
    bounds.  Anything larger means the offset broke containment and raises
    ``ContainmentViolation``.
    """
    rect = source_rect(frame, item)
    nw, nh = item.natural_width, item.natural_height
    tol = eps * max(nw, nh)

    left = _snap(rect.x, 0.0, tol)
    top = _snap(rect.y, 0.0, tol)
    right = _snap(rect.x + rect.width, float(nw), tol)
    bottom = _snap(rect.y + rect.height, float(nh), tol)

    if left < 0 or top < 0 or right > nw or bottom > nh:
        raise ContainmentViolation(
            f"Source rectangle ({rect.x:.4f}, {rect.y:.4f}, {rect.width:.4f}, {rect.height:.4f}) "
            f"exceeds {nw}x{nh} for item {item.id}"
        )
    return SourceRect(left, top, right - left, bottom - top)
