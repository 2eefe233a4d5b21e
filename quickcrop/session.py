"""
Session state: the ordered image collection plus the global crop settings.

Every mutation goes through this class: ingest, drag, profile change,
settings change, removal and reset.  Geometry is recomputed explicitly at
those points using the pure functions in ``geometry``.  The session owns the
decoded image handles and releases them on removal and reset.
"""

import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field, replace

from quickcrop.config import (
    FILENAME_BATCH_SUGGESTION, FILENAME_DEFAULT, FILENAME_SINGLE_SUFFIX, MAX_INGEST_ITEMS,
)
from quickcrop.errors import (
    DecodeFailure, DragInProgress, InvalidConfiguration, NoActiveDrag, UnknownItem,
)
from quickcrop.export import ExportPipeline, ExportResult
from quickcrop.geometry import DragAnchor, fit_item, frame_for_ratio
from quickcrop.image_io import SourceFile, decode, is_image_source, release
from quickcrop.models import (
    AspectRatioProfile, CropFrame, ExportFormat, ExportSettings, ImageItem,
    validate_export_settings, validate_filename,
)
from quickcrop.ratios import DEFAULT_PROFILE_ID, profile_by_id, validate_profile

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    accepted: list[ImageItem] = field(default_factory=list)
    failures: list[DecodeFailure] = field(default_factory=list)


class Session:
    """Mutable crop session for one user."""

    def __init__(
        self,
        profile: AspectRatioProfile | None = None,
        settings: ExportSettings | None = None,
    ):
        self._items: list[ImageItem] = []
        self._profile = profile_by_id(DEFAULT_PROFILE_ID)
        self._settings = ExportSettings()
        self._frame = frame_for_ratio(self._profile.ratio)
        self._drag: DragAnchor | None = None
        # Filename bases we chose ourselves and may replace on the next ingest
        self._suggested_filenames = {FILENAME_DEFAULT}

        if profile is not None:
            self.set_aspect_ratio_profile(profile)
        if settings is not None:
            self.set_export_settings(settings)

    # =========================================================================
    # Accessors
    # =========================================================================
    @property
    def items(self) -> tuple[ImageItem, ...]:
        return tuple(self._items)

    @property
    def profile(self) -> AspectRatioProfile:
        return self._profile

    @property
    def settings(self) -> ExportSettings:
        return self._settings

    @property
    def frame(self) -> CropFrame:
        return self._frame

    @property
    def dragging(self) -> str | None:
        """Id of the item being dragged, if any."""
        return self._drag.item_id if self._drag else None

    def __len__(self) -> int:
        return len(self._items)

    def item(self, item_id: str) -> ImageItem:
        for item in self._items:
            if item.id == item_id:
                return item
        raise UnknownItem(item_id)

    # =========================================================================
    # Ingest / remove
    # =========================================================================
    def ingest(self, sources: Iterable[SourceFile]) -> IngestResult:
        """
        Decode up to MAX_INGEST_ITEMS sources and make them the new collection.

        Non-images are skipped silently and decode failures are collected.  If
        at least one image decodes, it replaces the current collection and the
        old images are released; otherwise the collection is left as it was.
        """
        candidates = list(sources)[:MAX_INGEST_ITEMS]
        images = [s for s in candidates if is_image_source(s)]
        skipped = len(candidates) - len(images)
        if skipped:
            logger.debug("Ignored %d non-image input(s)", skipped)

        result = IngestResult()
        for source in images:
            try:
                decoded = decode(source.data, source.name)
            except DecodeFailure as exc:
                logger.warning("%s", exc)
                result.failures.append(exc)
                continue

            item = ImageItem(
                id=uuid.uuid4().hex,
                name=source.stem,
                natural_width=decoded.natural_width,
                natural_height=decoded.natural_height,
                handle=decoded.handle,
            )
            fit_item(item, self._frame)
            result.accepted.append(item)

        if result.accepted:
            self._release_all()
            self._items = list(result.accepted)
            self._suggest_filename(result.accepted)
        logger.info(
            "Ingested %d image(s), %d failed, %d total",
            len(result.accepted), len(result.failures), len(self._items),
        )
        return result

    def _suggest_filename(self, accepted: list[ImageItem]) -> None:
        if self._settings.filename not in self._suggested_filenames:
            return
        if len(accepted) == 1:
            suggestion = f"{accepted[0].name}{FILENAME_SINGLE_SUFFIX}"
        else:
            suggestion = FILENAME_BATCH_SUGGESTION
        if validate_filename(suggestion):
            return
        self._suggested_filenames.add(suggestion)
        self._settings = replace(self._settings, filename=suggestion)

    def _release_all(self) -> int:
        self._drag = None
        items, self._items = self._items, []
        for item in items:
            release(item.handle)
            item.handle = None
        return len(items)

    def remove(self, item_id: str) -> None:
        """Remove an item and release its decoded image."""
        item = self.item(item_id)
        if self.dragging == item_id:
            self._drag = None
        self._items.remove(item)
        release(item.handle)
        item.handle = None
        logger.info("Removed %s (%s), %d left", item.name, item.id, len(self._items))

    def reset(self) -> None:
        """Drop every item and release all decoded images."""
        released = self._release_all()
        logger.info("Session reset, released %d image(s)", released)

    # =========================================================================
    # Profile / settings
    # =========================================================================
    def set_aspect_ratio_profile(self, profile: AspectRatioProfile | str) -> None:
        """Switch the global profile and refit every item from its natural size."""
        if isinstance(profile, str):
            profile = profile_by_id(profile)
        errors = validate_profile(profile)
        if errors:
            raise InvalidConfiguration("Invalid aspect-ratio profile:\n  " + "\n  ".join(errors))

        self._profile = profile
        self._frame = frame_for_ratio(profile.ratio)
        self._drag = None
        for item in self._items:
            fit_item(item, self._frame)
        logger.info(
            "Profile %s: frame %.2fx%.2f, refit %d image(s)",
            profile.id, self._frame.width, self._frame.height, len(self._items),
        )

    def set_export_settings(self, settings: ExportSettings) -> None:
        """Replace export settings wholesale; invalid settings leave the old ones."""
        errors = validate_export_settings(settings)
        if errors:
            raise InvalidConfiguration("Invalid export settings:\n  " + "\n  ".join(errors))
        self._settings = replace(settings, format=ExportFormat(settings.format), quality=float(settings.quality))

    def update_export_settings(self, **changes) -> ExportSettings:
        """Replace selected fields of the export settings."""
        try:
            candidate = replace(self._settings, **changes)
        except TypeError as exc:
            raise InvalidConfiguration(str(exc)) from exc
        self.set_export_settings(candidate)
        return self._settings

    # =========================================================================
    # Drag
    # =========================================================================
    def begin_drag(self, item_id: str, pointer_x: float, pointer_y: float) -> None:
        """Anchor a drag on one item at the current pointer position."""
        if self._drag is not None:
            raise DragInProgress(f"Already dragging {self._drag.item_id}")
        item = self.item(item_id)
        self._drag = DragAnchor(item_id, pointer_x, pointer_y, item.x, item.y)
        logger.debug("Drag start on %s at (%.1f, %.1f)", item_id, pointer_x, pointer_y)

    def update_drag(self, pointer_x: float, pointer_y: float) -> tuple[float, float]:
        """Move the dragged item by the total delta since the anchor."""
        if self._drag is None:
            raise NoActiveDrag("No drag in progress")
        item = self.item(self._drag.item_id)
        item.x, item.y = self._drag.offset_for(pointer_x, pointer_y, self._frame, item)
        return item.x, item.y

    def end_drag(self) -> None:
        if self._drag is not None:
            item = self.item(self._drag.item_id)
            logger.debug("Drag end on %s at offset (%.2f, %.2f)", item.id, item.x, item.y)
        self._drag = None

    # =========================================================================
    # Export
    # =========================================================================
    async def export(self, pipeline: ExportPipeline) -> ExportResult:
        return await pipeline.export(self._items, self._frame, self._profile, self._settings)
