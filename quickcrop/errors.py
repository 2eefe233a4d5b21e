"""
Error taxonomy shared by the core modules.

Every failure a core operation can produce is a ``QuickCropError`` subclass
so callers can tell outcomes apart without parsing messages.
"""


class QuickCropError(Exception):
    """Base class for all quickcrop failures."""


class InvalidConfiguration(QuickCropError, ValueError):
    """A ratio, quality, filename or dimension was rejected at a boundary."""


class DecodeFailure(QuickCropError):
    """Source bytes could not be decoded into an image."""


class EncodeFailure(QuickCropError):
    """Compositing or encoding an item failed during export."""


class ArchiveConstructionFailure(QuickCropError):
    """The batch archive could not be built; individual delivery follows."""


class ContainmentViolation(QuickCropError):
    """A source rectangle fell outside the natural image bounds."""


class ExportBusy(QuickCropError):
    """An export was requested while another one is still running."""


class NothingToExport(QuickCropError):
    """An export was requested for an empty session."""


class DragInProgress(QuickCropError):
    """A drag was started while another drag session is active."""


class NoActiveDrag(QuickCropError):
    """A drag update arrived with no drag session active."""


class UnknownItem(QuickCropError, KeyError):
    """No image item with the given identity exists in the session."""


class DeliveryFailure(QuickCropError):
    """An encoded artifact could not be written to its destination."""
