"""
Application constants and defaults.

Everything here is session-only: quickcrop never reads or writes settings
on disk.  The built-in aspect-ratio profiles live in ``ratios``; this module
only holds the scalar tunables shared by the session, the export pipeline
and the UI.
"""

# =============================================================================
# APP IDENTITY
# =============================================================================
APP_NAME = "quickcrop"

# =============================================================================
# CROP FRAME
# =============================================================================
# Fixed width of the crop frame in layout units; height follows the ratio
CROP_FRAME_BASE = 400.0

# Float noise tolerated when checking a source rectangle against image bounds
GEOMETRY_EPSILON = 1e-6

# =============================================================================
# INGESTION
# =============================================================================
# Bulk-processing ceiling per ingest call
MAX_INGEST_ITEMS = 10

IMAGE_MIME_PREFIX = "image/"
HEIF_EXTENSIONS = {".heic", ".heif"}
IMAGE_EXTENSIONS = {
    ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".tiff", ".tif", ".webp", ".psd",
    *HEIF_EXTENSIONS,
}

# =============================================================================
# EXPORT DEFAULTS
# =============================================================================
EXPORT_FORMAT_DEFAULT = "jpeg"
EXPORT_QUALITY_DEFAULT = 0.9
FILENAME_DEFAULT = "cropped-images"

# Suggested filename bases after ingestion
FILENAME_BATCH_SUGGESTION = "batch-images"
FILENAME_SINGLE_SUFFIX = "-cropped"

# Archive artifact name (without extension) for multi-image exports
BATCH_ARCHIVE_NAME = "quickcrop-batch"

# Seconds between individual downloads when the archive cannot be built
INTER_DOWNLOAD_DELAY = 0.5

# PNG compression level (0-9, 9 = maximum compression)
PNG_COMPRESS_LEVEL = 9

# Characters forbidden in filename bases (superset across Windows/macOS/Linux)
INVALID_FILENAME_CHARS = set('<>:"/|?*\\\0')

# Windows device names that cannot be used as a file stem
RESERVED_FILENAMES = frozenset({
    "CON", "PRN", "AUX", "NUL",
    *(f"COM{i}" for i in range(1, 10)),
    *(f"LPT{i}" for i in range(1, 10)),
})
