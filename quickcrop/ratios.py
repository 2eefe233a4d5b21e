"""
Aspect-ratio profiles: built-in defaults, lookup, validation and output sizing.

A session has exactly one active profile.  Each profile pairs a ratio with a
canonical export resolution; with "preserve original size" on, the output
resolution is instead the largest crop of that ratio fitting the source.
"""

from math import gcd

from quickcrop.errors import InvalidConfiguration
from quickcrop.models import AspectRatioProfile

# =============================================================================
# DEFAULT PROFILES
# =============================================================================
DEFAULT_PROFILES: tuple[AspectRatioProfile, ...] = (
    AspectRatioProfile(
        id="square", label="Square", ratio_w=1, ratio_h=1,
        target_w=1080, target_h=1080,
        description="Instagram, Profile photos",
    ),
    AspectRatioProfile(
        id="landscape", label="Landscape", ratio_w=16, ratio_h=9,
        target_w=1920, target_h=1080,
        description="YouTube, Presentations",
    ),
    AspectRatioProfile(
        id="portrait", label="Portrait", ratio_w=9, ratio_h=16,
        target_w=1080, target_h=1920,
        description="Stories, Mobile content",
    ),
)

DEFAULT_PROFILE_ID = "square"


# =============================================================================
# Aspect-ratio helpers
# =============================================================================
def normalize_ratio(w: int, h: int) -> tuple[int, int]:
    """Reduce ratio to simplest form via GCD. (32, 18) → (16, 9)"""
    g = gcd(w, h)
    return w // g, h // g


def aspect_key(w: float, h: float) -> str:
    """Normalized string key for a ratio. (32, 18) → '16:9'"""
    if isinstance(w, int) and isinstance(h, int):
        w, h = normalize_ratio(w, h)
    return f"{w:g}:{h:g}"


def output_label(profile: AspectRatioProfile) -> str:
    """Human-readable canonical output size, e.g. '1920 × 1080px'."""
    return f"{profile.target_w} × {profile.target_h}px"


# =============================================================================
# Validation
# =============================================================================
def _is_positive_number(val: object) -> bool:
    return isinstance(val, (int, float)) and not isinstance(val, bool) and val > 0


def validate_profile(profile: AspectRatioProfile) -> list[str]:
    """
    Validate a single aspect-ratio profile.

    Returns a list of error strings (empty means valid).
    """
    errors: list[str] = []

    if not isinstance(profile.id, str) or not profile.id.strip():
        errors.append("id must be a non-empty string")

    for key in ("ratio_w", "ratio_h"):
        val = getattr(profile, key)
        if not _is_positive_number(val) or val == float("inf"):
            errors.append(f"{key} must be a positive number, got {val!r}")

    for key in ("target_w", "target_h"):
        val = getattr(profile, key)
        if not isinstance(val, int) or isinstance(val, bool) or val <= 0:
            errors.append(f"{key} must be a positive integer, got {val!r}")

    return errors


def profile_by_id(profile_id: str) -> AspectRatioProfile:
    """Return the built-in profile with the given id."""
    for profile in DEFAULT_PROFILES:
        if profile.id == profile_id:
            return profile
    known = ", ".join(p.id for p in DEFAULT_PROFILES)
    raise InvalidConfiguration(f"Unknown aspect-ratio profile {profile_id!r} (known: {known})")


# =============================================================================
# Output sizing
# =============================================================================
def calculate_max_crop(img_w: int, img_h: int, ratio: float) -> tuple[int, int]:
    """Calculate the maximum crop dimensions for a given aspect ratio within an image."""
    # Try full width
    crop_w = img_w
    crop_h = int(round(crop_w / ratio))
    if crop_h <= img_h:
        return crop_w, max(1, crop_h)
    # Full height
    crop_h = img_h
    crop_w = int(round(crop_h * ratio))
    return max(1, min(crop_w, img_w)), crop_h


def output_size(
    profile: AspectRatioProfile, natural_w: int, natural_h: int, preserve_original: bool,
) -> tuple[int, int]:
    """Pixel size of an exported image for the given profile and source."""
    if not preserve_original:
        return profile.target_w, profile.target_h
    return calculate_max_crop(natural_w, natural_h, profile.ratio)
