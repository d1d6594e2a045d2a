"""
Dimension estimation and validation for cover images.

Every threshold used to decide whether an image is "big enough" or "shaped
like a book cover" lives here so the scorer, the fallback fetcher and the
datastore filters agree.
"""
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import parse_qs, urlsplit

MIN_VALID_DIMENSION = 2
MIN_DISPLAY_WIDTH = 180
MIN_DISPLAY_HEIGHT = 280

# height / width; book covers are portrait
MIN_ASPECT_RATIO = 1.2
MAX_ASPECT_RATIO = 2.0

HIGH_RES_PIXEL_THRESHOLD = 320_000  # ~640x500

DEFAULT_WIDTH = 512
DEFAULT_HEIGHT = DEFAULT_WIDTH * 3 // 2

# Google Books `zoom` parameter
ZOOM_DIMENSIONS = {
    1: (200, 300),
    2: (320, 480),
    3: (512, 768),
    4: (640, 960),
}

OPEN_LIBRARY_HOST = "covers.openlibrary.org"
OPEN_LIBRARY_SIZES = {
    "L": (600, 900),
    "M": (320, 480),
    "S": (120, 180),
}
_OPEN_LIBRARY_SUFFIX = re.compile(r"-([LMS])(?:\.[a-z0-9]+)?$", re.IGNORECASE)

# Lower is better; unknown types sort last
IMAGE_TYPE_PRIORITY = {
    "canonical": 0,
    "extralarge": 1,
    "large": 2,
    "medium": 3,
    "small": 4,
    "thumbnail": 5,
    "smallthumbnail": 6,
}
UNKNOWN_IMAGE_TYPE_PRIORITY = 7


@dataclass(frozen=True)
class DimensionEstimate:
    width: int
    height: int
    defaulted: bool


def _int_query_param(params: dict, name: str) -> Optional[int]:
    values = params.get(name)
    if not values:
        return None
    raw = values[0].strip()
    if not (raw.isascii() and raw.isdigit()):
        return None
    return int(raw)


def estimate_dimensions(url: Optional[str]) -> DimensionEstimate:
    """
    Infer dimensions from URL conventions when the catalog has none.

    Precedence: `zoom` query param, then `w` + `h` query params, then the
    Open Library `-L`/`-M`/`-S` suffix, then the 512x768 default (flagged
    `defaulted`). Malformed values never raise; they fall through.
    """
    default = DimensionEstimate(DEFAULT_WIDTH, DEFAULT_HEIGHT, True)
    if not url:
        return default

    try:
        parts = urlsplit(url)
    except ValueError:
        return default
    params = parse_qs(parts.query)

    zoom = _int_query_param(params, "zoom")
    if zoom in ZOOM_DIMENSIONS:
        width, height = ZOOM_DIMENSIONS[zoom]
        return DimensionEstimate(width, height, False)

    w = _int_query_param(params, "w")
    h = _int_query_param(params, "h")
    if w is not None and h is not None:
        return DimensionEstimate(
            max(w, MIN_VALID_DIMENSION),
            max(h, MIN_VALID_DIMENSION),
            False,
        )

    if (parts.hostname or "").lower() == OPEN_LIBRARY_HOST:
        match = _OPEN_LIBRARY_SUFFIX.search(parts.path)
        if match:
            width, height = OPEN_LIBRARY_SIZES[match.group(1).upper()]
            return DimensionEstimate(width, height, False)

    return default


def resolve_dimensions(url: Optional[str], width: Optional[int], height: Optional[int]) -> DimensionEstimate:
    """Explicit positive dimensions win verbatim; otherwise estimate from the URL."""
    if width is not None and width > 0 and height is not None and height > 0:
        return DimensionEstimate(width, height, False)
    return estimate_dimensions(url)


def total_pixels(width: Optional[int], height: Optional[int]) -> int:
    if width is None or height is None:
        return 0
    return width * height


def is_high_resolution(width: Optional[int], height: Optional[int]) -> bool:
    return total_pixels(width, height) >= HIGH_RES_PIXEL_THRESHOLD


def meets_display_threshold(width: Optional[int], height: Optional[int]) -> bool:
    if width is None or height is None:
        return False
    return width >= MIN_DISPLAY_WIDTH and height >= MIN_DISPLAY_HEIGHT


def has_valid_aspect_ratio(width: Optional[int], height: Optional[int]) -> bool:
    if width is None or height is None or width <= 0 or height <= 0:
        return False
    ratio = height / width
    return MIN_ASPECT_RATIO <= ratio <= MAX_ASPECT_RATIO


def has_known_bad_aspect_ratio(width: Optional[int], height: Optional[int]) -> bool:
    """True only when both dimensions are known and the shape is not a cover's."""
    if width is None or height is None or width <= 0 or height <= 0:
        return False
    return not has_valid_aspect_ratio(width, height)


def image_type_priority(image_type: Optional[str]) -> int:
    if not image_type:
        return UNKNOWN_IMAGE_TYPE_PRIORITY
    return IMAGE_TYPE_PRIORITY.get(image_type.lower(), UNKNOWN_IMAGE_TYPE_PRIORITY)
