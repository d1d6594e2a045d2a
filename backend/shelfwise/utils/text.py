"""Classification of raw cover reference strings coming out of the catalog."""
import enum
from typing import Optional

# Filename of the bundled "no cover" image; any value containing it is a placeholder
PLACEHOLDER_MARKER = "placeholder-book-cover.svg"
PLACEHOLDER_COVER_PATH = "/images/placeholder-book-cover.svg"

# Literal strings upstream providers and old imports use to mean "no value"
NULL_EQUIVALENTS = {"null", "none", "n/a", "na", "nil", "undefined"}


class CoverRefKind(str, enum.Enum):
    ABSENT = "absent"
    PLACEHOLDER = "placeholder"
    REMOTE = "remote"
    STORAGE_KEY = "storage_key"


def sanitize(value: Optional[str]) -> Optional[str]:
    """Return the trimmed value, or None when it is blank or a null-equivalent literal."""
    if value is None:
        return None
    if not isinstance(value, str):
        value = str(value)
    trimmed = value.strip()
    if not trimmed or trimmed.lower() in NULL_EQUIVALENTS:
        return None
    return trimmed


def is_placeholder(value: Optional[str]) -> bool:
    return bool(value) and PLACEHOLDER_MARKER in value.lower()


def is_http(value: Optional[str]) -> bool:
    if not value:
        return False
    lowered = value.lower()
    return lowered.startswith("http://") or lowered.startswith("https://")


def is_data_uri(value: Optional[str]) -> bool:
    return bool(value) and value.lower().startswith("data:image")


def is_remote(value: Optional[str]) -> bool:
    return is_http(value) or is_data_uri(value)


def classify(value: Optional[str]) -> CoverRefKind:
    """
    Classify a raw cover reference.

    Precedence: absent, then placeholder, then remote URL / data URI;
    anything left over is treated as a storage key candidate.
    """
    cleaned = sanitize(value)
    if cleaned is None:
        return CoverRefKind.ABSENT
    if is_placeholder(cleaned):
        return CoverRefKind.PLACEHOLDER
    if is_remote(cleaned):
        return CoverRefKind.REMOTE
    return CoverRefKind.STORAGE_KEY
