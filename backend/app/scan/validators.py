"""Shape checks for identifiers arriving at the HTTP boundary.

All functions are pure: they never touch the registry.
"""
import math
import re
from typing import Optional

ROOM_ID_RE = re.compile(r"^[a-z0-9-]{6,80}$")

# Plain decimal only: no sign, exponent, underscores, or inf/nan.
SINCE_RE = re.compile(r"^(?:\d+(?:\.\d*)?|\.\d+)$", re.ASCII)

MAX_IMAGE_ID_LENGTH = 128

_CONSUME_TRUE_VALUES = frozenset({"1", "true", "yes"})


def normalize_room_id(value: Optional[str]) -> Optional[str]:
    """Return the canonical (stripped, lower-cased) room id, or None if invalid.

    Examples:
        >>> normalize_room_id(" Scan-AB12CD ")
        'scan-ab12cd'
        >>> normalize_room_id("abc") is None
        True
    """
    if value is None:
        return None
    room_id = value.strip().lower()
    if not ROOM_ID_RE.fullmatch(room_id):
        return None
    return room_id


def is_valid_room_id(value: Optional[str]) -> bool:
    return normalize_room_id(value) is not None


def parse_since(value: Optional[str]) -> Optional[float]:
    """Parse a poll cursor.

    An absent or empty cursor means 0. Anything that is not a finite,
    non-negative number returns None.
    """
    if value is None or not value.strip():
        return 0.0
    text = value.strip()
    if not SINCE_RE.fullmatch(text):
        return None
    since = float(text)
    if not math.isfinite(since):
        return None
    return since


def is_valid_since(value: Optional[str]) -> bool:
    return parse_since(value) is not None


def normalize_image_id(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    image_id = value.strip()
    if not image_id or len(image_id) > MAX_IMAGE_ID_LENGTH:
        return None
    return image_id


def parse_consume_flag(value: Optional[str]) -> bool:
    """``consume=1`` (or true/yes) requests destructive delivery."""
    if value is None:
        return False
    return value.strip().lower() in _CONSUME_TRUE_VALUES
