"""Attachment validation utilities

Only the file extension is validated; content is never inspected.
"""

import re
from pathlib import PurePath
from typing import Optional


# Allowed attachment formats (compared case-insensitively)
ALLOWED_EXTENSIONS = frozenset({"jpeg", "jpg", "png", "gif", "webm"})

MIN_EXTENSION_LENGTH = 2

CONTENT_TYPES = {
    "jpeg": "image/jpeg",
    "jpg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webm": "video/webm",
}

STORE_KEY_PATTERN = re.compile(
    r"^[0-9a-f]{32}\.(" + "|".join(sorted(ALLOWED_EXTENSIONS)) + r")$"
)


def extract_extension(filename: Optional[str]) -> str:
    """Return the lower-cased final extension of a filename, without the dot

    Example:
        >>> extract_extension('Photo.PNG')
        'png'
        >>> extract_extension('archive.tar.gz')
        'gz'
        >>> extract_extension('.png')
        ''
    """
    if not filename:
        return ""
    return PurePath(filename).suffix[1:].lower()


def allowed_extension(filename: Optional[str]) -> Optional[str]:
    """Return the normalized extension if the filename is acceptable, else None

    Example:
        >>> allowed_extension('clip.WebM')
        'webm'
        >>> allowed_extension('notes.txt') is None
        True
    """
    extension = extract_extension(filename)
    if len(extension) < MIN_EXTENSION_LENGTH or extension not in ALLOWED_EXTENSIONS:
        return None
    return extension


def is_valid_store_key(key: str) -> bool:
    """Check that a key has the shape '<md5 hex>.<allowed extension>'"""
    return bool(STORE_KEY_PATTERN.match(key))


def content_type_for_key(key: str) -> str:
    """Media type served for a store key"""
    return CONTENT_TYPES.get(extract_extension(key), "application/octet-stream")
