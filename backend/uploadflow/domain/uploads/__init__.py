"""Uploads domain module - lifecycle states and attachment validation"""

from .upload_state import UploadState, ALLOWED_TRANSITIONS, can_transition, derive_state
from .validation import (
    ALLOWED_EXTENSIONS,
    CONTENT_TYPES,
    allowed_extension,
    content_type_for_key,
    extract_extension,
    is_valid_store_key,
)

__all__ = [
    "UploadState",
    "ALLOWED_TRANSITIONS",
    "can_transition",
    "derive_state",
    "ALLOWED_EXTENSIONS",
    "CONTENT_TYPES",
    "allowed_extension",
    "content_type_for_key",
    "extract_extension",
    "is_valid_store_key",
]
