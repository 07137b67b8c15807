"""SQLAlchemy models for UploadFlow"""

from .base import Base, PortableJSONB
from .upload import Upload, UploadSource

__all__ = [
    "Base",
    "PortableJSONB",
    "Upload",
    "UploadSource",
]
