"""Media domain exports."""
from .entity import MediaKind, ServiceCategory, StoredFile, parse_category, parse_media_kind
from .keys import build_storage_key, job_prefix, sanitize_file_name, thumbnail_key
from .repository import StoredFileRepository

__all__ = [
    "MediaKind",
    "ServiceCategory",
    "StoredFile",
    "StoredFileRepository",
    "parse_category",
    "parse_media_kind",
    "build_storage_key",
    "job_prefix",
    "sanitize_file_name",
    "thumbnail_key",
]
