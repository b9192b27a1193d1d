"""Domain entity representing an uploaded media file."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException
from domain.common.time import ensure_utc, utcnow


class MediaKind(str, Enum):
    RAW = "raw"
    FINISHED = "finished"


class ServiceCategory(str, Enum):
    PHOTOGRAPHY = "photography"
    FLOOR_PLAN = "floor_plan"
    DRONE = "drone"
    VIDEO = "video"
    OTHER = "other"


def parse_media_kind(value: str) -> MediaKind:
    try:
        return MediaKind(value)
    except ValueError:
        raise DomainValidationException(
            f"Invalid media type: {value}",
            field="media_type",
            details={"allowed": [k.value for k in MediaKind]},
        )


def parse_category(value: str) -> ServiceCategory:
    try:
        return ServiceCategory(value)
    except ValueError:
        raise DomainValidationException(
            f"Invalid category: {value}",
            field="category",
            details={"allowed": [c.value for c in ServiceCategory]},
        )


@dataclass
class StoredFile:
    """Persisted record of a media object that landed in storage.

    Records are never deduplicated; the only mutation after creation is
    attaching a thumbnail that was generated later.
    """

    id: Optional[int]
    job_id: int
    file_name: str
    storage_key: str
    content_type: str
    file_size: int
    media_kind: MediaKind
    category: ServiceCategory
    uploader_id: str
    licensee_id: str
    thumbnail_key: Optional[str] = None
    storage_type: str = "local"
    bucket: Optional[str] = None
    uploaded_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.media_kind = parse_media_kind(self.media_kind)
        self.category = parse_category(self.category)
        if self.file_size < 0:
            raise DomainValidationException("file_size must be >= 0", field="file_size")
        self.uploaded_at = ensure_utc(self.uploaded_at) or utcnow()

    @property
    def is_image(self) -> bool:
        return self.content_type.startswith("image/")

    def can_be_accessed_by(self, user_id: str, licensee_id: str) -> bool:
        """Uploader or anyone in the same licensee (tenant) may read."""
        return self.uploader_id == user_id or self.licensee_id == licensee_id

    def attach_thumbnail(self, thumbnail_key: str) -> None:
        self.thumbnail_key = thumbnail_key
