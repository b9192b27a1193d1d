"""Storage data transfer objects."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class StorageObject(BaseModel):
    """Storage object listing entry."""
    key: str
    size: int
    etag: Optional[str] = None
    last_modified: Optional[datetime] = None
    content_type: Optional[str] = None


class UploadResult(BaseModel):
    """Write operation result."""
    key: str
    etag: Optional[str] = None
    size: int
    content_type: Optional[str] = None
    url: Optional[str] = None  # Public/CDN URL if available


class PresignedRequest(BaseModel):
    """Short-lived credential for direct access.

    ``server_mediated`` is set by backends that cannot hand out direct
    upload URLs; callers must then send bytes through the API.
    """
    url: Optional[str] = None
    method: str = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    expires_in: int
    server_mediated: bool = False
