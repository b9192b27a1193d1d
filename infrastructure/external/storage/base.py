"""Storage provider protocol definitions."""
from typing import Optional, Protocol, runtime_checkable

from .models import PresignedRequest, StorageObject, UploadResult


@runtime_checkable
class StorageProvider(Protocol):
    """Polymorphic storage backend.

    Every backend exposes the same four core capabilities (upload credential,
    read, write, download credential) plus the housekeeping calls used by
    reconciliation and health checks.
    """

    async def issue_upload_credential(
        self,
        key: str,
        content_type: str,
        expires_in: int,
        metadata: Optional[dict[str, str]] = None,
    ) -> PresignedRequest:
        """Issue a short-lived direct-upload credential for ``key``."""
        ...

    async def read_bytes(self, key: str) -> bytes:
        """Read the full object."""
        ...

    async def write_bytes(
        self,
        data: bytes,
        key: str,
        content_type: Optional[str] = None,
        metadata: Optional[dict[str, str]] = None,
    ) -> UploadResult:
        """Write the full object."""
        ...

    async def issue_download_credential(
        self,
        key: str,
        expires_in: int,
        filename: Optional[str] = None,
    ) -> PresignedRequest:
        """Issue a short-lived download URL."""
        ...

    async def exists(self, key: str) -> bool:
        ...

    async def list_objects(self, prefix: str = "", limit: int = 1000) -> list[StorageObject]:
        ...

    def public_url(self, key: str) -> Optional[str]:
        """Get public/CDN URL for an object, if the backend has one."""
        ...

    async def health_check(self) -> bool:
        ...
