"""Application-owned storage port abstraction (hexagonal architecture).

Defines the minimal methods needed by application use cases so that
the application layer does not depend on infrastructure details.
Implementations raise ``StorageOperationException`` /
``StorageNotConfiguredException`` from ``domain.common.exceptions``.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Protocol, runtime_checkable


@dataclass
class UploadCredential:
    url: Optional[str]
    method: str = "PUT"
    expires_in: int = 0
    headers: dict[str, str] = field(default_factory=dict)
    server_mediated: bool = False


@dataclass
class DownloadCredential:
    url: str
    expires_in: int = 0


@dataclass
class StorageInfo:
    type: str
    bucket: Optional[str]
    region: Optional[str]


@dataclass
class WriteOutcome:
    key: str
    etag: Optional[str]
    size: int
    content_type: Optional[str] = None
    url: Optional[str] = None


@runtime_checkable
class StoragePort(Protocol):
    def info(self) -> StorageInfo: ...

    async def issue_upload_credential(
        self,
        key: str,
        content_type: str,
        expires_in: int,
        metadata: Optional[dict[str, str]] = None,
    ) -> UploadCredential: ...

    async def read_bytes(self, key: str) -> bytes: ...

    async def write_bytes(
        self,
        data: bytes,
        key: str,
        content_type: Optional[str] = None,
        metadata: Optional[dict[str, str]] = None,
    ) -> WriteOutcome: ...

    async def issue_download_credential(
        self,
        key: str,
        expires_in: int,
        filename: Optional[str] = None,
    ) -> DownloadCredential: ...

    async def exists(self, key: str) -> bool: ...

    async def list_keys(self, prefix: str, limit: int = 1000) -> list[str]: ...
