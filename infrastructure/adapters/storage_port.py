"""Infrastructure adapter that implements the application StoragePort
by delegating to the concrete StorageProvider and translating models and
exceptions.
"""
from __future__ import annotations

from typing import Awaitable, Optional, TypeVar

from application.ports.storage import (
    DownloadCredential,
    StorageInfo,
    StoragePort,
    UploadCredential,
    WriteOutcome,
)
from domain.common.exceptions import StorageNotConfiguredException, StorageOperationException
from infrastructure.external.storage import (
    ConfigurationError,
    NotFoundError,
    StorageError,
    StorageProvider,
    TransientError,
)

T = TypeVar("T")


class StorageProviderPortAdapter(StoragePort):
    def __init__(self, provider: StorageProvider):
        self.provider = provider

    def info(self) -> StorageInfo:
        # MiddlewareStorage wraps the real provider
        inner = getattr(self.provider, "provider", self.provider)
        cfg = getattr(inner, "config", None)
        stype = getattr(cfg, "type", None)
        return StorageInfo(
            type=str(getattr(stype, "value", stype) or ""),
            bucket=getattr(cfg, "bucket", None),
            region=getattr(cfg, "region", None),
        )

    async def _call(self, operation: str, key: str, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except ConfigurationError as e:
            raise StorageNotConfiguredException(str(e)) from e
        except StorageError as e:
            raise StorageOperationException(
                str(e),
                operation=operation,
                key=key,
                transient=isinstance(e, TransientError),
                missing=isinstance(e, NotFoundError),
            ) from e

    async def issue_upload_credential(
        self,
        key: str,
        content_type: str,
        expires_in: int,
        metadata: Optional[dict[str, str]] = None,
    ) -> UploadCredential:
        presigned = await self._call(
            "issue_upload_credential",
            key,
            self.provider.issue_upload_credential(key, content_type, expires_in, metadata),
        )
        return UploadCredential(
            url=presigned.url,
            method=presigned.method,
            expires_in=presigned.expires_in,
            headers=dict(presigned.headers),
            server_mediated=presigned.server_mediated,
        )

    async def read_bytes(self, key: str) -> bytes:
        return await self._call("read_bytes", key, self.provider.read_bytes(key))

    async def write_bytes(
        self,
        data: bytes,
        key: str,
        content_type: Optional[str] = None,
        metadata: Optional[dict[str, str]] = None,
    ) -> WriteOutcome:
        result = await self._call(
            "write_bytes", key, self.provider.write_bytes(data, key, content_type, metadata)
        )
        return WriteOutcome(
            key=result.key,
            etag=result.etag,
            size=result.size,
            content_type=result.content_type,
            url=result.url,
        )

    async def issue_download_credential(
        self,
        key: str,
        expires_in: int,
        filename: Optional[str] = None,
    ) -> DownloadCredential:
        presigned = await self._call(
            "issue_download_credential",
            key,
            self.provider.issue_download_credential(key, expires_in, filename),
        )
        return DownloadCredential(url=presigned.url or "", expires_in=presigned.expires_in)

    async def exists(self, key: str) -> bool:
        return await self._call("exists", key, self.provider.exists(key))

    async def list_keys(self, prefix: str, limit: int = 1000) -> list[str]:
        objects = await self._call("list_keys", prefix, self.provider.list_objects(prefix, limit))
        return [obj.key for obj in objects]
