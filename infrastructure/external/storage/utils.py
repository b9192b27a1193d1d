"""Storage utility functions and middleware support."""
import mimetypes
import time
from typing import Optional

from core.logging_config import get_logger
from .base import StorageProvider
from .exceptions import ValidationError
from .models import PresignedRequest, StorageObject, UploadResult

logger = get_logger(__name__)


def guess_content_type(filename: str) -> str:
    """Guess content type from filename."""
    content_type, _ = mimetypes.guess_type(filename)
    return content_type or "application/octet-stream"


class StorageMiddleware:
    """Base class for storage middleware.

    Hooks run around ``write_bytes``, the only operation that moves payload
    bytes through the API process.
    """

    async def before_write(
        self,
        data: bytes,
        key: str,
        content_type: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> tuple[bytes, str, Optional[str], Optional[dict]]:
        return data, key, content_type, metadata

    async def after_write(self, result: UploadResult, key: str, elapsed_ms: float) -> UploadResult:
        return result

    async def on_error(self, error: Exception, operation: str, **kwargs) -> None:
        pass


class LoggingMiddleware(StorageMiddleware):
    """Structured logging of storage writes."""

    async def before_write(self, data, key, content_type=None, metadata=None):
        logger.debug("storage_write_started", key=key, size=len(data), content_type=content_type)
        return data, key, content_type, metadata

    async def after_write(self, result, key, elapsed_ms):
        logger.info(
            "storage_write_completed",
            key=key,
            size=result.size,
            etag=result.etag,
            elapsed_ms=round(elapsed_ms, 2),
        )
        return result

    async def on_error(self, error, operation, **kwargs):
        logger.error("storage_operation_failed", operation=operation, error=str(error), **kwargs)


class ValidationMiddleware(StorageMiddleware):
    """Reject writes that exceed size or type limits."""

    def __init__(self, max_size: int, allowed_types: Optional[list[str]] = None):
        self.max_size = max_size
        self.allowed_types = allowed_types

    async def before_write(self, data, key, content_type=None, metadata=None):
        if len(data) > self.max_size:
            raise ValidationError(f"File too large: {len(data)} > {self.max_size}")
        if self.allowed_types and content_type and content_type not in self.allowed_types:
            raise ValidationError(f"Content type not allowed: {content_type}")
        return data, key, content_type, metadata


class MiddlewareStorage:
    """Storage provider wrapper with middleware support."""

    def __init__(self, provider: StorageProvider, middlewares: list[StorageMiddleware]):
        self.provider = provider
        self.middlewares = middlewares

    async def write_bytes(
        self,
        data: bytes,
        key: str,
        content_type: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> UploadResult:
        for middleware in self.middlewares:
            try:
                data, key, content_type, metadata = await middleware.before_write(
                    data, key, content_type, metadata
                )
            except Exception as e:
                await self._notify_error(e, "before_write", key=key)
                raise

        start = time.perf_counter()
        try:
            result = await self.provider.write_bytes(data, key, content_type, metadata)
        except Exception as e:
            await self._notify_error(e, "write", key=key)
            raise
        elapsed_ms = (time.perf_counter() - start) * 1000

        for middleware in self.middlewares:
            result = await middleware.after_write(result, key, elapsed_ms)
        return result

    async def _notify_error(self, error: Exception, operation: str, **kwargs) -> None:
        for middleware in self.middlewares:
            await middleware.on_error(error, operation, **kwargs)

    # Delegate other methods to underlying provider
    async def issue_upload_credential(
        self,
        key: str,
        content_type: str,
        expires_in: int,
        metadata: Optional[dict[str, str]] = None,
    ) -> PresignedRequest:
        return await self.provider.issue_upload_credential(key, content_type, expires_in, metadata)

    async def read_bytes(self, key: str) -> bytes:
        return await self.provider.read_bytes(key)

    async def issue_download_credential(
        self, key: str, expires_in: int, filename: Optional[str] = None
    ) -> PresignedRequest:
        return await self.provider.issue_download_credential(key, expires_in, filename)

    async def exists(self, key: str) -> bool:
        return await self.provider.exists(key)

    async def list_objects(self, prefix: str = "", limit: int = 1000) -> list[StorageObject]:
        return await self.provider.list_objects(prefix, limit)

    def public_url(self, key: str) -> Optional[str]:
        return self.provider.public_url(key)

    async def health_check(self) -> bool:
        return await self.provider.health_check()


def apply_middleware(
    provider: StorageProvider,
    middlewares: list[StorageMiddleware]
) -> StorageProvider:
    """Wrap a provider with middleware (no-op for an empty list)."""
    if not middlewares:
        return provider
    return MiddlewareStorage(provider, middlewares)
