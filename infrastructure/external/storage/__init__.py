"""Storage service entry point and lifecycle management."""
from functools import lru_cache
from typing import Optional

from core.config import settings
from core.logging_config import get_logger
from .base import StorageProvider
from .config import StorageConfig, StorageType
from .exceptions import (
    ConfigurationError,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    TransientError,
    ValidationError,
)
from .factory import create_provider, register_provider
from .models import PresignedRequest, StorageObject, UploadResult
from .utils import LoggingMiddleware, ValidationMiddleware, apply_middleware

logger = get_logger(__name__)

_storage_client: Optional[StorageProvider] = None


@lru_cache
def get_storage_config() -> StorageConfig:
    """Assemble StorageConfig from core.config.settings."""
    s = settings.storage
    return StorageConfig(
        type=s.type or StorageType.LOCAL,
        bucket=s.bucket,
        region=s.region,
        endpoint=s.endpoint,
        public_base_url=s.public_base_url,
        aws_access_key_id=s.aws_access_key_id,
        aws_secret_access_key=s.aws_secret_access_key,
        s3_sse=s.s3_sse,
        s3_acl=s.s3_acl,
        local_base_path=s.local_base_path,
        max_retry_attempts=s.max_retry_attempts,
        timeout=s.timeout,
        enable_ssl=s.enable_ssl,
    )


async def init_storage_client() -> None:
    """Initialize storage client.

    Raises ConfigurationError when the backend cannot be built; the caller
    decides whether that is fatal.
    """
    global _storage_client

    if _storage_client is not None:
        logger.warning("storage_client_already_initialized")
        return

    config = get_storage_config()
    provider = await create_provider(config)

    s = settings.storage
    middlewares = [LoggingMiddleware()]
    if s.validation_enabled:
        middlewares.append(ValidationMiddleware(s.max_file_size, s.allowed_types))

    _storage_client = apply_middleware(provider, middlewares)
    logger.info("storage_client_initialized", provider=config.type, bucket=config.bucket)


def get_storage_client() -> Optional[StorageProvider]:
    """Storage provider instance, or None when unconfigured."""
    return _storage_client


async def shutdown_storage_client() -> None:
    global _storage_client

    if _storage_client is None:
        return
    _storage_client = None
    logger.info("storage_client_shutdown")


__all__ = [
    "init_storage_client",
    "get_storage_client",
    "shutdown_storage_client",
    "get_storage_config",
    "register_provider",
    "StorageConfig",
    "StorageType",
    "StorageProvider",
    "UploadResult",
    "StorageObject",
    "PresignedRequest",
    "StorageError",
    "NotFoundError",
    "PermissionDeniedError",
    "TransientError",
    "ConfigurationError",
    "ValidationError",
]
