"""
API客户端模块

提供调用媒体上传接口的客户端 SDK
"""
from .base import (
    APIError,
    APIResponse,
    AuthenticationError,
    BaseAPIClient,
    NotFoundError,
    RateLimitError,
    ServerError,
)
from .media_upload import (
    MediaUploadClient,
    StorageTransferError,
    TransferAttempt,
    TransferExecutor,
    TransferStatus,
    TransferTimeoutError,
    UploadSource,
)

__all__ = [
    "BaseAPIClient",
    "APIResponse",
    "APIError",
    "AuthenticationError",
    "NotFoundError",
    "RateLimitError",
    "ServerError",
    "MediaUploadClient",
    "StorageTransferError",
    "TransferAttempt",
    "TransferExecutor",
    "TransferStatus",
    "TransferTimeoutError",
    "UploadSource",
]
