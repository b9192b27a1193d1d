"""
API依赖项 - 认证与应用服务装配
"""
from functools import lru_cache
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from application.dto import PrincipalDTO
from application.ports.chunk_store import ChunkSessionStore
from application.ports.storage import StoragePort
from application.ports.task_queue import BackgroundTaskQueue
from application.ports.thumbnails import ThumbnailGenerator
from application.services.activity_log_service import ActivityLogService
from application.services.media_access_service import MediaAccessService
from application.services.post_upload_processor import PostUploadProcessor
from application.services.relay_upload_service import RelayUploadService
from application.services.token_service import TokenService
from application.services.upload_negotiator import UploadNegotiator
from application.utils.admission import TransferAdmission
from core.config import settings
from core.exceptions import UnauthorizedException
from infrastructure.adapters.storage_port import StorageProviderPortAdapter
from infrastructure.external.storage import get_storage_client
from infrastructure.imaging import PillowThumbnailGenerator
from infrastructure.tasks import TaskDispatcher
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork
from infrastructure.uploads import get_chunk_store

# HTTP Bearer for direct API calls
http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="JWT Bearer token authentication",
    auto_error=False,
)


@lru_cache
def get_token_service() -> TokenService:
    return TokenService()


@lru_cache
def get_admission() -> TransferAdmission:
    """进程级并发闸门，所有请求共享"""
    cfg = settings.upload
    return TransferAdmission(
        cfg.max_concurrent_transfers,
        cfg.admission_timeout,
        threshold=cfg.large_upload_threshold,
    )


@lru_cache
def get_thumbnail_generator() -> ThumbnailGenerator:
    cfg = settings.upload
    return PillowThumbnailGenerator(cfg.thumbnail_width, cfg.thumbnail_height, cfg.thumbnail_quality)


def get_task_queue() -> Optional[BackgroundTaskQueue]:
    return TaskDispatcher() if settings.upload.thumbnail_backfill_enabled else None


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
    tokens: TokenService = Depends(get_token_service),
) -> PrincipalDTO:
    """从 Bearer 令牌解析当前调用方"""
    if credentials is None or not credentials.credentials:
        raise UnauthorizedException("未提供认证凭据")
    return tokens.decode_principal(credentials.credentials)


async def get_storage_port() -> Optional[StoragePort]:
    """未配置存储时返回 None，由服务在调用时抛出 STORAGE_NOT_CONFIGURED"""
    provider = get_storage_client()
    if provider is None:
        return None
    return StorageProviderPortAdapter(provider)


async def get_chunk_session_store() -> Optional[ChunkSessionStore]:
    return get_chunk_store()


async def get_activity_log_service() -> ActivityLogService:
    return ActivityLogService(uow_factory=SQLAlchemyUnitOfWork)


async def get_upload_negotiator(
    storage: Optional[StoragePort] = Depends(get_storage_port),
) -> UploadNegotiator:
    return UploadNegotiator(uow_factory=SQLAlchemyUnitOfWork, storage=storage)


async def get_post_upload_processor(
    storage: Optional[StoragePort] = Depends(get_storage_port),
    activity: ActivityLogService = Depends(get_activity_log_service),
    thumbnails: ThumbnailGenerator = Depends(get_thumbnail_generator),
    admission: TransferAdmission = Depends(get_admission),
    task_queue: Optional[BackgroundTaskQueue] = Depends(get_task_queue),
) -> PostUploadProcessor:
    return PostUploadProcessor(
        uow_factory=SQLAlchemyUnitOfWork,
        storage=storage,
        thumbnails=thumbnails,
        activity=activity,
        admission=admission,
        task_queue=task_queue,
    )


async def get_relay_upload_service(
    negotiator: UploadNegotiator = Depends(get_upload_negotiator),
    processor: PostUploadProcessor = Depends(get_post_upload_processor),
    chunk_store: Optional[ChunkSessionStore] = Depends(get_chunk_session_store),
    admission: TransferAdmission = Depends(get_admission),
) -> RelayUploadService:
    return RelayUploadService(
        negotiator,
        processor,
        chunk_store=chunk_store,
        admission=admission,
    )


async def get_media_access_service(
    storage: Optional[StoragePort] = Depends(get_storage_port),
    activity: ActivityLogService = Depends(get_activity_log_service),
) -> MediaAccessService:
    return MediaAccessService(uow_factory=SQLAlchemyUnitOfWork, storage=storage, activity=activity)
