"""Upload target negotiation (direct-to-storage credentials)."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Optional

from application.dto import PrincipalDTO, UploadRequestDTO, UploadTargetDTO
from application.ports.storage import StoragePort
from core.config import UploadSettings, settings
from core.logging_config import get_logger
from domain.common.exceptions import (
    JobCardNotFoundException,
    StorageNotConfiguredException,
    UploadValidationException,
)
from domain.common.time import utcnow
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.job_card import JobCard
from domain.media import (
    MediaKind,
    ServiceCategory,
    build_storage_key,
    parse_category,
    parse_media_kind,
    sanitize_file_name,
)

logger = get_logger(__name__)


class UploadNegotiator:
    """Chooses the storage key for an upload and hands out a credential.

    Declared content type and size are trusted; they are checked against the
    configured limits but never against the bytes that eventually arrive.
    """

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        storage: Optional[StoragePort],
        *,
        config: Optional[UploadSettings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._uow_factory = uow_factory
        self._storage = storage
        self._config = config or settings.upload
        self._clock = clock

    @property
    def config(self) -> UploadSettings:
        return self._config

    def require_storage(self) -> StoragePort:
        if self._storage is None:
            raise StorageNotConfiguredException()
        return self._storage

    def validate(
        self,
        *,
        file_name: str,
        content_type: str,
        file_size: int,
        category: str,
        media_kind: str,
    ) -> tuple[MediaKind, ServiceCategory]:
        sanitize_file_name(file_name)
        if not content_type or not content_type.strip():
            raise UploadValidationException("Content type is required", field="content_type")
        if file_size < 0:
            raise UploadValidationException("File size must be >= 0", field="file_size")
        if file_size > self._config.max_file_size:
            raise UploadValidationException(
                "File too large",
                field="file_size",
                details={"max_file_size": self._config.max_file_size, "file_size": file_size},
            )
        allowed = self._config.allowed_content_types
        if allowed and content_type.lower() not in allowed:
            raise UploadValidationException(
                f"Unsupported file type: {content_type}",
                field="content_type",
                details={"allowed": allowed},
            )
        return parse_media_kind(media_kind), parse_category(category)

    def build_key(self, job_id: int, media_kind: MediaKind, file_name: str) -> str:
        return build_storage_key(
            job_id, media_kind, file_name, self._clock(), prefix=self._config.key_prefix
        )

    async def ensure_job(self, job_id: int) -> JobCard:
        async with self._uow_factory(readonly=True) as uow:
            job = await uow.job_card_repository.get_by_id(job_id)
        if job is None:
            raise JobCardNotFoundException(job_id)
        return job

    async def negotiate(
        self,
        job_id: int,
        principal: PrincipalDTO,
        request: UploadRequestDTO,
    ) -> UploadTargetDTO:
        media_kind, category = self.validate(
            file_name=request.file_name,
            content_type=request.content_type,
            file_size=request.file_size,
            category=request.category,
            media_kind=request.media_kind,
        )
        storage = self.require_storage()
        await self.ensure_job(job_id)

        key = self.build_key(job_id, media_kind, request.file_name)
        expires_in = self._config.presign_expires_in
        credential = await storage.issue_upload_credential(
            key,
            request.content_type,
            expires_in,
            metadata={
                "type": media_kind.value,
                "job_id": str(job_id),
                "uploaded_by": principal.user_id,
            },
        )

        logger.info(
            "upload_target_issued",
            job_id=job_id,
            storage_key=key,
            media_kind=media_kind.value,
            file_size=request.file_size,
            server_mediated=credential.server_mediated,
        )
        return UploadTargetDTO(
            storage_key=key,
            upload_url=credential.url,
            method=credential.method,
            headers=credential.headers,
            content_type=request.content_type,
            media_kind=media_kind.value,
            category=category.value,
            expires_at=self._clock() + timedelta(seconds=expires_in),
            transfer_mode="server" if credential.server_mediated else "direct",
        )
