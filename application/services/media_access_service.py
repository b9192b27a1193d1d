"""Access-controlled retrieval and listing of job media."""
from __future__ import annotations

from typing import Callable, Optional

from application.dto import DownloadLinkDTO, PrincipalDTO, StoredFileWithUrlsDTO
from application.ports.storage import StoragePort
from application.services.activity_log_service import ActivityLogService
from core.config import UploadSettings, settings
from core.logging_config import get_logger
from domain.activity import download_entry
from domain.common.exceptions import (
    FileAccessForbiddenException,
    JobCardNotFoundException,
    StorageNotConfiguredException,
    StorageOperationException,
    StoredFileNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.media import parse_category, parse_media_kind

logger = get_logger(__name__)


class MediaAccessService:

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        storage: Optional[StoragePort],
        *,
        activity: Optional[ActivityLogService] = None,
        config: Optional[UploadSettings] = None,
    ):
        self._uow_factory = uow_factory
        self._storage = storage
        self._activity = activity or ActivityLogService(uow_factory)
        self._config = config or settings.upload

    def _require_storage(self) -> StoragePort:
        if self._storage is None:
            raise StorageNotConfiguredException()
        return self._storage

    async def issue_download(self, file_id: int, principal: PrincipalDTO) -> DownloadLinkDTO:
        """Signed download link for the uploader or a member of the same licensee."""
        async with self._uow_factory(readonly=True) as uow:
            stored = await uow.stored_file_repository.get_by_id(file_id)
        if stored is None:
            raise StoredFileNotFoundException(file_id)

        if not stored.can_be_accessed_by(principal.user_id, principal.licensee_id):
            logger.warning(
                "download_forbidden",
                stored_file_id=file_id,
                user_id=principal.user_id,
                licensee_id=principal.licensee_id,
            )
            raise FileAccessForbiddenException(file_id)

        storage = self._require_storage()
        expires_in = self._config.download_expires_in
        credential = await storage.issue_download_credential(
            stored.storage_key, expires_in, filename=stored.file_name
        )

        await self._activity.record(download_entry(stored, principal.user_id))
        return DownloadLinkDTO(
            download_url=credential.url,
            file_name=stored.file_name,
            file_size=stored.file_size,
            content_type=stored.content_type,
            expires_in=credential.expires_in or expires_in,
        )

    async def list_job_files(
        self,
        job_id: int,
        principal: PrincipalDTO,
        *,
        media_kind: Optional[str] = None,
        category: Optional[str] = None,
    ) -> list[StoredFileWithUrlsDTO]:
        kind_filter = parse_media_kind(media_kind) if media_kind else None
        category_filter = parse_category(category) if category else None

        async with self._uow_factory(readonly=True) as uow:
            job = await uow.job_card_repository.get_by_id(job_id)
            if job is None:
                raise JobCardNotFoundException(job_id)
            files = await uow.stored_file_repository.list_for_job(
                job_id, media_kind=kind_filter, category=category_filter
            )

        visible = [f for f in files if f.can_be_accessed_by(principal.user_id, principal.licensee_id)]
        storage = self._require_storage() if visible else None
        items: list[StoredFileWithUrlsDTO] = []
        for stored in visible:
            items.append(StoredFileWithUrlsDTO.from_entity(
                stored,
                url=await self._signed_url(storage, stored.storage_key, stored.file_name),
                thumbnail_url=(
                    await self._signed_url(storage, stored.thumbnail_key)
                    if stored.thumbnail_key else None
                ),
            ))
        return items

    async def _signed_url(
        self, storage: StoragePort, key: str, filename: Optional[str] = None
    ) -> Optional[str]:
        try:
            credential = await storage.issue_download_credential(
                key, self._config.download_expires_in, filename=filename
            )
        except StorageOperationException as exc:
            logger.warning("signed_url_unavailable", storage_key=key, error=str(exc))
            return None
        return credential.url
