"""Post-upload processing: thumbnail, StoredFile record, activity, job status."""
from __future__ import annotations

import asyncio
from contextlib import nullcontext
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from application.dto import PrincipalDTO, ProcessFileRequestDTO
from application.ports.storage import StoragePort
from application.ports.task_queue import BackgroundTaskQueue
from application.ports.thumbnails import ThumbnailGenerationError, ThumbnailGenerator
from application.services.activity_log_service import ActivityLogService
from application.utils.admission import TransferAdmission
from core.config import UploadSettings, settings
from core.logging_config import get_logger
from domain.activity import status_change_entry, upload_entry
from domain.common.exceptions import (
    JobCardNotFoundException,
    StorageNotConfiguredException,
    StorageOperationException,
    StoredFileNotFoundException,
    UploadCapacityExceededException,
    UploadValidationException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.job_card import StatusTransition
from domain.media import (
    MediaKind,
    StoredFile,
    job_prefix,
    parse_category,
    parse_media_kind,
    thumbnail_key,
)
from shared.retry import BackoffPolicy, retry_with_backoff

logger = get_logger(__name__)


@dataclass
class ProcessOutcome:
    stored_file: StoredFile
    thumbnail_generated: bool
    transition: Optional[StatusTransition] = None


def _is_retryable_read(exc: BaseException) -> bool:
    # 对象刚写入时可能短暂不可见
    return isinstance(exc, StorageOperationException) and (exc.transient or exc.missing)


class PostUploadProcessor:
    """Runs after bytes are in storage.

    Not idempotent: every call persists a new StoredFile, even for a storage
    key that was already processed.
    """

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        storage: Optional[StoragePort],
        thumbnails: ThumbnailGenerator,
        *,
        activity: Optional[ActivityLogService] = None,
        admission: Optional[TransferAdmission] = None,
        task_queue: Optional[BackgroundTaskQueue] = None,
        config: Optional[UploadSettings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._uow_factory = uow_factory
        self._storage = storage
        self._thumbnails = thumbnails
        self._activity = activity or ActivityLogService(uow_factory)
        self._admission = admission
        self._task_queue = task_queue
        self._config = config or settings.upload
        self._sleep = sleep
        self._read_policy = BackoffPolicy(
            max_attempts=self._config.storage_retry_attempts,
            base_delay=self._config.storage_retry_base_delay,
            max_delay=self._config.storage_retry_max_delay,
        )

    def _require_storage(self) -> StoragePort:
        if self._storage is None:
            raise StorageNotConfiguredException()
        return self._storage

    async def process(
        self,
        job_id: int,
        principal: PrincipalDTO,
        request: ProcessFileRequestDTO,
    ) -> ProcessOutcome:
        media_kind = parse_media_kind(request.media_kind)
        category = parse_category(request.category)
        storage = self._require_storage()

        async with self._uow_factory(readonly=True) as uow:
            if await uow.job_card_repository.get_by_id(job_id) is None:
                raise JobCardNotFoundException(job_id)

        await self._confirm_original(storage, job_id, request.storage_key)

        thumb_key: Optional[str] = None
        if request.content_type.startswith("image/"):
            thumb_key = await self._generate_thumbnail(
                storage, request.storage_key, request.file_size, job_id=job_id
            )

        info = storage.info()
        async with self._uow_factory() as uow:
            job = await uow.job_card_repository.get_by_id(job_id)
            if job is None:
                raise JobCardNotFoundException(job_id)

            stored = await uow.stored_file_repository.create(StoredFile(
                id=None,
                job_id=job_id,
                file_name=request.file_name,
                storage_key=request.storage_key,
                thumbnail_key=thumb_key,
                content_type=request.content_type,
                file_size=request.file_size,
                media_kind=media_kind,
                category=category,
                uploader_id=principal.user_id,
                licensee_id=principal.licensee_id,
                storage_type=info.type or "local",
                bucket=info.bucket,
            ))

            if media_kind is MediaKind.FINISHED:
                transition = job.advance_on_finished_upload()
            else:
                transition = job.start_on_raw_upload()
            if transition is not None:
                await uow.job_card_repository.update_status(job)
            await uow.commit()

        entries = [upload_entry(stored, address=job.display_address())]
        if transition is not None:
            entries.append(status_change_entry(job_id, principal.user_id, transition))
        await self._activity.record(*entries)

        logger.info(
            "upload_processed",
            job_id=job_id,
            stored_file_id=stored.id,
            storage_key=stored.storage_key,
            media_kind=media_kind.value,
            thumbnail_generated=thumb_key is not None,
            status_from=transition.previous.value if transition else None,
            status_to=transition.current.value if transition else None,
        )

        if thumb_key is None and stored.is_image:
            self._maybe_enqueue_backfill(stored.id)

        return ProcessOutcome(
            stored_file=stored,
            thumbnail_generated=thumb_key is not None,
            transition=transition,
        )

    async def backfill_thumbnail(self, file_id: int) -> bool:
        """Regenerate a missing thumbnail for an existing image record."""
        storage = self._require_storage()
        async with self._uow_factory(readonly=True) as uow:
            stored = await uow.stored_file_repository.get_by_id(file_id)
        if stored is None:
            raise StoredFileNotFoundException(file_id)
        if stored.thumbnail_key or not stored.is_image:
            return False

        thumb_key = await self._generate_thumbnail(
            storage, stored.storage_key, stored.file_size, job_id=stored.job_id
        )
        if thumb_key is None:
            return False

        async with self._uow_factory() as uow:
            await uow.stored_file_repository.set_thumbnail(file_id, thumb_key)
        logger.info("thumbnail_backfilled", stored_file_id=file_id, thumbnail_key=thumb_key)
        return True

    async def _confirm_original(self, storage: StoragePort, job_id: int, storage_key: str) -> None:
        """The key must sit under the job's prefix and the object must exist."""
        prefix = job_prefix(self._config.key_prefix, job_id)
        if not storage_key.startswith(prefix) or ".." in storage_key.split("/"):
            raise UploadValidationException(
                "Storage key does not belong to this job",
                field="storage_key",
                details={"storage_key": storage_key, "expected_prefix": prefix},
            )

        async def check() -> None:
            if not await storage.exists(storage_key):
                raise StorageOperationException(
                    "Uploaded object not found in storage",
                    operation="exists",
                    key=storage_key,
                    missing=True,
                )

        await retry_with_backoff(
            check,
            policy=self._read_policy,
            is_retryable=_is_retryable_read,
            sleep=self._sleep,
            operation_name="confirm_original",
        )

    async def _generate_thumbnail(
        self,
        storage: StoragePort,
        storage_key: str,
        file_size: int,
        *,
        job_id: int,
    ) -> Optional[str]:
        """Returns the thumbnail key, or None when any step failed."""
        key = thumbnail_key(storage_key)
        try:
            async with self._gate(file_size):
                original = await retry_with_backoff(
                    lambda: storage.read_bytes(storage_key),
                    policy=self._read_policy,
                    is_retryable=_is_retryable_read,
                    sleep=self._sleep,
                    operation_name="read_original",
                )
                rendered = await self._thumbnails.generate(original)
            await storage.write_bytes(
                rendered,
                key,
                content_type=self._thumbnails.content_type,
                metadata={"job_id": str(job_id), "source": storage_key},
            )
        except (StorageOperationException, ThumbnailGenerationError, UploadCapacityExceededException) as exc:
            logger.warning(
                "thumbnail_generation_failed",
                job_id=job_id,
                storage_key=storage_key,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return None

        logger.info("thumbnail_generated", job_id=job_id, storage_key=storage_key, thumbnail_key=key)
        return key

    def _gate(self, size: int):
        if self._admission is None:
            return nullcontext()
        return self._admission.slot(size, label="thumbnail")

    def _maybe_enqueue_backfill(self, file_id: int) -> None:
        if not self._config.thumbnail_backfill_enabled or self._task_queue is None:
            return
        task_id = self._task_queue.enqueue_thumbnail_backfill(file_id)
        logger.info("thumbnail_backfill_enqueued", stored_file_id=file_id, task_id=task_id)
