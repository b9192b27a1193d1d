"""Background media jobs: thumbnail backfill and storage reconciliation."""
from __future__ import annotations

import asyncio
from typing import Any, Optional

from application.services.post_upload_processor import PostUploadProcessor
from application.services.reconciliation_service import StorageReconciliationService
from core.config import settings
from core.logging_config import get_logger
from infrastructure.adapters.storage_port import StorageProviderPortAdapter
from infrastructure.database import dispose_engine
from infrastructure.external.storage import get_storage_client, init_storage_client, shutdown_storage_client
from infrastructure.imaging import PillowThumbnailGenerator
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork

from ..config.celery import celery_app
from ..utils.base_task import BaseTask

logger = get_logger(__name__)


async def _with_storage(fn):
    """Run ``fn`` with a storage port inside a task-scoped event loop.

    Each task calls ``asyncio.run``, so pooled connections bound to the
    finished loop are disposed before it closes.
    """
    try:
        await init_storage_client()
        try:
            return await fn(StorageProviderPortAdapter(get_storage_client()))
        finally:
            await shutdown_storage_client()
    finally:
        await dispose_engine()


async def _backfill(file_id: int) -> bool:
    async def run(storage):
        processor = PostUploadProcessor(
            SQLAlchemyUnitOfWork,
            storage,
            PillowThumbnailGenerator(
                settings.upload.thumbnail_width,
                settings.upload.thumbnail_height,
                settings.upload.thumbnail_quality,
            ),
        )
        return await processor.backfill_thumbnail(file_id)

    return await _with_storage(run)


async def _reconcile(job_id: Optional[int]) -> dict[str, Any]:
    async def run(storage):
        report = await StorageReconciliationService(SQLAlchemyUnitOfWork, storage).scan(job_id)
        return report.model_dump()

    return await _with_storage(run)


@celery_app.task(base=BaseTask, name="media.backfill_thumbnail", bind=True, max_retries=3)
def backfill_thumbnail(self, file_id: int) -> bool:
    """Render and attach a thumbnail that the upload path failed to produce."""
    logger.info("thumbnail_backfill_started", stored_file_id=file_id, task_id=self.request.id)
    return asyncio.run(_backfill(file_id))


@celery_app.task(base=BaseTask, name="media.reconcile_storage", bind=True)
def reconcile_storage(self, job_id: Optional[int] = None) -> dict[str, Any]:
    """Report storage objects without records and records without objects."""
    return asyncio.run(_reconcile(job_id))
