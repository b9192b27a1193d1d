"""Report-only reconciliation between storage objects and StoredFile rows.

Storage writes and metadata writes are not atomic. This sweep finds the two
kinds of drift (objects with no row, rows whose object is gone) and logs
them; it never deletes anything.
"""
from __future__ import annotations

from typing import Callable, Optional

from application.dto import ReconciliationReportDTO
from application.ports.storage import StoragePort
from core.config import UploadSettings, settings
from core.logging_config import get_logger
from domain.common.exceptions import StorageNotConfiguredException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.media import StoredFile, job_prefix

logger = get_logger(__name__)


class StorageReconciliationService:

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        storage: Optional[StoragePort],
        *,
        config: Optional[UploadSettings] = None,
        page_size: int = 500,
        max_objects: int = 10_000,
    ):
        self._uow_factory = uow_factory
        self._storage = storage
        self._config = config or settings.upload
        self._page_size = page_size
        self._max_objects = max_objects

    async def _load_records(self, job_id: Optional[int]) -> list[StoredFile]:
        async with self._uow_factory(readonly=True) as uow:
            repo = uow.stored_file_repository
            if job_id is not None:
                return await repo.list_for_job(job_id)
            records: list[StoredFile] = []
            skip = 0
            while True:
                page = await repo.list_all(skip=skip, limit=self._page_size)
                records.extend(page)
                if len(page) < self._page_size:
                    return records
                skip += self._page_size

    async def scan(self, job_id: Optional[int] = None) -> ReconciliationReportDTO:
        if self._storage is None:
            raise StorageNotConfiguredException()

        prefix = (
            job_prefix(self._config.key_prefix, job_id)
            if job_id is not None
            else f"{self._config.key_prefix}/"
        )
        object_keys = set(await self._storage.list_keys(prefix, limit=self._max_objects))
        records = await self._load_records(job_id)

        known_keys: set[str] = set()
        dangling: list[int] = []
        for record in records:
            known_keys.add(record.storage_key)
            if record.thumbnail_key:
                known_keys.add(record.thumbnail_key)
            present = record.storage_key in object_keys or await self._storage.exists(record.storage_key)
            if not present:
                dangling.append(record.id)

        orphans = sorted(object_keys - known_keys)
        report = ReconciliationReportDTO(
            scanned_objects=len(object_keys),
            scanned_records=len(records),
            orphan_objects=orphans,
            dangling_records=dangling,
        )
        log = logger.warning if (orphans or dangling) else logger.info
        log(
            "storage_reconciliation_finished",
            prefix=prefix,
            scanned_objects=report.scanned_objects,
            scanned_records=report.scanned_records,
            orphan_count=len(orphans),
            dangling_count=len(dangling),
        )
        return report
