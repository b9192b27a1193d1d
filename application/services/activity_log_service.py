"""Activity log recording and listing."""
from __future__ import annotations

from typing import Callable

from application.dto import ActivityLogEntryDTO
from core.logging_config import get_logger
from domain.activity import ActivityLogEntry
from domain.common.exceptions import JobCardNotFoundException
from domain.common.unit_of_work import AbstractUnitOfWork

logger = get_logger(__name__)


class ActivityLogService:
    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]):
        self._uow_factory = uow_factory

    async def record(self, *entries: ActivityLogEntry) -> bool:
        """Append entries in one transaction; failures are logged, never raised."""
        if not entries:
            return True
        try:
            async with self._uow_factory() as uow:
                for entry in entries:
                    await uow.activity_log_repository.append(entry)
        except Exception:
            logger.error(
                "activity_log_write_failed",
                job_id=entries[0].job_id,
                actions=[e.action.value for e in entries],
                exc_info=True,
            )
            return False
        return True

    async def list_for_job(self, job_id: int, *, limit: int = 100) -> list[ActivityLogEntryDTO]:
        async with self._uow_factory(readonly=True) as uow:
            job = await uow.job_card_repository.get_by_id(job_id)
            if job is None:
                raise JobCardNotFoundException(job_id)
            entries = await uow.activity_log_repository.list_for_job(job_id, limit=limit)
        return [ActivityLogEntryDTO.from_entity(e) for e in entries]
