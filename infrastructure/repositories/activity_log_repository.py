"""SQLAlchemy-backed repository for the activity log."""
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from domain.activity import ActivityLogEntry, ActivityLogRepository
from infrastructure.models.activity_log import ActivityLogModel


class SQLAlchemyActivityLogRepository(ActivityLogRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: ActivityLogModel) -> ActivityLogEntry:
        return ActivityLogEntry(
            id=model.id,
            job_id=model.job_id,
            actor_id=model.actor_id,
            action=model.action,
            description=model.description,
            metadata=dict(model.extra_metadata or {}),
            created_at=model.created_at,
        )

    async def append(self, entry: ActivityLogEntry) -> ActivityLogEntry:
        model = ActivityLogModel(
            job_id=entry.job_id,
            actor_id=entry.actor_id,
            action=entry.action.value,
            description=entry.description,
            extra_metadata=entry.metadata or {},
            created_at=entry.created_at,
        )
        self.session.add(model)
        await self.session.flush()
        await self.session.refresh(model)
        return self._to_entity(model)

    async def list_for_job(self, job_id: int, *, limit: int = 100) -> list[ActivityLogEntry]:
        query = (
            select(ActivityLogModel)
            .where(ActivityLogModel.job_id == job_id)
            .order_by(ActivityLogModel.created_at.desc(), ActivityLogModel.id.desc())
            .limit(limit)
        )
        result = await self.session.execute(query)
        return [self._to_entity(model) for model in result.scalars().all()]
