"""SQLAlchemy-backed repository for job cards."""
from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.exceptions import JobCardNotFoundException
from domain.job_card import JobCard, JobCardRepository
from infrastructure.models.job_card import JobCardModel


class SQLAlchemyJobCardRepository(JobCardRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: JobCardModel) -> JobCard:
        return JobCard(
            id=model.id,
            licensee_id=model.licensee_id,
            property_address=model.property_address,
            status=model.status,
            editor_id=model.editor_id,
            photographer_id=model.photographer_id,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def _get_model(self, job_id: int) -> Optional[JobCardModel]:
        result = await self.session.execute(
            select(JobCardModel).where(JobCardModel.id == job_id)
        )
        return result.scalar_one_or_none()

    async def add(self, job: JobCard) -> JobCard:
        model = JobCardModel(
            licensee_id=job.licensee_id,
            property_address=job.property_address,
            status=job.status.value,
            editor_id=job.editor_id,
            photographer_id=job.photographer_id,
        )
        self.session.add(model)
        await self.session.flush()
        await self.session.refresh(model)
        return self._to_entity(model)

    async def get_by_id(self, job_id: int) -> Optional[JobCard]:
        model = await self._get_model(job_id)
        return self._to_entity(model) if model else None

    async def update_status(self, job: JobCard) -> JobCard:
        model = await self._get_model(job.id)
        if model is None:
            raise JobCardNotFoundException(job.id)
        model.status = job.status.value
        if job.updated_at is not None:
            model.updated_at = job.updated_at
        await self.session.flush()
        await self.session.refresh(model)
        return self._to_entity(model)
