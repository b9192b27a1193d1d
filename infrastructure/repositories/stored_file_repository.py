"""SQLAlchemy-backed repository for stored media files."""
from __future__ import annotations

from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.exceptions import StoredFileNotFoundException
from domain.media import MediaKind, ServiceCategory, StoredFile, StoredFileRepository
from infrastructure.models.stored_file import StoredFileModel


class SQLAlchemyStoredFileRepository(StoredFileRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: StoredFileModel) -> StoredFile:
        return StoredFile(
            id=model.id,
            job_id=model.job_id,
            file_name=model.file_name,
            storage_key=model.storage_key,
            thumbnail_key=model.thumbnail_key,
            content_type=model.content_type,
            file_size=model.file_size,
            media_kind=model.media_kind,
            category=model.category,
            uploader_id=model.uploader_id,
            licensee_id=model.licensee_id,
            storage_type=model.storage_type,
            bucket=model.bucket,
            uploaded_at=model.uploaded_at,
        )

    async def create(self, stored_file: StoredFile) -> StoredFile:
        model = StoredFileModel(
            job_id=stored_file.job_id,
            file_name=stored_file.file_name,
            storage_key=stored_file.storage_key,
            thumbnail_key=stored_file.thumbnail_key,
            content_type=stored_file.content_type,
            file_size=stored_file.file_size,
            media_kind=stored_file.media_kind.value,
            category=stored_file.category.value,
            uploader_id=stored_file.uploader_id,
            licensee_id=stored_file.licensee_id,
            storage_type=stored_file.storage_type,
            bucket=stored_file.bucket,
            uploaded_at=stored_file.uploaded_at,
        )
        self.session.add(model)
        await self.session.flush()
        await self.session.refresh(model)
        return self._to_entity(model)

    async def get_by_id(self, file_id: int) -> Optional[StoredFile]:
        result = await self.session.execute(
            select(StoredFileModel).where(StoredFileModel.id == file_id)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def set_thumbnail(self, file_id: int, thumbnail_key: str) -> None:
        result = await self.session.execute(
            update(StoredFileModel)
            .where(StoredFileModel.id == file_id)
            .values(thumbnail_key=thumbnail_key)
        )
        if result.rowcount == 0:
            raise StoredFileNotFoundException(file_id)

    async def list_for_job(
        self,
        job_id: int,
        *,
        media_kind: Optional[MediaKind] = None,
        category: Optional[ServiceCategory] = None,
    ) -> list[StoredFile]:
        query = select(StoredFileModel).where(StoredFileModel.job_id == job_id)
        if media_kind is not None:
            query = query.where(StoredFileModel.media_kind == MediaKind(media_kind).value)
        if category is not None:
            query = query.where(StoredFileModel.category == ServiceCategory(category).value)
        query = query.order_by(StoredFileModel.uploaded_at.desc(), StoredFileModel.id.desc())
        result = await self.session.execute(query)
        return [self._to_entity(model) for model in result.scalars().all()]

    async def list_all(self, *, skip: int = 0, limit: int = 500) -> list[StoredFile]:
        query = (
            select(StoredFileModel)
            .order_by(StoredFileModel.id.asc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return [self._to_entity(model) for model in result.scalars().all()]
