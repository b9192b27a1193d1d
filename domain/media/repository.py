"""Repository abstraction for stored media files."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from .entity import MediaKind, ServiceCategory, StoredFile


class StoredFileRepository(ABC):

    @abstractmethod
    async def create(self, stored_file: StoredFile) -> StoredFile:
        ...

    @abstractmethod
    async def get_by_id(self, file_id: int) -> Optional[StoredFile]:
        ...

    @abstractmethod
    async def set_thumbnail(self, file_id: int, thumbnail_key: str) -> None:
        ...

    @abstractmethod
    async def list_for_job(
        self,
        job_id: int,
        *,
        media_kind: Optional[MediaKind] = None,
        category: Optional[ServiceCategory] = None,
    ) -> list[StoredFile]:
        """Newest first."""
        ...

    @abstractmethod
    async def list_all(self, *, skip: int = 0, limit: int = 500) -> list[StoredFile]:
        ...
