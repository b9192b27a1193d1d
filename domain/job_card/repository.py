"""Repository abstraction for job cards."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from .entity import JobCard


class JobCardRepository(ABC):

    @abstractmethod
    async def add(self, job: JobCard) -> JobCard:
        ...

    @abstractmethod
    async def get_by_id(self, job_id: int) -> Optional[JobCard]:
        ...

    @abstractmethod
    async def update_status(self, job: JobCard) -> JobCard:
        """Persist the status (and timestamp) of an existing job."""
        ...
