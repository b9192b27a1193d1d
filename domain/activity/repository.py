"""Repository abstraction for the activity log."""
from __future__ import annotations

from abc import ABC, abstractmethod

from .entity import ActivityLogEntry


class ActivityLogRepository(ABC):

    @abstractmethod
    async def append(self, entry: ActivityLogEntry) -> ActivityLogEntry:
        ...

    @abstractmethod
    async def list_for_job(self, job_id: int, *, limit: int = 100) -> list[ActivityLogEntry]:
        """Newest first."""
        ...
