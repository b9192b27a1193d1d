"""Background task dispatch port."""
from __future__ import annotations

from typing import Optional, Protocol


class BackgroundTaskQueue(Protocol):
    def enqueue_thumbnail_backfill(self, file_id: int) -> Optional[str]:
        """Queue thumbnail regeneration; returns the task id if any."""
        ...
