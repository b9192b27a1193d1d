"""Celery-backed implementation of the application task queue port."""
from __future__ import annotations

from typing import Optional

from ..config.celery import celery_app


class TaskDispatcher:
    """Schedules media jobs by name so callers never import task modules."""

    def enqueue_thumbnail_backfill(self, file_id: int) -> Optional[str]:
        result = celery_app.send_task("media.backfill_thumbnail", kwargs={"file_id": file_id})
        return getattr(result, "id", None)
