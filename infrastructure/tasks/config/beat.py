"""Celery beat schedule configuration."""
from __future__ import annotations

from core.config import settings

CELERY_BEAT_SCHEDULE = {
    "reconcile-media-storage": {
        "task": "media.reconcile_storage",
        "schedule": settings.upload.reconciliation_interval,
        "kwargs": {"job_id": None},
    },
}
