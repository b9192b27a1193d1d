"""Append-only activity log entry attached to a job card."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from domain.common.time import ensure_utc, utcnow


class ActivityAction(str, Enum):
    UPLOAD = "upload"
    DOWNLOAD = "download"
    STATUS_CHANGE = "status_change"


@dataclass
class ActivityLogEntry:
    id: Optional[int]
    job_id: int
    actor_id: str
    action: ActivityAction
    description: str
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.action = ActivityAction(self.action)
        self.created_at = ensure_utc(self.created_at) or utcnow()
        if self.metadata is None:
            self.metadata = {}


def upload_entry(stored_file, *, address: str) -> ActivityLogEntry:
    """Entry recorded after a media file has been persisted."""
    kind = stored_file.media_kind.value.upper()
    return ActivityLogEntry(
        id=None,
        job_id=stored_file.job_id,
        actor_id=stored_file.uploader_id,
        action=ActivityAction.UPLOAD,
        description=(
            f"User {stored_file.uploader_id} uploaded {kind} file: "
            f"{stored_file.file_name} to {address}"
        ),
        metadata={
            "file_name": stored_file.file_name,
            "file_size": stored_file.file_size,
            "content_type": stored_file.content_type,
            "storage_key": stored_file.storage_key,
            "media_kind": stored_file.media_kind.value,
            "category": stored_file.category.value,
            "address": address,
            "stored_file_id": stored_file.id,
        },
    )


def status_change_entry(job_id: int, actor_id: str, transition) -> ActivityLogEntry:
    return ActivityLogEntry(
        id=None,
        job_id=job_id,
        actor_id=actor_id,
        action=ActivityAction.STATUS_CHANGE,
        description=f"Job status updated to {transition.current.label}",
        metadata={"from": transition.previous.value, "to": transition.current.value},
    )


def download_entry(stored_file, actor_id: str) -> ActivityLogEntry:
    return ActivityLogEntry(
        id=None,
        job_id=stored_file.job_id,
        actor_id=actor_id,
        action=ActivityAction.DOWNLOAD,
        description=f"User {actor_id} downloaded file: {stored_file.file_name}",
        metadata={
            "stored_file_id": stored_file.id,
            "file_name": stored_file.file_name,
            "file_size": stored_file.file_size,
            "media_kind": stored_file.media_kind.value,
        },
    )
