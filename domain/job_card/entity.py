"""Domain entity for the production job card a media file belongs to.

Job cards are owned by the booking side of the system; the media pipeline
only reads them and moves ``status`` forward when uploads arrive.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException
from domain.common.time import ensure_utc, utcnow


class JobStatus(str, Enum):
    UNASSIGNED = "unassigned"
    IN_PROGRESS = "in_progress"
    EDITING = "editing"
    READY_FOR_QA = "ready_for_qa"
    IN_REVISION = "in_revision"
    DELIVERED = "delivered"

    @property
    def label(self) -> str:
        return _STATUS_LABELS[self]


_STATUS_LABELS = {
    JobStatus.UNASSIGNED: "Unassigned",
    JobStatus.IN_PROGRESS: "In Progress",
    JobStatus.EDITING: "Editing",
    JobStatus.READY_FOR_QA: "Ready for QA",
    JobStatus.IN_REVISION: "In Revision",
    JobStatus.DELIVERED: "Delivered",
}

# finished 媒体到达后可进入待质检的状态
_READY_FOR_QA_FROM = {
    JobStatus.UNASSIGNED,
    JobStatus.IN_PROGRESS,
    JobStatus.EDITING,
    JobStatus.IN_REVISION,
}


@dataclass(frozen=True)
class StatusTransition:
    previous: JobStatus
    current: JobStatus


@dataclass
class JobCard:
    """Aggregate root for a production job."""

    id: Optional[int]
    licensee_id: str
    property_address: Optional[str] = None
    status: JobStatus = JobStatus.UNASSIGNED
    editor_id: Optional[str] = None
    photographer_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        try:
            self.status = JobStatus(self.status)
        except ValueError:
            raise DomainValidationException(
                f"Unknown job status: {self.status}",
                field="status",
                details={"allowed": [s.value for s in JobStatus]},
            )
        self.created_at = ensure_utc(self.created_at)
        self.updated_at = ensure_utc(self.updated_at)

    def _touch(self) -> None:
        now = utcnow()
        self.updated_at = now
        if self.created_at is None:
            self.created_at = now

    def _move_to(self, target: JobStatus) -> StatusTransition:
        transition = StatusTransition(previous=self.status, current=target)
        self.status = target
        self._touch()
        return transition

    def advance_on_finished_upload(self) -> Optional[StatusTransition]:
        """Move the job to ready_for_qa; None when no change applies."""
        if self.status not in _READY_FOR_QA_FROM:
            return None
        return self._move_to(JobStatus.READY_FOR_QA)

    def start_on_raw_upload(self) -> Optional[StatusTransition]:
        """First raw media marks an unassigned job as in progress."""
        if self.status is not JobStatus.UNASSIGNED:
            return None
        return self._move_to(JobStatus.IN_PROGRESS)

    def display_address(self) -> str:
        return self.property_address or f"job {self.id}"
