"""Infrastructure models package exports."""
from .base import Base, metadata
from .job_card import JobCardModel
from .stored_file import StoredFileModel
from .activity_log import ActivityLogModel

__all__ = [
    "Base",
    "metadata",
    "JobCardModel",
    "StoredFileModel",
    "ActivityLogModel",
]
