"""Activity log domain exports."""
from .entity import (
    ActivityAction,
    ActivityLogEntry,
    download_entry,
    status_change_entry,
    upload_entry,
)
from .repository import ActivityLogRepository

__all__ = [
    "ActivityAction",
    "ActivityLogEntry",
    "ActivityLogRepository",
    "download_entry",
    "status_change_entry",
    "upload_entry",
]
