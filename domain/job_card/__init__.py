"""Job card domain exports."""
from .entity import JobCard, JobStatus, StatusTransition
from .repository import JobCardRepository

__all__ = ["JobCard", "JobStatus", "StatusTransition", "JobCardRepository"]
