"""Celery task modules."""
from . import media  # noqa: F401
