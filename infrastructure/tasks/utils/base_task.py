"""Base task for media jobs"""
from __future__ import annotations

from typing import Any

from celery import Task
from core.logging_config import get_logger

logger = get_logger(__name__)

_CONTEXT_KEYS = ("file_id", "job_id")


def task_context(args: Any, kwargs: Any) -> dict[str, Any]:
    """Pick the identifiers worth logging; payload bytes never reach the log."""
    kwargs = kwargs or {}
    context = {key: kwargs[key] for key in _CONTEXT_KEYS if kwargs.get(key) is not None}
    if not context and args:
        context["arg0"] = args[0]
    return context


class BaseTask(Task):
    """Structured lifecycle logging keyed by the media identifiers."""

    def on_failure(self, exc, task_id, args, kwargs, einfo):  # type: ignore[override]
        logger.error(
            "media_task_failed",
            task_id=task_id,
            task_name=self.name,
            error=str(exc),
            error_type=type(exc).__name__,
            **task_context(args, kwargs),
        )
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_retry(self, exc, task_id, args, kwargs, einfo):  # type: ignore[override]
        logger.warning(
            "media_task_retrying",
            task_id=task_id,
            task_name=self.name,
            retries=self.request.retries,
            error=str(exc),
            **task_context(args, kwargs),
        )
        super().on_retry(exc, task_id, args, kwargs, einfo)

    def on_success(self, retval, task_id, args, kwargs):  # type: ignore[override]
        logger.info(
            "media_task_succeeded",
            task_id=task_id,
            task_name=self.name,
            **task_context(args, kwargs),
        )
        super().on_success(retval, task_id, args, kwargs)
