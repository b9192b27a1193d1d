"""Entry point for the media worker (``media-worker`` console script).

Consumes every declared queue by default; extra arguments are passed
through to ``celery worker`` unchanged.
"""
from __future__ import annotations

import sys
from typing import Optional, Sequence

from core.config import settings

from .config.celery import celery_app


def build_argv(extra: Sequence[str] = ()) -> list[str]:
    queues = ",".join(queue.name for queue in celery_app.conf.task_queues)
    argv = [
        "worker",
        "--hostname=media@%h",
        f"--queues={queues}",
        f"--loglevel={(settings.LOG_LEVEL or 'INFO').upper()}",
    ]
    argv.extend(extra)
    return argv


def main(argv: Optional[Sequence[str]] = None) -> None:
    celery_app.worker_main(build_argv(sys.argv[1:] if argv is None else argv))


if __name__ == "__main__":
    main()
