"""Storage key scheme for job media.

``<prefix>/<job_id>/<media_kind>/<epoch_ms>-<sanitized_name>``; thumbnails
live in a ``thumbs/`` folder next to their original.
"""
from __future__ import annotations

import re
from datetime import datetime

from domain.common.exceptions import DomainValidationException

from .entity import MediaKind

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")
MAX_FILE_NAME_LENGTH = 255


def sanitize_file_name(file_name: str) -> str:
    """Replace every character outside ``[A-Za-z0-9._-]`` with ``_``."""
    if not file_name or not file_name.strip():
        raise DomainValidationException("File name is required", field="file_name")
    if len(file_name) > MAX_FILE_NAME_LENGTH:
        raise DomainValidationException(
            f"File name longer than {MAX_FILE_NAME_LENGTH} characters", field="file_name"
        )
    return _UNSAFE_CHARS.sub("_", file_name)


def job_prefix(prefix: str, job_id: int) -> str:
    return f"{prefix}/{job_id}/"


def build_storage_key(
    job_id: int,
    media_kind: MediaKind,
    file_name: str,
    now: datetime,
    *,
    prefix: str = "jobs",
) -> str:
    """Deterministic for the same inputs and clock reading."""
    epoch_ms = int(now.timestamp() * 1000)
    kind = MediaKind(media_kind).value
    return f"{prefix}/{job_id}/{kind}/{epoch_ms}-{sanitize_file_name(file_name)}"


def thumbnail_key(storage_key: str) -> str:
    directory, _, base = storage_key.rpartition("/")
    stem = base.rsplit(".", 1)[0] if "." in base else base
    thumb = f"thumb_{stem}.jpg"
    return f"{directory}/thumbs/{thumb}" if directory else f"thumbs/{thumb}"
