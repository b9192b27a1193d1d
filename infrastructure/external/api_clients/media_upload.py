"""Client SDK for the media upload endpoints.

``MediaUploadClient`` wraps the HTTP surface. ``TransferExecutor`` drives one
upload end to end: negotiate, PUT to the presigned URL with retry, process,
and fall back to the server proxy when the direct path keeps failing.
"""
from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Iterable, Optional

import httpx

from core.logging_config import get_logger
from shared.retry import BackoffPolicy, retry_with_backoff

from .base import APIError, BaseAPIClient

logger = get_logger(__name__)

DEFAULT_CHUNK_SIZE = 5 * 1024 * 1024
_PROGRESS_SLICE = 64 * 1024


class TransferTimeoutError(APIError):
    """The direct PUT did not finish within the per-request timeout."""


class StorageTransferError(APIError):
    """Object storage answered the direct PUT with a non-2xx status."""


class TransferStatus(str, Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    RETRYING = "retrying"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"


@dataclass
class TransferAttempt:
    job_id: int
    file_name: str
    file_size: int
    status: TransferStatus = TransferStatus.PENDING
    bytes_sent: int = 0
    attempts: int = 0
    used_fallback: bool = False
    last_error: Optional[BaseException] = None
    result: Optional[Dict[str, Any]] = None

    @property
    def progress(self) -> int:
        if self.file_size <= 0:
            return 100 if self.status is TransferStatus.SUCCESS else 0
        return min(100, int(self.bytes_sent * 100 / self.file_size))

    @property
    def cancelled(self) -> bool:
        return self.status is TransferStatus.CANCELLED


@dataclass
class UploadSource:
    file_name: str
    data: bytes
    content_type: str
    category: str = "photography"
    media_kind: str = "raw"
    extra: Dict[str, Any] = field(default_factory=dict)


ProgressCallback = Callable[[TransferAttempt], None]


def is_retryable_transfer_error(exc: BaseException) -> bool:
    if isinstance(exc, (TransferTimeoutError, httpx.TransportError)):
        return True
    if isinstance(exc, StorageTransferError):
        return exc.status_code == 403 or (exc.status_code or 0) >= 500
    return False


def is_fallback_eligible(exc: BaseException) -> bool:
    if isinstance(exc, (TransferTimeoutError, httpx.TransportError)):
        return True
    return isinstance(exc, StorageTransferError) and exc.status_code == 403


class MediaUploadClient(BaseAPIClient):
    """Thin wrapper over the ``/api/jobs/{job_id}/...`` upload endpoints."""

    async def negotiate(
        self,
        job_id: int,
        *,
        file_name: str,
        content_type: str,
        file_size: int,
        category: str = "photography",
        media_kind: str = "raw",
    ) -> Dict[str, Any]:
        response = await self.post(
            f"/api/jobs/{job_id}/upload-url",
            json_data={
                "fileName": file_name,
                "contentType": content_type,
                "fileSize": file_size,
                "category": category,
                "mediaType": media_kind,
            },
        )
        return response.payload()

    async def process_file(
        self,
        job_id: int,
        *,
        storage_key: str,
        file_name: str,
        content_type: str,
        file_size: int,
        category: str = "photography",
        media_kind: str = "raw",
    ) -> Dict[str, Any]:
        response = await self.post(
            f"/api/jobs/{job_id}/process-file",
            json_data={
                "storageKey": storage_key,
                "fileName": file_name,
                "contentType": content_type,
                "fileSize": file_size,
                "category": category,
                "mediaType": media_kind,
            },
        )
        return response.payload()

    async def upload_file(
        self,
        job_id: int,
        *,
        file_name: str,
        data: bytes,
        content_type: str,
        category: str = "photography",
        media_kind: str = "raw",
    ) -> Dict[str, Any]:
        response = await self.post(
            f"/api/jobs/{job_id}/upload-file",
            files={"file": (file_name, data, content_type)},
            data={"category": category, "mediaType": media_kind},
        )
        return response.payload()

    async def upload_chunk(
        self,
        job_id: int,
        *,
        file_name: str,
        chunk: bytes,
        start: int,
        total: int,
        content_type: str,
        session_id: str,
        category: str = "photography",
        media_kind: str = "raw",
    ) -> Dict[str, Any]:
        end = start + len(chunk) - 1
        response = await self.post(
            f"/api/jobs/{job_id}/upload-file-chunk",
            files={"chunk": (file_name, chunk, "application/octet-stream")},
            data={"category": category, "mediaType": media_kind, "contentType": content_type},
            headers={
                "Content-Range": f"bytes {start}-{end}/{total}",
                "X-File-Name": file_name,
                "X-Upload-Session": session_id,
            },
        )
        return response.payload()

    async def put_object(
        self,
        url: str,
        data: bytes,
        *,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 60.0,
        on_chunk: Optional[Callable[[int], None]] = None,
    ) -> None:
        """PUT bytes to a presigned URL; no retry here."""

        async def body() -> AsyncIterator[bytes]:
            for offset in range(0, len(data), _PROGRESS_SLICE):
                piece = data[offset:offset + _PROGRESS_SLICE]
                yield piece
                if on_chunk is not None:
                    on_chunk(len(piece))

        request_headers = dict(headers or {})
        # presigned PUT rejects chunked transfer encoding
        request_headers["Content-Length"] = str(len(data))
        try:
            response = await self.client.put(
                url, content=body(), headers=request_headers, timeout=timeout
            )
        except httpx.TimeoutException as exc:
            raise TransferTimeoutError(f"Direct upload timed out after {timeout}s") from exc

        if response.status_code >= 300:
            raise StorageTransferError(
                f"Storage rejected upload: {response.status_code}",
                status_code=response.status_code,
            )


class TransferExecutor:
    """Uploads files with progress, retry/backoff and proxy fallback."""

    def __init__(
        self,
        client: MediaUploadClient,
        *,
        policy: BackoffPolicy = BackoffPolicy(),
        chunk_threshold: int = DEFAULT_CHUNK_SIZE,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        put_timeout: float = 60.0,
        max_concurrency: int = 3,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._client = client
        self._policy = policy
        self._chunk_threshold = chunk_threshold
        self._chunk_size = chunk_size
        self._put_timeout = put_timeout
        self._max_concurrency = max_concurrency
        self._sleep = sleep

    def cancel(self, attempt: TransferAttempt) -> None:
        """Mark an attempt cancelled.

        Nothing new is started after this, but a PUT already sent is still
        registered through process-file so the stored object gets its record.
        """
        if attempt.status not in (TransferStatus.SUCCESS, TransferStatus.ERROR):
            attempt.status = TransferStatus.CANCELLED

    @staticmethod
    def _advance_status(attempt: TransferAttempt, status: TransferStatus) -> None:
        if not attempt.cancelled:
            attempt.status = status

    async def upload(
        self,
        job_id: int,
        source: UploadSource,
        *,
        on_progress: Optional[ProgressCallback] = None,
        attempt: Optional[TransferAttempt] = None,
    ) -> TransferAttempt:
        attempt = attempt or TransferAttempt(
            job_id=job_id, file_name=source.file_name, file_size=len(source.data)
        )
        if attempt.cancelled:
            return attempt
        attempt.status = TransferStatus.UPLOADING
        notify = on_progress or (lambda _: None)
        notify(attempt)

        def on_retry(number: int, error: BaseException, delay: float) -> None:
            attempt.last_error = error
            self._advance_status(attempt, TransferStatus.RETRYING)
            notify(attempt)

        try:
            target = await self._client.negotiate(
                job_id,
                file_name=source.file_name,
                content_type=source.content_type,
                file_size=len(source.data),
                category=source.category,
                media_kind=source.media_kind,
            )
            # 尚未发送任何字节
            if attempt.cancelled:
                return attempt

            if target.get("transfer_mode") == "server" or not target.get("upload_url"):
                result = await self._proxy(job_id, source, attempt, notify)
            else:
                result = await retry_with_backoff(
                    lambda: self._direct(target, source, attempt, notify),
                    policy=self._policy,
                    is_retryable=lambda exc: not attempt.cancelled and is_retryable_transfer_error(exc),
                    should_fallback=lambda exc: not attempt.cancelled and is_fallback_eligible(exc),
                    fallback=lambda exc: self._proxy(job_id, source, attempt, notify, cause=exc),
                    on_retry=on_retry,
                    sleep=self._sleep,
                    operation_name="direct_upload",
                )
                if result is None:
                    # 对象已写入存储，取消后仍需登记
                    self._advance_status(attempt, TransferStatus.PROCESSING)
                    notify(attempt)
                    result = await self._client.process_file(
                        job_id,
                        storage_key=target["storage_key"],
                        file_name=source.file_name,
                        content_type=source.content_type,
                        file_size=len(source.data),
                        category=source.category,
                        media_kind=source.media_kind,
                    )
        except Exception as exc:  # reported through attempt.status
            attempt.last_error = exc
            self._advance_status(attempt, TransferStatus.ERROR)
            logger.warning(
                "transfer_failed",
                job_id=job_id,
                file_name=source.file_name,
                attempts=attempt.attempts,
                status=attempt.status.value,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            notify(attempt)
            return attempt

        attempt.result = result
        attempt.bytes_sent = attempt.file_size
        self._advance_status(attempt, TransferStatus.SUCCESS)
        logger.info(
            "transfer_finished",
            job_id=job_id,
            file_name=source.file_name,
            attempts=attempt.attempts,
            used_fallback=attempt.used_fallback,
            status=attempt.status.value,
        )
        notify(attempt)
        return attempt

    async def upload_many(
        self,
        job_id: int,
        sources: Iterable[UploadSource],
        *,
        on_progress: Optional[ProgressCallback] = None,
    ) -> list:
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def run(source: UploadSource) -> TransferAttempt:
            async with semaphore:
                return await self.upload(job_id, source, on_progress=on_progress)

        return await asyncio.gather(*(run(s) for s in sources), return_exceptions=True)

    async def _direct(
        self,
        target: Dict[str, Any],
        source: UploadSource,
        attempt: TransferAttempt,
        notify: ProgressCallback,
    ) -> None:
        attempt.attempts += 1
        attempt.bytes_sent = 0
        self._advance_status(attempt, TransferStatus.UPLOADING)
        notify(attempt)

        def advance(n: int) -> None:
            attempt.bytes_sent += n
            notify(attempt)

        headers = dict(target.get("headers") or {})
        headers.setdefault("Content-Type", source.content_type)
        await self._client.put_object(
            target["upload_url"],
            source.data,
            headers=headers,
            timeout=self._put_timeout,
            on_chunk=advance,
        )
        return None

    async def _proxy(
        self,
        job_id: int,
        source: UploadSource,
        attempt: TransferAttempt,
        notify: ProgressCallback,
        *,
        cause: Optional[BaseException] = None,
    ) -> Dict[str, Any]:
        attempt.used_fallback = True
        attempt.bytes_sent = 0
        if cause is not None:
            attempt.last_error = cause
            logger.info("transfer_fallback_to_proxy", job_id=job_id, file_name=source.file_name, error=str(cause))

        data = source.data
        if len(data) <= self._chunk_threshold:
            result = await self._client.upload_file(
                job_id,
                file_name=source.file_name,
                data=data,
                content_type=source.content_type,
                category=source.category,
                media_kind=source.media_kind,
            )
            attempt.bytes_sent = len(data)
            notify(attempt)
            return result

        session_id = uuid.uuid4().hex
        response: Dict[str, Any] = {}
        for start in range(0, len(data), self._chunk_size):
            chunk = data[start:start + self._chunk_size]
            response = await self._client.upload_chunk(
                job_id,
                file_name=source.file_name,
                chunk=chunk,
                start=start,
                total=len(data),
                content_type=source.content_type,
                session_id=session_id,
                category=source.category,
                media_kind=source.media_kind,
            )
            attempt.bytes_sent = start + len(chunk)
            notify(attempt)
        return response.get("result") or response
