"""Server-mediated uploads: whole-file relay and chunked relay.

Used when the client cannot PUT to storage directly (local backend, or the
direct transfer failed). Bytes arrive at the API, get written to storage and
are then handed to the post-upload processor exactly like a direct upload.
"""
from __future__ import annotations

import hashlib
from contextlib import nullcontext
from typing import Awaitable, Callable, Optional

from application.dto import (
    ChunkAcceptedDTO,
    PrincipalDTO,
    ProcessFileRequestDTO,
    RelayUploadResultDTO,
    StoredFileDTO,
)
from application.ports.chunk_store import ChunkSessionInfo, ChunkSessionStore
from application.services.post_upload_processor import PostUploadProcessor
from application.services.upload_negotiator import UploadNegotiator
from application.utils.admission import TransferAdmission
from application.utils.content_range import parse_content_range
from core.logging_config import get_logger
from domain.common.exceptions import (
    ContentRangeInvalidException,
    StorageOperationException,
    UploadValidationException,
)
from domain.media import sanitize_file_name

logger = get_logger(__name__)


def derive_session_id(job_id: int, uploader_id: str, file_name: str, total: int) -> str:
    """Stable id for clients that do not send ``X-Upload-Session``."""
    raw = f"{job_id}:{uploader_id}:{sanitize_file_name(file_name)}:{total}"
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()


class RelayUploadService:

    def __init__(
        self,
        negotiator: UploadNegotiator,
        processor: PostUploadProcessor,
        *,
        chunk_store: Optional[ChunkSessionStore] = None,
        admission: Optional[TransferAdmission] = None,
    ):
        self._negotiator = negotiator
        self._processor = processor
        self._chunk_store = chunk_store
        self._admission = admission

    def _gate(self, size: int, label: str):
        if self._admission is None:
            return nullcontext()
        return self._admission.slot(size, label=label)

    async def upload_file(
        self,
        job_id: int,
        principal: PrincipalDTO,
        *,
        file_name: str,
        content_type: Optional[str],
        size: Optional[int],
        read: Callable[[], Awaitable[bytes]],
        category: str = "photography",
        media_kind: str = "raw",
    ) -> RelayUploadResultDTO:
        """Relay a whole file through the API into storage, then process it."""
        content_type = content_type or "application/octet-stream"
        declared = size if size is not None else 0
        self._negotiator.validate(
            file_name=file_name,
            content_type=content_type,
            file_size=declared,
            category=category,
            media_kind=media_kind,
        )
        self._negotiator.require_storage()
        await self._negotiator.ensure_job(job_id)

        # 未知大小按大文件处理
        gate_size = size if size is not None else self._negotiator.config.large_upload_threshold
        async with self._gate(gate_size, "relay_upload"):
            request = await self._store(
                job_id,
                principal,
                data=await read(),
                file_name=file_name,
                content_type=content_type,
                category=category,
                media_kind=media_kind,
            )
        return await self._process_stored(job_id, principal, request)

    async def accept_chunk(
        self,
        job_id: int,
        principal: PrincipalDTO,
        *,
        content_range: Optional[str],
        data: bytes,
        file_name: str,
        content_type: Optional[str],
        category: str = "photography",
        media_kind: str = "raw",
        session_id: Optional[str] = None,
    ) -> ChunkAcceptedDTO:
        """Buffer one chunk; the chunk that completes the file triggers processing.

        Chunks may arrive in any order. Resending a range replaces the bytes
        buffered for that offset.
        """
        if self._chunk_store is None:
            raise UploadValidationException("Chunked uploads are not enabled")

        byte_range = parse_content_range(content_range)
        if len(data) != byte_range.length:
            raise ContentRangeInvalidException(
                f"Chunk length {len(data)} does not match Content-Range length {byte_range.length}",
                header=content_range,
            )

        content_type = content_type or "application/octet-stream"
        sid = session_id or derive_session_id(job_id, principal.user_id, file_name, byte_range.total)

        info = await self._chunk_store.get_info(sid)
        if info is None:
            self._negotiator.validate(
                file_name=file_name,
                content_type=content_type,
                file_size=byte_range.total,
                category=category,
                media_kind=media_kind,
            )
            self._negotiator.require_storage()
            await self._negotiator.ensure_job(job_id)
            info = ChunkSessionInfo(
                session_id=sid,
                job_id=job_id,
                file_name=file_name,
                content_type=content_type,
                total_size=byte_range.total,
                category=category,
                media_kind=media_kind,
                uploader_id=principal.user_id,
                licensee_id=principal.licensee_id,
            )
            logger.info("chunk_session_started", session_id=sid, job_id=job_id, total=byte_range.total)
        elif info.total_size != byte_range.total or info.job_id != job_id:
            raise ContentRangeInvalidException(
                "Content-Range total does not match the upload session",
                header=content_range,
            )

        progress = await self._chunk_store.append(info, byte_range.start, data)
        if progress.received > progress.total:
            await self._chunk_store.discard(sid)
            logger.warning(
                "chunk_session_overflow",
                session_id=sid,
                received=progress.received,
                total=progress.total,
            )
            raise UploadValidationException(
                "Received more bytes than declared",
                field="content_range",
                details={"received": progress.received, "total": progress.total},
            )

        if not progress.complete:
            return ChunkAcceptedDTO(
                session_id=sid, received=progress.received, total=progress.total
            )

        async with self._gate(info.total_size, "chunk_assembly"):
            try:
                payload = await self._chunk_store.assemble(sid)
            finally:
                await self._chunk_store.discard(sid)
            logger.info("chunk_session_assembled", session_id=sid, job_id=job_id, size=len(payload))
            request = await self._store(
                info.job_id,
                principal,
                data=payload,
                file_name=info.file_name,
                content_type=info.content_type,
                category=info.category,
                media_kind=info.media_kind,
            )
            del payload
        result = await self._process_stored(info.job_id, principal, request)
        return ChunkAcceptedDTO(
            session_id=sid,
            received=progress.received,
            total=progress.total,
            complete=True,
            result=result,
        )

    async def _store(
        self,
        job_id: int,
        principal: PrincipalDTO,
        *,
        data: bytes,
        file_name: str,
        content_type: str,
        category: str,
        media_kind: str,
    ) -> ProcessFileRequestDTO:
        """Write relayed bytes to storage; returns the request for processing."""
        negotiator = self._negotiator
        if len(data) > negotiator.config.max_file_size:
            raise UploadValidationException(
                "File too large",
                field="file_size",
                details={"max_file_size": negotiator.config.max_file_size, "file_size": len(data)},
            )
        storage = negotiator.require_storage()
        kind, _ = negotiator.validate(
            file_name=file_name,
            content_type=content_type,
            file_size=len(data),
            category=category,
            media_kind=media_kind,
        )
        key = negotiator.build_key(job_id, kind, file_name)

        await storage.write_bytes(
            data,
            key,
            content_type=content_type,
            metadata={"type": kind.value, "job_id": str(job_id), "uploaded_by": principal.user_id},
        )
        logger.info("relay_upload_stored", job_id=job_id, storage_key=key, size=len(data))
        return ProcessFileRequestDTO(
            storage_key=key,
            file_name=file_name,
            content_type=content_type,
            file_size=len(data),
            category=category,
            media_kind=media_kind,
        )

    async def _process_stored(
        self,
        job_id: int,
        principal: PrincipalDTO,
        request: ProcessFileRequestDTO,
    ) -> RelayUploadResultDTO:
        # 调用方已释放准入槽位，缩略图生成会自行申请
        storage = self._negotiator.require_storage()
        outcome = await self._processor.process(job_id, principal, request)

        download_url: Optional[str] = None
        try:
            credential = await storage.issue_download_credential(
                request.storage_key,
                self._negotiator.config.download_expires_in,
                filename=request.file_name,
            )
            download_url = credential.url
        except StorageOperationException as exc:
            logger.warning("relay_download_url_unavailable", storage_key=request.storage_key, error=str(exc))

        return RelayUploadResultDTO(
            storage_key=request.storage_key,
            download_url=download_url,
            file_name=request.file_name,
            file_size=request.file_size,
            content_type=request.content_type,
            thumbnail_generated=outcome.thumbnail_generated,
            file=StoredFileDTO.from_entity(outcome.stored_file),
        )
