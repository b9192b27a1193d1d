import asyncio
import hashlib
from datetime import datetime, timezone

import pytest

from application.services.post_upload_processor import PostUploadProcessor
from application.services.relay_upload_service import RelayUploadService, derive_session_id
from application.services.upload_negotiator import UploadNegotiator
from application.utils.admission import TransferAdmission
from application.utils.content_range import parse_content_range
from core.config import UploadSettings
from domain.common.exceptions import (
    ContentRangeInvalidException,
    JobCardNotFoundException,
    UploadValidationException,
)
from infrastructure.uploads import InMemoryChunkSessionStore

from conftest import FakeThumbnailGenerator

NOW = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _service(db, storage, *, chunk_store=None, config=None, admission=None):
    config = config or UploadSettings()
    negotiator = UploadNegotiator(db.uow_factory, storage, config=config, clock=lambda: NOW)
    processor = PostUploadProcessor(
        db.uow_factory,
        storage,
        FakeThumbnailGenerator(),
        admission=admission,
        config=config,
        sleep=asyncio.sleep,
    )
    return RelayUploadService(
        negotiator,
        processor,
        chunk_store=chunk_store or InMemoryChunkSessionStore(),
        admission=admission,
    )


def _ranges(payload: bytes, size: int):
    for start in range(0, len(payload), size):
        chunk = payload[start:start + size]
        yield f"bytes {start}-{start + len(chunk) - 1}/{len(payload)}", chunk


def test_parse_content_range():
    rng = parse_content_range("bytes 0-4/10")
    assert (rng.start, rng.end, rng.total, rng.length) == (0, 4, 10, 5)


@pytest.mark.parametrize(
    "header",
    [None, "", "bytes 0-4", "items 0-4/10", "bytes 5-4/10", "bytes 0-10/10", "bytes a-b/c"],
)
def test_parse_content_range_rejects_malformed(header):
    with pytest.raises(ContentRangeInvalidException):
        parse_content_range(header)


def test_session_id_is_derived_from_sanitized_name():
    sid = derive_session_id(42, "editor-7", "my house.jpg", 100)
    assert sid == hashlib.sha1(b"42:editor-7:my_house.jpg:100").hexdigest()


@pytest.mark.asyncio
async def test_upload_file_relays_and_processes(db, storage, principal):
    db.add_job(42)
    payload = b"\xff\xd8" + b"x" * 1000

    async def read():
        return payload

    result = await _service(db, storage).upload_file(
        42,
        principal,
        file_name="house.jpg",
        content_type="image/jpeg",
        size=len(payload),
        read=read,
        media_kind="finished",
    )

    key = f"jobs/42/finished/{int(NOW.timestamp() * 1000)}-house.jpg"
    assert result.storage_key == key
    assert storage.objects[key] == payload
    assert storage.metadata[key]["uploaded_by"] == "editor-7"
    assert result.file_size == len(payload)
    assert result.thumbnail_generated is True
    assert result.download_url.startswith("https://storage.test/")
    assert result.file.id == 1


@pytest.mark.asyncio
async def test_upload_file_survives_missing_download_url(db, storage, principal):
    db.add_job(42)
    storage.fail_download_urls = True

    async def read():
        return b"%PDF-1.7"

    result = await _service(db, storage).upload_file(
        42, principal, file_name="plan.pdf", content_type="application/pdf", size=8, read=read,
        category="floor_plan",
    )
    assert result.download_url is None
    assert result.thumbnail_generated is False


@pytest.mark.asyncio
async def test_upload_file_rejects_unknown_job_before_reading(db, storage, principal):
    async def read():
        raise AssertionError("body must not be read")

    with pytest.raises(JobCardNotFoundException):
        await _service(db, storage).upload_file(
            7, principal, file_name="a.jpg", content_type="image/jpeg", size=3, read=read
        )


@pytest.mark.asyncio
async def test_upload_file_checks_actual_size(db, storage, principal):
    db.add_job(42)

    async def read():
        return b"x" * 2048

    with pytest.raises(UploadValidationException):
        await _service(db, storage, config=UploadSettings(max_file_size=1024)).upload_file(
            42, principal, file_name="a.jpg", content_type="image/jpeg", size=None, read=read
        )
    assert storage.objects == {}


@pytest.mark.asyncio
async def test_out_of_order_chunks_reassemble_byte_for_byte(db, storage, principal):
    db.add_job(42)
    payload = bytes(range(256)) * 40
    service = _service(db, storage)
    pieces = list(_ranges(payload, 1000))
    order = [3, 0, 10, 7, 1, 9, 2, 5, 8, 4, 6]
    assert sorted(order) == list(range(len(pieces)))

    responses = []
    for idx in order:
        header, chunk = pieces[idx]
        responses.append(await service.accept_chunk(
            42, principal, content_range=header, data=chunk, file_name="pano.jpg",
            content_type="image/jpeg", media_kind="raw",
        ))

    assert all(not r.complete for r in responses[:-1])
    final = responses[-1]
    assert final.complete is True
    assert final.received == final.total == len(payload)
    assert storage.objects[final.result.storage_key] == payload
    assert len(db.files) == 1


@pytest.mark.asyncio
async def test_resent_chunk_replaces_previous_bytes(db, storage, principal):
    db.add_job(42)
    store = InMemoryChunkSessionStore()
    service = _service(db, storage, chunk_store=store)

    first = await service.accept_chunk(
        42, principal, content_range="bytes 0-3/8", data=b"AAAA", file_name="a.bin",
        content_type="image/jpeg", session_id="s1",
    )
    again = await service.accept_chunk(
        42, principal, content_range="bytes 0-3/8", data=b"BBBB", file_name="a.bin",
        content_type="image/jpeg", session_id="s1",
    )
    assert first.received == again.received == 4

    done = await service.accept_chunk(
        42, principal, content_range="bytes 4-7/8", data=b"CCCC", file_name="a.bin",
        content_type="image/jpeg", session_id="s1",
    )
    assert storage.objects[done.result.storage_key] == b"BBBBCCCC"
    assert len(store) == 0


@pytest.mark.asyncio
async def test_overlapping_chunks_discard_session(db, storage, principal):
    db.add_job(42)
    store = InMemoryChunkSessionStore()
    service = _service(db, storage, chunk_store=store)

    await service.accept_chunk(
        42, principal, content_range="bytes 0-5/8", data=b"AAAAAA", file_name="a.bin",
        content_type="image/jpeg", session_id="s1",
    )
    with pytest.raises(UploadValidationException):
        await service.accept_chunk(
            42, principal, content_range="bytes 2-7/8", data=b"BBBBBB", file_name="a.bin",
            content_type="image/jpeg", session_id="s1",
        )
    assert len(store) == 0
    assert storage.objects == {}


@pytest.mark.asyncio
async def test_chunk_length_must_match_header(db, storage, principal):
    db.add_job(42)
    with pytest.raises(ContentRangeInvalidException):
        await _service(db, storage).accept_chunk(
            42, principal, content_range="bytes 0-9/20", data=b"short", file_name="a.bin",
            content_type="image/jpeg",
        )


@pytest.mark.asyncio
async def test_total_cannot_change_within_session(db, storage, principal):
    db.add_job(42)
    service = _service(db, storage)
    await service.accept_chunk(
        42, principal, content_range="bytes 0-1/10", data=b"ab", file_name="a.bin",
        content_type="image/jpeg", session_id="s1",
    )
    with pytest.raises(ContentRangeInvalidException):
        await service.accept_chunk(
            42, principal, content_range="bytes 2-3/12", data=b"cd", file_name="a.bin",
            content_type="image/jpeg", session_id="s1",
        )


@pytest.mark.asyncio
async def test_first_chunk_validates_declared_total(db, storage, principal):
    db.add_job(42)
    service = _service(db, storage, config=UploadSettings(max_file_size=10))
    with pytest.raises(UploadValidationException):
        await service.accept_chunk(
            42, principal, content_range="bytes 0-1/100", data=b"ab", file_name="a.bin",
            content_type="image/jpeg",
        )


@pytest.mark.asyncio
async def test_single_slot_relay_still_generates_thumbnail(db, storage, principal):
    db.add_job(42)
    admission = TransferAdmission(max_concurrent=1, timeout=0.3, threshold=0)
    payload = b"\xff\xd8" + b"x" * 1000

    async def read():
        return payload

    result = await _service(db, storage, admission=admission).upload_file(
        42,
        principal,
        file_name="house.jpg",
        content_type="image/jpeg",
        size=len(payload),
        read=read,
        media_kind="finished",
    )

    assert result.thumbnail_generated is True
    assert result.file.thumbnail_key is not None
    assert admission.in_flight == 0


@pytest.mark.asyncio
async def test_single_slot_chunk_assembly_still_generates_thumbnail(db, storage, principal):
    db.add_job(42)
    admission = TransferAdmission(max_concurrent=1, timeout=0.3, threshold=0)
    service = _service(db, storage, admission=admission)
    payload = b"\xff\xd8" + bytes(range(256)) * 4

    last = None
    for header, chunk in _ranges(payload, 300):
        last = await service.accept_chunk(
            42,
            principal,
            content_range=header,
            data=chunk,
            file_name="house.jpg",
            content_type="image/jpeg",
            media_kind="finished",
        )

    assert last.complete is True
    assert last.result.thumbnail_generated is True
    assert admission.in_flight == 0
