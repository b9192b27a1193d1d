from datetime import datetime, timezone

import pytest

from application.dto import UploadRequestDTO
from application.services.upload_negotiator import UploadNegotiator
from core.config import UploadSettings
from domain.common.exceptions import (
    DomainValidationException,
    JobCardNotFoundException,
    StorageNotConfiguredException,
    UploadValidationException,
)

NOW = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _negotiator(db, storage, **config):
    return UploadNegotiator(
        db.uow_factory, storage, config=UploadSettings(**config), clock=lambda: NOW
    )


def _request(**overrides):
    payload = {
        "fileName": "house.jpg",
        "contentType": "image/jpeg",
        "fileSize": 2_097_152,
        "category": "photography",
        "mediaType": "finished",
    }
    payload.update(overrides)
    return UploadRequestDTO.model_validate(payload)


@pytest.mark.asyncio
async def test_negotiate_returns_presigned_target(db, storage, principal):
    db.add_job(42)
    target = await _negotiator(db, storage).negotiate(42, principal, _request())

    assert target.storage_key == f"jobs/42/finished/{int(NOW.timestamp() * 1000)}-house.jpg"
    assert target.upload_url.startswith("https://storage.test/jobs/42/finished/")
    assert target.method == "PUT"
    assert target.transfer_mode == "direct"
    assert target.media_kind == "finished"
    assert storage.upload_requests[0]["metadata"] == {
        "type": "finished",
        "job_id": "42",
        "uploaded_by": "editor-7",
    }


@pytest.mark.asyncio
async def test_server_mediated_backend_asks_for_proxy(db, principal):
    from conftest import FakeStoragePort

    db.add_job(42)
    target = await _negotiator(db, FakeStoragePort(server_mediated=True)).negotiate(42, principal, _request())
    assert target.transfer_mode == "server"
    assert target.upload_url is None


@pytest.mark.asyncio
async def test_unknown_job_is_not_found(db, storage, principal):
    with pytest.raises(JobCardNotFoundException):
        await _negotiator(db, storage).negotiate(404, principal, _request())


@pytest.mark.asyncio
async def test_missing_storage_is_configuration_error(db, principal):
    db.add_job(42)
    with pytest.raises(StorageNotConfiguredException):
        await _negotiator(db, None).negotiate(42, principal, _request())


@pytest.mark.asyncio
async def test_oversized_file_is_rejected(db, storage, principal):
    db.add_job(42)
    with pytest.raises(UploadValidationException) as exc:
        await _negotiator(db, storage, max_file_size=1024).negotiate(42, principal, _request())
    assert exc.value.field == "file_size"


@pytest.mark.asyncio
async def test_unsupported_content_type_is_rejected(db, storage, principal):
    db.add_job(42)
    with pytest.raises(UploadValidationException):
        await _negotiator(db, storage).negotiate(42, principal, _request(contentType="application/x-msdownload"))


@pytest.mark.asyncio
async def test_invalid_media_kind_is_rejected(db, storage, principal):
    db.add_job(42)
    with pytest.raises(DomainValidationException):
        await _negotiator(db, storage).negotiate(42, principal, _request(mediaType="draft"))


def test_request_accepts_snake_case_names():
    dto = UploadRequestDTO(file_name="a.png", content_type="image/png", file_size=1, media_kind="raw")
    assert dto.category == "photography"
    assert dto.media_kind == "raw"
