import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from application.dto import ProcessFileRequestDTO
from application.services.post_upload_processor import PostUploadProcessor
from domain.activity import ActivityAction
from domain.common.exceptions import StoredFileNotFoundException
from domain.job_card import JobCard, JobStatus
from domain.media import MediaKind, StoredFile
from infrastructure.models import Base
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork

from conftest import FakeThumbnailGenerator


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield async_sessionmaker(bind=engine, expire_on_commit=False)
    finally:
        await engine.dispose()


@pytest.fixture
def uow_factory(session_factory):
    def factory(*, readonly: bool = False) -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(session_factory=session_factory, readonly=readonly)
    return factory


async def _add_job(uow_factory, status="editing") -> JobCard:
    async with uow_factory() as uow:
        return await uow.job_card_repository.add(
            JobCard(id=None, licensee_id="lic-1", property_address="12 Harbour St", status=status)
        )


def _stored(job_id, key, kind="raw"):
    return StoredFile(
        id=None,
        job_id=job_id,
        file_name=key.rsplit("/", 1)[-1],
        storage_key=key,
        content_type="image/jpeg",
        file_size=10,
        media_kind=kind,
        category="photography",
        uploader_id="editor-7",
        licensee_id="lic-1",
    )


@pytest.mark.asyncio
async def test_job_card_round_trip(uow_factory):
    job = await _add_job(uow_factory, status="unassigned")
    assert job.id is not None

    async with uow_factory() as uow:
        loaded = await uow.job_card_repository.get_by_id(job.id)
        loaded.start_on_raw_upload()
        await uow.job_card_repository.update_status(loaded)

    async with uow_factory(readonly=True) as uow:
        assert (await uow.job_card_repository.get_by_id(job.id)).status is JobStatus.IN_PROGRESS
        assert await uow.job_card_repository.get_by_id(9999) is None


@pytest.mark.asyncio
async def test_stored_files_are_never_deduplicated(uow_factory):
    job = await _add_job(uow_factory)
    key = f"jobs/{job.id}/raw/1-a.jpg"

    async with uow_factory() as uow:
        first = await uow.stored_file_repository.create(_stored(job.id, key))
        second = await uow.stored_file_repository.create(_stored(job.id, key))

    assert first.id != second.id
    async with uow_factory(readonly=True) as uow:
        files = await uow.stored_file_repository.list_for_job(job.id)
    assert {f.id for f in files} == {first.id, second.id}


@pytest.mark.asyncio
async def test_list_filters_and_pages(uow_factory):
    job = await _add_job(uow_factory)
    async with uow_factory() as uow:
        for i in range(3):
            await uow.stored_file_repository.create(_stored(job.id, f"jobs/{job.id}/raw/{i}.jpg"))
        await uow.stored_file_repository.create(
            _stored(job.id, f"jobs/{job.id}/finished/9.jpg", kind="finished")
        )

    async with uow_factory(readonly=True) as uow:
        finished = await uow.stored_file_repository.list_for_job(job.id, media_kind=MediaKind.FINISHED)
        page = await uow.stored_file_repository.list_all(skip=1, limit=2)

    assert [f.storage_key for f in finished] == [f"jobs/{job.id}/finished/9.jpg"]
    assert [f.storage_key for f in page] == [f"jobs/{job.id}/raw/1.jpg", f"jobs/{job.id}/raw/2.jpg"]


@pytest.mark.asyncio
async def test_set_thumbnail_on_missing_record(uow_factory):
    with pytest.raises(StoredFileNotFoundException):
        async with uow_factory() as uow:
            await uow.stored_file_repository.set_thumbnail(404, "thumbs/x.jpg")


@pytest.mark.asyncio
async def test_rollback_on_error(uow_factory):
    job = await _add_job(uow_factory)
    with pytest.raises(RuntimeError):
        async with uow_factory() as uow:
            await uow.stored_file_repository.create(_stored(job.id, "jobs/x/raw/1.jpg"))
            raise RuntimeError("abort")

    async with uow_factory(readonly=True) as uow:
        assert await uow.stored_file_repository.list_for_job(job.id) == []


@pytest.mark.asyncio
async def test_processing_persists_record_activity_and_status(uow_factory, storage, principal):
    job = await _add_job(uow_factory)
    key = f"jobs/{job.id}/finished/1709294400000-house.jpg"
    storage.objects[key] = b"jpeg-bytes"

    processor = PostUploadProcessor(uow_factory, storage, FakeThumbnailGenerator())
    outcome = await processor.process(job.id, principal, ProcessFileRequestDTO(
        storage_key=key,
        file_name="house.jpg",
        content_type="image/jpeg",
        file_size=10,
        media_kind="finished",
    ))

    assert outcome.thumbnail_generated
    async with uow_factory(readonly=True) as uow:
        stored = await uow.stored_file_repository.get_by_id(outcome.stored_file.id)
        reloaded = await uow.job_card_repository.get_by_id(job.id)
        entries = await uow.activity_log_repository.list_for_job(job.id)

    assert stored.thumbnail_key == f"jobs/{job.id}/finished/thumbs/thumb_1709294400000-house.jpg"
    assert stored.bucket == "media-bucket"
    assert reloaded.status is JobStatus.READY_FOR_QA
    assert {e.action for e in entries} == {ActivityAction.UPLOAD, ActivityAction.STATUS_CHANGE}
    upload = next(e for e in entries if e.action is ActivityAction.UPLOAD)
    assert upload.metadata["address"] == "12 Harbour St"
