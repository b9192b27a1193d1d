import pytest

from application.services.reconciliation_service import StorageReconciliationService
from domain.common.exceptions import StorageNotConfiguredException
from domain.media import StoredFile


def _record(db, file_id, key, *, thumbnail_key=None, job_id=42):
    db.files.append(StoredFile(
        id=file_id,
        job_id=job_id,
        file_name=key.rsplit("/", 1)[-1],
        storage_key=key,
        thumbnail_key=thumbnail_key,
        content_type="image/jpeg",
        file_size=3,
        media_kind="raw",
        category="photography",
        uploader_id="editor-7",
        licensee_id="lic-1",
    ))


@pytest.mark.asyncio
async def test_reports_orphans_and_dangling_records(db, storage):
    storage.objects.update({
        "jobs/42/raw/1-a.jpg": b"abc",
        "jobs/42/raw/thumbs/thumb_1-a.jpg": b"t",
        "jobs/42/raw/2-abandoned.jpg": b"abc",
        "jobs/43/raw/3-other.jpg": b"abc",
    })
    _record(db, 1, "jobs/42/raw/1-a.jpg", thumbnail_key="jobs/42/raw/thumbs/thumb_1-a.jpg")
    _record(db, 2, "jobs/42/raw/9-gone.jpg")

    report = await StorageReconciliationService(db.uow_factory, storage).scan(job_id=42)

    assert report.scanned_objects == 3
    assert report.scanned_records == 2
    assert report.orphan_objects == ["jobs/42/raw/2-abandoned.jpg"]
    assert report.dangling_records == [2]
    # 只报告，不删除
    assert "jobs/42/raw/2-abandoned.jpg" in storage.objects


@pytest.mark.asyncio
async def test_full_scan_pages_through_records(db, storage):
    for i in range(1, 6):
        key = f"jobs/{i}/raw/{i}-a.jpg"
        storage.objects[key] = b"x"
        _record(db, i, key, job_id=i)

    service = StorageReconciliationService(db.uow_factory, storage, page_size=2)
    report = await service.scan()

    assert report.scanned_records == 5
    assert report.orphan_objects == []
    assert report.dangling_records == []


@pytest.mark.asyncio
async def test_requires_storage(db):
    with pytest.raises(StorageNotConfiguredException):
        await StorageReconciliationService(db.uow_factory, None).scan()
