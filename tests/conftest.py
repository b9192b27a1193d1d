"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import io
import os
from dataclasses import replace
from typing import Optional

# Mandatory secret key for settings validation
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("STORAGE__LOCAL_BASE_PATH", "/tmp/media-pipeline-test-storage")

import pytest
from PIL import Image

from application.dto import PrincipalDTO
from application.ports.storage import DownloadCredential, StorageInfo, UploadCredential, WriteOutcome
from application.ports.thumbnails import ThumbnailGenerationError
from domain.activity import ActivityLogEntry, ActivityLogRepository
from domain.common.exceptions import StorageOperationException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.job_card import JobCard, JobCardRepository
from domain.media import StoredFile, StoredFileRepository


class InMemoryJobCardRepository(JobCardRepository):
    def __init__(self, db: "InMemoryDatabase"):
        self.db = db

    async def add(self, job: JobCard) -> JobCard:
        if job.id is None:
            job = replace(job, id=len(self.db.jobs) + 1)
        self.db.jobs[job.id] = replace(job)
        return replace(job)

    async def get_by_id(self, job_id: int) -> Optional[JobCard]:
        job = self.db.jobs.get(job_id)
        return replace(job) if job else None

    async def update_status(self, job: JobCard) -> JobCard:
        self.db.jobs[job.id] = replace(job)
        return replace(job)


class InMemoryStoredFileRepository(StoredFileRepository):
    def __init__(self, db: "InMemoryDatabase"):
        self.db = db

    async def create(self, stored_file: StoredFile) -> StoredFile:
        stored = replace(stored_file, id=len(self.db.files) + 1)
        self.db.files.append(stored)
        return replace(stored)

    async def get_by_id(self, file_id: int) -> Optional[StoredFile]:
        for f in self.db.files:
            if f.id == file_id:
                return replace(f)
        return None

    async def set_thumbnail(self, file_id: int, thumbnail_key: str) -> None:
        for f in self.db.files:
            if f.id == file_id:
                f.attach_thumbnail(thumbnail_key)

    async def list_for_job(self, job_id, *, media_kind=None, category=None):
        items = [
            replace(f) for f in self.db.files
            if f.job_id == job_id
            and (media_kind is None or f.media_kind == media_kind)
            and (category is None or f.category == category)
        ]
        return sorted(items, key=lambda f: f.id, reverse=True)

    async def list_all(self, *, skip: int = 0, limit: int = 500):
        return [replace(f) for f in self.db.files[skip:skip + limit]]


class InMemoryActivityLogRepository(ActivityLogRepository):
    def __init__(self, db: "InMemoryDatabase"):
        self.db = db

    async def append(self, entry: ActivityLogEntry) -> ActivityLogEntry:
        if self.db.fail_activity:
            raise RuntimeError("activity store down")
        stored = replace(entry, id=len(self.db.activity) + 1)
        self.db.activity.append(stored)
        return stored

    async def list_for_job(self, job_id: int, *, limit: int = 100):
        items = [e for e in self.db.activity if e.job_id == job_id]
        return sorted(items, key=lambda e: e.id, reverse=True)[:limit]


class InMemoryDatabase:
    def __init__(self):
        self.jobs: dict[int, JobCard] = {}
        self.files: list[StoredFile] = []
        self.activity: list[ActivityLogEntry] = []
        self.fail_activity = False

    def add_job(self, job_id: int, *, licensee_id: str = "lic-1", status: str = "editing",
                address: Optional[str] = "12 Harbour St") -> JobCard:
        job = JobCard(id=job_id, licensee_id=licensee_id, property_address=address, status=status)
        self.jobs[job_id] = job
        return job

    def uow_factory(self, *, readonly: bool = False) -> "InMemoryUnitOfWork":
        return InMemoryUnitOfWork(self, readonly=readonly)


class InMemoryUnitOfWork(AbstractUnitOfWork):
    def __init__(self, db: InMemoryDatabase, *, readonly: bool = False):
        super().__init__(readonly=readonly)
        self.job_card_repository = InMemoryJobCardRepository(db)
        self.stored_file_repository = InMemoryStoredFileRepository(db)
        self.activity_log_repository = InMemoryActivityLogRepository(db)

    async def commit(self) -> None:
        self._committed = True

    async def rollback(self) -> None:
        self._committed = False


class FakeStoragePort:
    """Dict-backed storage.

    ``read_failures`` makes the next N reads fail transiently and
    ``invisible_checks`` hides every object from the next N ``exists`` calls.
    """

    def __init__(self, *, server_mediated: bool = False):
        self.objects: dict[str, bytes] = {}
        self.content_types: dict[str, Optional[str]] = {}
        self.metadata: dict[str, dict] = {}
        self.server_mediated = server_mediated
        self.read_failures = 0
        self.read_calls = 0
        self.exists_calls = 0
        self.invisible_checks = 0
        self.fail_writes = False
        self.fail_download_urls = False
        self.upload_requests: list[dict] = []

    def info(self) -> StorageInfo:
        return StorageInfo(type="s3", bucket="media-bucket", region="us-east-1")

    async def issue_upload_credential(self, key, content_type, expires_in, metadata=None):
        self.upload_requests.append({"key": key, "content_type": content_type, "metadata": metadata})
        if self.server_mediated:
            return UploadCredential(url=None, method="POST", expires_in=expires_in, server_mediated=True)
        return UploadCredential(
            url=f"https://storage.test/{key}?sig=abc",
            method="PUT",
            expires_in=expires_in,
            headers={"Content-Type": content_type},
        )

    async def read_bytes(self, key: str) -> bytes:
        self.read_calls += 1
        if self.read_failures > 0:
            self.read_failures -= 1
            raise StorageOperationException("slow down", operation="read_bytes", key=key, transient=True)
        if key not in self.objects:
            raise StorageOperationException("missing", operation="read_bytes", key=key, missing=True)
        return self.objects[key]

    async def write_bytes(self, data, key, content_type=None, metadata=None):
        if self.fail_writes:
            raise StorageOperationException("write failed", operation="write_bytes", key=key)
        self.objects[key] = data
        self.content_types[key] = content_type
        self.metadata[key] = metadata or {}
        return WriteOutcome(key=key, etag="etag", size=len(data), content_type=content_type)

    async def issue_download_credential(self, key, expires_in, filename=None):
        if self.fail_download_urls:
            raise StorageOperationException("denied", operation="issue_download_credential", key=key)
        return DownloadCredential(url=f"https://storage.test/{key}?download=1", expires_in=expires_in)

    async def exists(self, key: str) -> bool:
        self.exists_calls += 1
        if self.invisible_checks > 0:
            self.invisible_checks -= 1
            return False
        return key in self.objects

    async def list_keys(self, prefix: str, limit: int = 1000):
        return sorted(k for k in self.objects if k.startswith(prefix))[:limit]


class FakeThumbnailGenerator:
    content_type = "image/jpeg"

    def __init__(self, *, fail: bool = False):
        self.fail = fail
        self.calls = 0

    async def generate(self, data: bytes) -> bytes:
        self.calls += 1
        if self.fail:
            raise ThumbnailGenerationError("cannot decode")
        return b"thumbnail-bytes"


class RecordingTaskQueue:
    def __init__(self):
        self.backfills: list[int] = []

    def enqueue_thumbnail_backfill(self, file_id: int) -> Optional[str]:
        self.backfills.append(file_id)
        return f"task-{file_id}"


class SleepRecorder:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def make_jpeg(width: int = 1200, height: int = 800, color=(200, 120, 40)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format="JPEG", quality=90)
    return buf.getvalue()


@pytest.fixture
def db() -> InMemoryDatabase:
    return InMemoryDatabase()


@pytest.fixture
def storage() -> FakeStoragePort:
    return FakeStoragePort()


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def principal() -> PrincipalDTO:
    return PrincipalDTO(user_id="editor-7", licensee_id="lic-1", role="editor")


@pytest.fixture
def outsider() -> PrincipalDTO:
    return PrincipalDTO(user_id="agent-99", licensee_id="lic-2", role="agent")
