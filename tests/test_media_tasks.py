import asyncio

import pytest

from infrastructure.adapters.storage_port import StorageProviderPortAdapter
from infrastructure.tasks import TaskDispatcher, celery_app
from infrastructure.tasks.tasks import media
from infrastructure.tasks.utils.base_task import task_context
from infrastructure.tasks.worker import build_argv


@pytest.fixture
def lifecycle(monkeypatch):
    events = []
    provider = object()

    async def init():
        events.append("init")

    async def shutdown():
        events.append("shutdown")

    async def dispose():
        events.append("dispose")

    monkeypatch.setattr(media, "init_storage_client", init)
    monkeypatch.setattr(media, "get_storage_client", lambda: provider)
    monkeypatch.setattr(media, "shutdown_storage_client", shutdown)
    monkeypatch.setattr(media, "dispose_engine", dispose)
    return events


def test_each_task_loop_disposes_engine(lifecycle):
    async def run(storage):
        lifecycle.append("run")
        return storage

    first = asyncio.run(media._with_storage(run))
    second = asyncio.run(media._with_storage(run))

    assert isinstance(first, StorageProviderPortAdapter)
    assert isinstance(second, StorageProviderPortAdapter)
    assert lifecycle == ["init", "run", "shutdown", "dispose"] * 2


def test_engine_disposed_when_task_body_fails(lifecycle):
    async def run(storage):
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        asyncio.run(media._with_storage(run))

    assert lifecycle == ["init", "shutdown", "dispose"]


def test_worker_consumes_every_declared_queue():
    argv = build_argv(["--concurrency=2"])

    assert argv[0] == "worker"
    assert "--queues=high,default,low" in argv
    assert "--hostname=media@%h" in argv
    assert argv[-1] == "--concurrency=2"


def test_task_context_keeps_identifiers_only():
    assert task_context((), {"file_id": 7}) == {"file_id": 7}
    assert task_context((), {"job_id": None}) == {}
    assert task_context((42,), {}) == {"arg0": 42}


def test_dispatcher_schedules_backfill_by_name(monkeypatch):
    sent = []

    class Result:
        id = "task-1"

    def send_task(name, kwargs=None, **options):
        sent.append((name, kwargs))
        return Result()

    monkeypatch.setattr(celery_app, "send_task", send_task)

    assert TaskDispatcher().enqueue_thumbnail_backfill(5) == "task-1"
    assert sent == [("media.backfill_thumbnail", {"file_id": 5})]
