import httpx
import pytest

from infrastructure.external.api_clients import (
    MediaUploadClient,
    NotFoundError,
    StorageTransferError,
    TransferAttempt,
    TransferExecutor,
    TransferStatus,
    TransferTimeoutError,
    UploadSource,
)
from shared.retry import BackoffPolicy

from conftest import SleepRecorder

PUT_URL = "https://storage.test/jobs/42/raw/1709294400000-house.jpg?sig=abc"
STORAGE_KEY = "jobs/42/raw/1709294400000-house.jpg"


def envelope(data, code=200, message="ok"):
    return {"code": code, "message": message, "data": data}


class FakeServer:
    """Scripted API + object storage behind one MockTransport."""

    def __init__(self, *, put_statuses=(200,), put_timeouts=0, transfer_mode="direct"):
        self.put_statuses = list(put_statuses)
        self.put_timeouts = put_timeouts
        self.transfer_mode = transfer_mode
        self.negotiate_status = 200
        self.puts: list[httpx.Request] = []
        self.calls: list[str] = []
        self.chunk_ranges: list[str] = []
        self.chunk_sessions: set[str] = set()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == "storage.test":
            self.puts.append(request)
            if self.put_timeouts > 0:
                self.put_timeouts -= 1
                raise httpx.ReadTimeout("timed out", request=request)
            status = self.put_statuses.pop(0) if len(self.put_statuses) > 1 else self.put_statuses[0]
            return httpx.Response(status)

        path = request.url.path
        self.calls.append(path)
        if path.endswith("/upload-url"):
            if self.negotiate_status != 200:
                return httpx.Response(
                    self.negotiate_status,
                    json=envelope(None, code=40401, message="Job card 42 not found"),
                )
            direct = self.transfer_mode == "direct"
            return httpx.Response(200, json=envelope({
                "storage_key": STORAGE_KEY,
                "upload_url": PUT_URL if direct else None,
                "method": "PUT" if direct else "POST",
                "headers": {"Content-Type": "image/jpeg"} if direct else {},
                "transfer_mode": self.transfer_mode,
            }))
        if path.endswith("/process-file"):
            return httpx.Response(200, json=envelope({"content_item": {"id": 1}, "thumbnail_generated": True}))
        if path.endswith("/upload-file"):
            return httpx.Response(200, json=envelope({"storage_key": STORAGE_KEY, "file": {"id": 2}}))
        if path.endswith("/upload-file-chunk"):
            header = request.headers["Content-Range"]
            self.chunk_ranges.append(header)
            self.chunk_sessions.add(request.headers["X-Upload-Session"])
            end, total = header.split(" ", 1)[1].split("-")[1].split("/")
            complete = int(end) + 1 == int(total)
            data = {"complete": complete, "received": int(end) + 1, "total": int(total)}
            if complete:
                data["result"] = {"storage_key": STORAGE_KEY, "file": {"id": 3}}
            return httpx.Response(200, json=envelope(data))
        return httpx.Response(404, json=envelope(None, code=404, message="not found"))


def _executor(server, sleep, **kwargs):
    client = MediaUploadClient(
        "https://api.test",
        max_retries=0,
        transport=httpx.MockTransport(server),
        sleep=sleep,
    )
    kwargs.setdefault("policy", BackoffPolicy(max_attempts=3, base_delay=1.0, max_delay=10.0))
    return TransferExecutor(client, sleep=sleep, **kwargs)


def _source(size=200_000):
    return UploadSource(file_name="house.jpg", data=b"x" * size, content_type="image/jpeg")


@pytest.mark.asyncio
async def test_direct_upload_succeeds_after_transient_failures():
    server = FakeServer(put_statuses=[503, 503, 200])
    sleep = SleepRecorder()
    progress = []
    statuses = []

    def on_progress(a):
        progress.append(a.progress)
        if not statuses or statuses[-1] is not a.status:
            statuses.append(a.status)

    attempt = await _executor(server, sleep).upload(42, _source(), on_progress=on_progress)

    assert attempt.status is TransferStatus.SUCCESS
    assert len(server.puts) == 3
    assert attempt.attempts == 3
    assert sleep.delays == [1.0, 2.0]
    assert attempt.used_fallback is False
    assert attempt.result == {"content_item": {"id": 1}, "thumbnail_generated": True}
    assert server.calls[-1] == "/api/jobs/42/process-file"
    assert progress[-1] == 100
    assert server.puts[-1].headers["Content-Length"] == "200000"
    assert server.puts[-1].content == b"x" * 200_000
    assert statuses == [
        TransferStatus.UPLOADING,
        TransferStatus.RETRYING,
        TransferStatus.UPLOADING,
        TransferStatus.RETRYING,
        TransferStatus.UPLOADING,
        TransferStatus.PROCESSING,
        TransferStatus.SUCCESS,
    ]


@pytest.mark.asyncio
async def test_exhausted_server_errors_end_in_error_state():
    server = FakeServer(put_statuses=[500])
    sleep = SleepRecorder()

    attempt = await _executor(server, sleep).upload(42, _source())

    assert attempt.status is TransferStatus.ERROR
    assert len(server.puts) == 3
    assert isinstance(attempt.last_error, StorageTransferError)
    assert attempt.last_error.status_code == 500
    # 5xx 不触发中转回退
    assert "/api/jobs/42/upload-file" not in server.calls
    assert "/api/jobs/42/process-file" not in server.calls


@pytest.mark.asyncio
async def test_forbidden_put_falls_back_to_proxy_upload():
    server = FakeServer(put_statuses=[403])
    attempt = await _executor(server, SleepRecorder()).upload(42, _source())

    assert attempt.status is TransferStatus.SUCCESS
    assert attempt.used_fallback is True
    assert len(server.puts) == 3
    assert server.calls[-1] == "/api/jobs/42/upload-file"
    assert attempt.result["file"] == {"id": 2}
    assert isinstance(attempt.last_error, StorageTransferError)


@pytest.mark.asyncio
async def test_timeouts_fall_back_to_chunked_proxy_for_large_files():
    server = FakeServer(put_timeouts=10)
    executor = _executor(server, SleepRecorder(), chunk_threshold=10, chunk_size=10)

    attempt = await executor.upload(42, _source(size=25))

    assert attempt.status is TransferStatus.SUCCESS
    assert isinstance(attempt.last_error, TransferTimeoutError)
    assert server.chunk_ranges == ["bytes 0-9/25", "bytes 10-19/25", "bytes 20-24/25"]
    assert len(server.chunk_sessions) == 1
    assert attempt.result == {"storage_key": STORAGE_KEY, "file": {"id": 3}}


@pytest.mark.asyncio
async def test_server_mode_skips_direct_put():
    server = FakeServer(transfer_mode="server")
    attempt = await _executor(server, SleepRecorder()).upload(42, _source())

    assert attempt.status is TransferStatus.SUCCESS
    assert server.puts == []
    assert attempt.used_fallback is True
    assert server.calls == ["/api/jobs/42/upload-url", "/api/jobs/42/upload-file"]


@pytest.mark.asyncio
async def test_negotiation_error_is_reported():
    server = FakeServer()
    server.negotiate_status = 404

    attempt = await _executor(server, SleepRecorder()).upload(42, _source())

    assert attempt.status is TransferStatus.ERROR
    assert isinstance(attempt.last_error, NotFoundError)
    assert "Job card 42 not found" in str(attempt.last_error)
    assert server.puts == []


@pytest.mark.asyncio
async def test_cancelled_attempt_sends_nothing():
    server = FakeServer()
    executor = _executor(server, SleepRecorder())
    source = _source()
    attempt = TransferAttempt(job_id=42, file_name=source.file_name, file_size=len(source.data))
    executor.cancel(attempt)

    result = await executor.upload(42, source, attempt=attempt)

    assert result.status is TransferStatus.CANCELLED
    assert server.calls == []


@pytest.mark.asyncio
async def test_upload_many_reports_each_file():
    server = FakeServer()
    executor = _executor(server, SleepRecorder(), max_concurrency=2)
    sources = [
        UploadSource(file_name=f"room-{i}.jpg", data=b"y" * 100, content_type="image/jpeg")
        for i in range(3)
    ]

    attempts = await executor.upload_many(42, sources)

    assert [a.status for a in attempts] == [TransferStatus.SUCCESS] * 3
    assert len(server.puts) == 3


@pytest.mark.asyncio
async def test_cancel_during_put_still_registers_stored_object():
    server = FakeServer()
    executor = _executor(server, SleepRecorder())

    def on_progress(a):
        if a.bytes_sent > 0 and not a.cancelled:
            executor.cancel(a)

    attempt = await executor.upload(42, _source(), on_progress=on_progress)

    assert attempt.status is TransferStatus.CANCELLED
    assert len(server.puts) == 1
    assert server.calls == ["/api/jobs/42/upload-url", "/api/jobs/42/process-file"]
    assert attempt.result == {"content_item": {"id": 1}, "thumbnail_generated": True}


@pytest.mark.asyncio
async def test_cancel_after_failed_put_stops_retrying():
    server = FakeServer(put_statuses=[503])
    sleep = SleepRecorder()
    executor = _executor(server, sleep)

    def on_progress(a):
        if a.bytes_sent > 0 and not a.cancelled:
            executor.cancel(a)

    attempt = await executor.upload(42, _source(), on_progress=on_progress)

    assert attempt.status is TransferStatus.CANCELLED
    assert len(server.puts) == 1
    assert sleep.delays == []
    assert isinstance(attempt.last_error, StorageTransferError)
    assert "/api/jobs/42/process-file" not in server.calls
