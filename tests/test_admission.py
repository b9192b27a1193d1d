import asyncio

import pytest

from application.utils.admission import TransferAdmission
from domain.common.exceptions import UploadCapacityExceededException


@pytest.mark.asyncio
async def test_small_payloads_bypass_the_gate():
    admission = TransferAdmission(max_concurrent=1, timeout=0.01, threshold=1000)
    async with admission.slot(2000):
        async with admission.slot(10):
            assert admission.in_flight == 1


@pytest.mark.asyncio
async def test_waiting_too_long_is_rejected():
    admission = TransferAdmission(max_concurrent=1, timeout=0.05)
    async with admission.slot(10):
        with pytest.raises(UploadCapacityExceededException) as exc_info:
            async with admission.slot(10):
                pass
    assert exc_info.value.details["reason"] == "admission_timeout"
    assert admission.in_flight == 0


@pytest.mark.asyncio
async def test_slot_released_after_error():
    admission = TransferAdmission(max_concurrent=1, timeout=0.05)
    with pytest.raises(RuntimeError):
        async with admission.slot(10):
            raise RuntimeError("boom")
    async with admission.slot(10):
        assert admission.in_flight == 1


@pytest.mark.asyncio
async def test_waiter_admitted_when_slot_frees():
    admission = TransferAdmission(max_concurrent=1, timeout=1.0)
    order = []

    async def worker(name, hold):
        async with admission.slot(10):
            order.append(name)
            await asyncio.sleep(hold)

    await asyncio.gather(worker("a", 0.02), worker("b", 0))
    assert order == ["a", "b"]


def test_rejects_zero_concurrency():
    with pytest.raises(ValueError):
        TransferAdmission(max_concurrent=0, timeout=1)
