"""Admission control for memory-heavy upload handling."""
from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from core.logging_config import get_logger
from domain.common.exceptions import UploadCapacityExceededException

logger = get_logger(__name__)


class TransferAdmission:
    """Bounded semaphore in front of large payload handling.

    Payloads below ``threshold`` bytes skip the gate. Waiting longer than
    ``timeout`` seconds for a slot raises ``UploadCapacityExceededException``.
    """

    def __init__(self, max_concurrent: int, timeout: float, threshold: int = 0):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._max_concurrent = max_concurrent
        self._timeout = timeout
        self._threshold = threshold
        self._in_flight = 0

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @asynccontextmanager
    async def slot(self, size: int, *, label: str = "transfer") -> AsyncIterator[None]:
        if size < self._threshold:
            yield
            return

        started = time.perf_counter()
        try:
            await asyncio.wait_for(self._semaphore.acquire(), timeout=self._timeout)
        except asyncio.TimeoutError:
            waited = round(time.perf_counter() - started, 3)
            logger.warning(
                "admission_rejected",
                label=label,
                size=size,
                waited=waited,
                max_concurrent=self._max_concurrent,
            )
            raise UploadCapacityExceededException(waited)

        self._in_flight += 1
        try:
            yield
        finally:
            self._in_flight -= 1
            self._semaphore.release()
