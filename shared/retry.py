"""
Retry-with-backoff helper shared by the server pipeline and the client SDK.

One policy object, one retryable predicate and an optional fallback replace
the ad-hoc retry loops each caller would otherwise write.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

T = TypeVar("T")

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class BackoffPolicy:
    """Delay before retry n (1-based) is ``base_delay * 2**(n-1)``, capped."""

    max_attempts: int = 5
    base_delay: float = 1.0
    max_delay: float = 10.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)


def _always(_: BaseException) -> bool:
    return True


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    policy: BackoffPolicy = BackoffPolicy(),
    is_retryable: Callable[[BaseException], bool] = _always,
    fallback: Optional[Callable[[BaseException], Awaitable[T]]] = None,
    should_fallback: Optional[Callable[[BaseException], bool]] = None,
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    operation_name: str = "operation",
) -> T:
    """Run ``operation`` until it succeeds or the policy is exhausted.

    Errors rejected by ``is_retryable`` propagate after a single call. When
    attempts run out, ``fallback`` is awaited with the last error if
    ``should_fallback`` (defaults to ``is_retryable``) accepts it; otherwise
    the last error is re-raised.

    ``on_retry(attempt, error, delay)`` fires before each sleep.
    """
    fallback_filter = should_fallback or is_retryable

    def _before_sleep(state: RetryCallState) -> None:
        error = state.outcome.exception() if state.outcome else None
        delay = state.next_action.sleep if state.next_action else 0.0
        logger.warning(
            "retry_scheduled",
            operation=operation_name,
            attempt=state.attempt_number,
            max_attempts=policy.max_attempts,
            delay=delay,
            error=str(error),
        )
        if on_retry is not None and error is not None:
            on_retry(state.attempt_number, error, delay)

    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_exponential(multiplier=policy.base_delay, exp_base=2, max=policy.max_delay),
        retry=retry_if_exception(is_retryable),
        before_sleep=_before_sleep,
        sleep=sleep,
        reraise=True,
    )

    try:
        async for attempt in retrying:
            with attempt:
                return await operation()
    except Exception as exc:
        if fallback is not None and fallback_filter(exc):
            logger.warning("retry_exhausted_fallback", operation=operation_name, error=str(exc))
            return await fallback(exc)
        raise
    raise RuntimeError("retry loop exited without a result")  # pragma: no cover


__all__ = ["BackoffPolicy", "retry_with_backoff"]
