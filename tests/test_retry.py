import pytest

from shared.retry import BackoffPolicy, retry_with_backoff


class Flaky:
    def __init__(self, failures: int, exc_factory=lambda n: ConnectionError(f"boom {n}")):
        self.failures = failures
        self.calls = 0
        self.exc_factory = exc_factory

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc_factory(self.calls)
        return "ok"


def test_policy_delays_double_and_cap():
    policy = BackoffPolicy(max_attempts=6, base_delay=1.0, max_delay=10.0)
    assert [policy.delay_for(n) for n in range(1, 6)] == [1.0, 2.0, 4.0, 8.0, 10.0]


def test_policy_requires_one_attempt():
    with pytest.raises(ValueError):
        BackoffPolicy(max_attempts=0)


@pytest.mark.asyncio
async def test_n_minus_one_failures_then_success_makes_n_calls(sleep):
    op = Flaky(failures=4)
    result = await retry_with_backoff(op, policy=BackoffPolicy(max_attempts=5), sleep=sleep)
    assert result == "ok"
    assert op.calls == 5
    assert sleep.delays == [1.0, 2.0, 4.0, 8.0]


@pytest.mark.asyncio
async def test_exhaustion_raises_last_error(sleep):
    op = Flaky(failures=10)
    with pytest.raises(ConnectionError, match="boom 3"):
        await retry_with_backoff(op, policy=BackoffPolicy(max_attempts=3), sleep=sleep)
    assert op.calls == 3


@pytest.mark.asyncio
async def test_non_retryable_error_fails_immediately(sleep):
    op = Flaky(failures=10, exc_factory=lambda n: ValueError("bad request"))
    with pytest.raises(ValueError):
        await retry_with_backoff(
            op,
            policy=BackoffPolicy(max_attempts=5),
            is_retryable=lambda e: isinstance(e, ConnectionError),
            sleep=sleep,
        )
    assert op.calls == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_fallback_receives_last_error_after_exhaustion(sleep):
    op = Flaky(failures=10)
    seen = []

    async def fallback(exc):
        seen.append(exc)
        return "proxied"

    result = await retry_with_backoff(
        op, policy=BackoffPolicy(max_attempts=2), fallback=fallback, sleep=sleep
    )
    assert result == "proxied"
    assert op.calls == 2
    assert str(seen[0]) == "boom 2"


@pytest.mark.asyncio
async def test_fallback_skipped_when_filter_rejects(sleep):
    op = Flaky(failures=10)

    async def fallback(exc):
        return "proxied"

    with pytest.raises(ConnectionError):
        await retry_with_backoff(
            op,
            policy=BackoffPolicy(max_attempts=2),
            fallback=fallback,
            should_fallback=lambda e: False,
            sleep=sleep,
        )


@pytest.mark.asyncio
async def test_on_retry_hook_sees_attempt_numbers(sleep):
    op = Flaky(failures=2)
    attempts = []
    await retry_with_backoff(
        op,
        policy=BackoffPolicy(max_attempts=5, base_delay=0.5),
        on_retry=lambda attempt, err, delay: attempts.append((attempt, delay)),
        sleep=sleep,
    )
    assert attempts == [(1, 0.5), (2, 1.0)]
