from unittest.mock import AsyncMock

import pytest

from licencias.core.exceptions import StorageError, StorageUnavailableError
from licencias.core.retry import RetryPolicy


def _policy(**kwargs) -> RetryPolicy:
    kwargs.setdefault("retry_on", (StorageUnavailableError,))
    kwargs.setdefault("sleep", AsyncMock())
    return RetryPolicy(**kwargs)


def test_delay_grows_exponentially_and_is_capped():
    policy = _policy(base_delay=0.5, multiplier=2.0, max_delay=3.0)

    assert [policy.delay_for(attempt) for attempt in range(4)] == [0.5, 1.0, 2.0, 3.0]


def test_max_attempts_must_be_positive():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)


@pytest.mark.asyncio
async def test_run_returns_first_success_and_sleeps_between_attempts():
    policy = _policy(max_attempts=3, base_delay=0.25)
    operation = AsyncMock(side_effect=[StorageUnavailableError("down"), "ok"])

    assert await policy.run(operation, "upload") == "ok"
    assert operation.await_count == 2
    policy.sleep.assert_awaited_once_with(0.25)


@pytest.mark.asyncio
async def test_run_reraises_last_error_when_exhausted():
    policy = _policy(max_attempts=3, base_delay=0)
    errors = [StorageUnavailableError(f"down {i}") for i in range(3)]
    operation = AsyncMock(side_effect=errors)

    with pytest.raises(StorageUnavailableError) as exc_info:
        await policy.run(operation)

    assert exc_info.value is errors[-1]
    policy.sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_run_does_not_retry_permanent_errors():
    policy = _policy(max_attempts=5)
    operation = AsyncMock(side_effect=StorageError("rejected"))

    with pytest.raises(StorageError):
        await policy.run(operation)
    assert operation.await_count == 1
