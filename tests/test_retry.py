import asyncio

import pytest

from keyrotation.errors import BackendError, TransientBackendError
from keyrotation.utils.retry import RetryPolicy, call_with_retry

POLICY = RetryPolicy(attempts=3, timeout_seconds=0.05, max_wait_seconds=0)


class _Flaky:
    def __init__(self, errors):
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self, value):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return value


@pytest.mark.asyncio
async def test_transient_errors_are_retried():
    func = _Flaky([TransientBackendError("throttled"), TransientBackendError("throttled")])
    assert await call_with_retry(func, "ok", operation="test", policy=POLICY) == "ok"
    assert func.calls == 3


@pytest.mark.asyncio
async def test_attempts_are_bounded():
    func = _Flaky([TransientBackendError("down")] * 5)
    with pytest.raises(TransientBackendError):
        await call_with_retry(func, "ok", operation="test", policy=POLICY)
    assert func.calls == 3


@pytest.mark.asyncio
async def test_permanent_errors_are_not_retried():
    func = _Flaky([BackendError("denied")])
    with pytest.raises(BackendError):
        await call_with_retry(func, "ok", operation="test", policy=POLICY)
    assert func.calls == 1


@pytest.mark.asyncio
async def test_timeout_counts_as_transient():
    calls = 0

    async def _hang():
        nonlocal calls
        calls += 1
        await asyncio.sleep(10)

    with pytest.raises(TransientBackendError, match="timed out"):
        await call_with_retry(_hang, operation="slow", policy=POLICY)
    assert calls == 3
