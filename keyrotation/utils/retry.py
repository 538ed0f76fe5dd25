"""Bounded timeout + exponential backoff around registry and issuer calls."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from keyrotation.errors import TransientBackendError
from keyrotation.utils.logger import logger

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 3
    timeout_seconds: float = 10.0
    max_wait_seconds: float = 8.0

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            attempts=settings.retry_attempts,
            timeout_seconds=settings.call_timeout_seconds,
            max_wait_seconds=settings.retry_max_wait_seconds,
        )


NO_RETRY = RetryPolicy(attempts=1)


async def call_with_retry(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    operation: str,
    policy: RetryPolicy,
    **kwargs: Any,
) -> T:
    """Await ``func(*args, **kwargs)`` under ``policy``.

    Each attempt is bounded by ``policy.timeout_seconds``; a timeout counts as
    a :class:`TransientBackendError`. Only transient errors are retried, the
    last one is re-raised once attempts are exhausted.
    """

    def _before_sleep(retry_state: Any) -> None:
        logger.warning(
            "backend.retry",
            extra={
                "operation": operation,
                "attempt": retry_state.attempt_number,
                "max_attempts": policy.attempts,
                "wait_seconds": retry_state.next_action.sleep if retry_state.next_action else 0,
                "error": str(retry_state.outcome.exception()) if retry_state.outcome else None,
            },
        )

    async for attempt in AsyncRetrying(
        wait=wait_exponential(multiplier=0.5, max=policy.max_wait_seconds),
        stop=stop_after_attempt(policy.attempts),
        retry=retry_if_exception_type(TransientBackendError),
        before_sleep=_before_sleep,
        reraise=True,
    ):
        with attempt:
            try:
                return await asyncio.wait_for(func(*args, **kwargs), timeout=policy.timeout_seconds)
            except asyncio.TimeoutError as exc:
                raise TransientBackendError(
                    f"{operation} timed out after {policy.timeout_seconds}s",
                    operation=operation,
                ) from exc
    raise AssertionError("unreachable")  # pragma: no cover
