"""boto3 client factory and botocore error translation."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional, TypeVar

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionError as BotoConnectionError,
    HTTPClientError,
)

from keyrotation.errors import BackendError, TransientBackendError

T = TypeVar("T")

TRANSIENT_ERROR_CODES = {
    "InternalServerError",
    "InternalFailure",
    "ProvisionedThroughputExceededException",
    "RequestLimitExceeded",
    "ServiceUnavailable",
    "ServiceUnavailableException",
    "Throttling",
    "ThrottlingException",
    "TooManyRequestsException",
}


def make_client(service: str, *, region: Optional[str] = None, endpoint_url: Optional[str] = None, timeout: float = 10.0):
    """Create a boto3 client; retries are handled by the caller, not botocore."""
    config = Config(
        connect_timeout=timeout,
        read_timeout=timeout,
        retries={"max_attempts": 1, "mode": "standard"},
    )
    return boto3.client(service, region_name=region, endpoint_url=endpoint_url, config=config)


def error_code(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Code", "")


def translate(exc: Exception, *, backend: str, operation: str) -> BackendError:
    """Map a botocore exception onto the service error taxonomy."""
    if isinstance(exc, ClientError):
        code = error_code(exc)
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
        if code in TRANSIENT_ERROR_CODES or status >= 500:
            return TransientBackendError(f"{operation}: {code or exc}", backend=backend, operation=operation)
        return BackendError(f"{operation}: {code or exc}", backend=backend, operation=operation)
    if isinstance(exc, (BotoConnectionError, HTTPClientError)):
        return TransientBackendError(f"{operation}: {exc}", backend=backend, operation=operation)
    return BackendError(f"{operation}: {exc}", backend=backend, operation=operation)


async def run_blocking(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking boto3 call off the event loop."""
    return await asyncio.to_thread(func, *args, **kwargs)


__all__ = [
    "BotoCoreError",
    "ClientError",
    "error_code",
    "make_client",
    "run_blocking",
    "translate",
]
