"""Providers that wire settings into registry, issuer and rotation services."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncGenerator, AsyncIterator, Optional

from supabase import AsyncClient, acreate_client

from keyrotation.issuer.apigateway_issuer import ApiGatewayIssuer
from keyrotation.issuer.base import CredentialIssuer
from keyrotation.issuer.http_issuer import HttpIssuer
from keyrotation.reconciler import Reconciler
from keyrotation.registry.base import Registry
from keyrotation.registry.dynamodb_registry import DynamoDBRegistry
from keyrotation.registry.supabase_registry import SupabaseRegistry
from keyrotation.rotator import Rotator
from keyrotation.settings import Settings, load_settings
from keyrotation.sweeper import Sweeper
from keyrotation.utils.aws import make_client
from keyrotation.utils.retry import RetryPolicy

_cached_client: AsyncClient | None = None
_cached_loop: asyncio.AbstractEventLoop | None = None


async def _get_cached_client(settings: Settings) -> AsyncClient:
    """Return a cached Supabase async client tied to the current event loop.

    Serverless runtimes may run each invocation on a fresh event loop while
    reusing the process; a client created on a different loop fails with
    ``RuntimeError('Event loop is closed')``, so the cache is per-loop.
    """

    global _cached_client, _cached_loop

    current_loop = asyncio.get_running_loop()

    if (
        _cached_client is None
        or _cached_loop is None
        or _cached_loop is not current_loop
        or _cached_loop.is_closed()
    ):
        _cached_client = await acreate_client(settings.supabase_url, settings.supabase_key)  # type: ignore[arg-type]
        _cached_loop = current_loop

    return _cached_client


async def build_registry(settings: Settings) -> Registry:
    if settings.registry_backend == "dynamodb":
        client = make_client("dynamodb", region=settings.aws_region, timeout=settings.call_timeout_seconds)
        return DynamoDBRegistry(client, settings.table_identity)
    supabase = await _get_cached_client(settings)
    return SupabaseRegistry(supabase, settings.table_identity)


def build_issuer(settings: Settings) -> CredentialIssuer:
    if settings.issuer_backend == "http":
        return HttpIssuer.from_endpoint(
            settings.issuer_endpoint,  # type: ignore[arg-type]
            token=settings.issuer_api_token,
            timeout=settings.call_timeout_seconds,
            key_name=settings.rotated_key_name,
        )
    client = make_client(
        "apigateway",
        region=settings.aws_region,
        endpoint_url=settings.issuer_endpoint,
        timeout=settings.call_timeout_seconds,
    )
    return ApiGatewayIssuer(client, key_name=settings.rotated_key_name)


@dataclass
class RotationServices:
    settings: Settings
    registry: Registry
    issuer: CredentialIssuer
    rotator: Rotator
    sweeper: Sweeper
    reconciler: Reconciler


def assemble_services(settings: Settings, registry: Registry, issuer: CredentialIssuer) -> RotationServices:
    policy = RetryPolicy.from_settings(settings)
    rotator = Rotator(registry, issuer, retry_policy=policy)
    return RotationServices(
        settings=settings,
        registry=registry,
        issuer=issuer,
        rotator=rotator,
        sweeper=Sweeper(registry, rotator, concurrency=settings.sweep_concurrency, retry_policy=policy),
        reconciler=Reconciler(registry, issuer, retry_policy=policy),
    )


@asynccontextmanager
async def rotation_services(settings: Optional[Settings] = None) -> AsyncIterator[RotationServices]:
    """Build the full service graph for one invocation and close it afterwards."""
    settings = settings or load_settings()
    registry = await build_registry(settings)
    issuer = build_issuer(settings)
    try:
        yield assemble_services(settings, registry, issuer)
    finally:
        close = getattr(issuer, "aclose", None)
        if callable(close):
            await close()


async def get_rotation_services() -> AsyncGenerator[RotationServices, None]:
    """FastAPI dependency yielding the wired services for a request."""
    async with rotation_services() as services:
        yield services
