"""Service configuration helpers (env → frozen settings object).

Avoid importing heavy libraries here to keep the import cost near-zero in
cold-start environments (the sweeper usually runs as a serverless cron).
"""

from __future__ import annotations

# Standard library
import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Mapping, Optional

from keyrotation.errors import ConfigurationError

__all__ = ["Settings", "load_settings"]

REGISTRY_BACKENDS = ("supabase", "dynamodb")
ISSUER_BACKENDS = ("apigateway", "http")


@dataclass(frozen=True)
class Settings:
    table_identity: str
    issuer_endpoint: Optional[str] = None
    stale_threshold: timedelta = timedelta(days=30)
    sweep_concurrency: int = 4
    registry_backend: str = "supabase"
    issuer_backend: str = "apigateway"
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    aws_region: Optional[str] = None
    issuer_api_token: Optional[str] = None
    call_timeout_seconds: float = 10.0
    retry_attempts: int = 3
    retry_max_wait_seconds: float = 8.0
    rotated_key_name: str = "RotatedAPIKey"
    orphan_grace: timedelta = timedelta(hours=24)
    cron_secret: Optional[str] = None
    app_env: str = "production"


def _number(env: Mapping[str, str], name: str, default: float, *, minimum: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {raw!r}")
    return value


def _choice(env: Mapping[str, str], name: str, default: str, allowed: tuple[str, ...]) -> str:
    value = (env.get(name) or default).strip().lower()
    if value not in allowed:
        raise ConfigurationError(f"{name} must be one of {', '.join(allowed)}, got {value!r}")
    return value


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Read settings from ``env`` (defaults to ``os.environ``).

    The stale threshold is configured independently of whatever schedule
    fires the sweep.
    """
    env = os.environ if env is None else env

    table_identity = (env.get("TABLE_NAME") or "").strip()
    if not table_identity:
        raise ConfigurationError("TABLE_NAME not configured")

    registry_backend = _choice(env, "REGISTRY_BACKEND", "supabase", REGISTRY_BACKENDS)
    issuer_backend = _choice(env, "ISSUER_BACKEND", "apigateway", ISSUER_BACKENDS)

    supabase_url = env.get("SUPABASE_URL") or None
    supabase_key = env.get("SUPABASE_KEY") or None
    if registry_backend == "supabase" and (not supabase_url or not supabase_key):
        raise ConfigurationError("Supabase env vars not configured")

    issuer_endpoint = (env.get("ISSUER_ENDPOINT") or "").strip() or None
    if issuer_backend == "http" and not issuer_endpoint:
        raise ConfigurationError("ISSUER_ENDPOINT is required for the http issuer")

    stale_days = _number(env, "STALE_THRESHOLD_DAYS", 30, minimum=0)
    concurrency = int(_number(env, "SWEEP_CONCURRENCY", 4, minimum=1))
    attempts = int(_number(env, "RETRY_ATTEMPTS", 3, minimum=1))

    return Settings(
        table_identity=table_identity,
        issuer_endpoint=issuer_endpoint,
        stale_threshold=timedelta(days=stale_days),
        sweep_concurrency=concurrency,
        registry_backend=registry_backend,
        issuer_backend=issuer_backend,
        supabase_url=supabase_url,
        supabase_key=supabase_key,
        aws_region=env.get("AWS_REGION") or None,
        issuer_api_token=env.get("ISSUER_API_TOKEN") or None,
        call_timeout_seconds=_number(env, "CALL_TIMEOUT_SECONDS", 10.0, minimum=0.1),
        retry_attempts=attempts,
        retry_max_wait_seconds=_number(env, "RETRY_MAX_WAIT_SECONDS", 8.0, minimum=0),
        rotated_key_name=(env.get("ROTATED_KEY_NAME") or "RotatedAPIKey").strip(),
        orphan_grace=timedelta(hours=_number(env, "ORPHAN_GRACE_HOURS", 24, minimum=0)),
        cron_secret=env.get("CRON_SECRET") or None,
        app_env=env.get("APP_ENV", "production"),
    )
