"""Shared-secret bearer auth for the trigger and dispatch endpoints."""

from __future__ import annotations

import hmac

from fastapi import Depends, Header, HTTPException, status

from keyrotation.settings import Settings, load_settings


def get_settings() -> Settings:
    return load_settings()


async def require_cron_secret(
    authorization: str | None = Header(None),
    settings: Settings = Depends(get_settings),
) -> None:
    if not settings.cron_secret:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="cron_secret_not_configured")

    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not hmac.compare_digest(token.encode(), settings.cron_secret.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="invalid_credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
