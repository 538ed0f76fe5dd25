from __future__ import annotations

"""Rotation dispatch and cron trigger endpoints.

``POST /v1/rotations`` is the out-of-process dispatch channel: one message
per item, same fields the scheduler used to send to the rotation handler.
``POST /v1/cron/sweep`` and ``POST /v1/cron/reconcile`` let an HTTP cron
(e.g. Vercel Cron) fire the periodic jobs.
"""

from datetime import timedelta

from fastapi import APIRouter, Body, Depends, HTTPException, status

from keyrotation.errors import BackendError
from keyrotation.schemas import (
    ReconcileReportResponse,
    RotationOutcomeResponse,
    RotationRequest,
    SweepReportResponse,
    SweepRequest,
)
from keyrotation.utils.auth import require_cron_secret
from keyrotation.utils.dependencies import RotationServices, get_rotation_services
from keyrotation.utils.logger import logger

router = APIRouter(prefix="/v1", tags=["rotation"], dependencies=[Depends(require_cron_secret)])


@router.post("/rotations", response_model=RotationOutcomeResponse)
async def dispatch_rotation(
    payload: RotationRequest,
    services: RotationServices = Depends(get_rotation_services),
):
    outcome = await services.rotator.rotate(payload.item_id, payload.external_key_id, payload.usage_plan_id)
    return RotationOutcomeResponse.from_outcome(outcome)


@router.post("/cron/sweep", response_model=SweepReportResponse)
async def trigger_sweep(
    payload: SweepRequest | None = Body(None),
    services: RotationServices = Depends(get_rotation_services),
):
    threshold = services.settings.stale_threshold
    if payload is not None and payload.stale_threshold_days is not None:
        threshold = timedelta(days=payload.stale_threshold_days)

    try:
        report = await services.sweeper.sweep(threshold)
    except BackendError as exc:
        logger.error("sweep.scan_failed", extra={"error": str(exc)})
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="registry_scan_failed")
    return SweepReportResponse.from_report(report)


@router.post("/cron/reconcile", response_model=ReconcileReportResponse)
async def trigger_reconcile(services: RotationServices = Depends(get_rotation_services)):
    try:
        report = await services.reconciler.reconcile(services.settings.orphan_grace)
    except BackendError as exc:
        logger.error("reconcile.listing_failed", extra={"error": str(exc)})
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="reconcile_listing_failed")
    return ReconcileReportResponse.from_report(report)
