"""Periodic sweep: scan the registry, pick stale records, rotate each one.

The scan is the only step whose failure aborts a sweep. Every dispatched
rotation resolves to an outcome, so one bad entry never stops the rest, and
nothing is retried within a sweep: the next scheduled run picks failures up
again, which the rotator's idempotency makes safe.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from keyrotation.models.outcomes import FailureKind, RotationOutcome, SweepReport
from keyrotation.models.records import CredentialRecord, MalformedRecord
from keyrotation.registry.base import Registry
from keyrotation.rotator import Rotator
from keyrotation.utils.logger import logger
from keyrotation.utils.retry import RetryPolicy, call_with_retry

# A full scan pages through the table, so it gets a longer budget than one call.
SCAN_TIMEOUT_FACTOR = 30


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Sweeper:
    def __init__(
        self,
        registry: Registry,
        rotator: Rotator,
        *,
        concurrency: int = 4,
        retry_policy: Optional[RetryPolicy] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self._registry = registry
        self._rotator = rotator
        self._concurrency = concurrency
        policy = retry_policy or RetryPolicy()
        self._scan_policy = replace(policy, timeout_seconds=policy.timeout_seconds * SCAN_TIMEOUT_FACTOR)
        self._clock = clock

    async def sweep(
        self,
        stale_threshold: timedelta,
        *,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> SweepReport:
        """Rotate every record whose age is at least ``stale_threshold``.

        Setting ``cancel_event`` stops dispatching further entries; rotations
        already in flight run to completion. Entries never dispatched are
        counted as ``cancelled``.
        """
        rows = await call_with_retry(
            self._registry.scan_all, operation="registry.scan_all", policy=self._scan_policy
        )
        now = self._clock()

        report = SweepReport(scanned=len(rows))
        stale: List[CredentialRecord] = []
        for row in rows:
            if isinstance(row, MalformedRecord):
                report.invalid += 1
                continue
            if row.is_stale(now, stale_threshold):
                stale.append(row)
        report.stale = len(stale)

        logger.info(
            "sweep.scanned",
            extra={
                "scanned": report.scanned,
                "stale": report.stale,
                "invalid": report.invalid,
                "threshold_days": stale_threshold.total_seconds() / 86400,
            },
        )

        semaphore = asyncio.Semaphore(self._concurrency)

        async def _dispatch(record: CredentialRecord) -> Optional[RotationOutcome]:
            async with semaphore:
                if cancel_event is not None and cancel_event.is_set():
                    return None
                return await self._rotate_isolated(record)

        results = await asyncio.gather(*(_dispatch(record) for record in stale))
        for outcome in results:
            if outcome is None:
                report.cancelled += 1
            else:
                report.record(outcome)

        logger.info(
            "sweep.complete",
            extra={key: value for key, value in report.to_dict().items() if key != "outcomes"},
        )
        return report

    async def _rotate_isolated(self, record: CredentialRecord) -> RotationOutcome:
        try:
            return await self._rotator.rotate(record.item_id, record.external_key_id, record.usage_plan_id)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001 – one entry must not abort the batch
            logger.exception("sweep.entry_crashed", extra={"item_id": record.item_id})
            return RotationOutcome.failed(record.item_id, f"unexpected error: {exc}", FailureKind.unexpected)
