"""Best-effort cleanup of orphaned credentials.

A rotation that crashes or loses its registry write after creating a key
leaves that key bound but unreferenced. This pass revokes managed keys that
no record points at, once they are older than a grace period long enough
for any in-flight rotation to have persisted its key.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from keyrotation.errors import BackendError
from keyrotation.issuer.base import CredentialIssuer
from keyrotation.models.outcomes import ReconcileReport
from keyrotation.models.records import MalformedRecord
from keyrotation.registry.base import Registry
from keyrotation.utils.logger import logger
from keyrotation.utils.retry import RetryPolicy, call_with_retry

SCAN_TIMEOUT_FACTOR = 30


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Reconciler:
    def __init__(
        self,
        registry: Registry,
        issuer: CredentialIssuer,
        *,
        retry_policy: Optional[RetryPolicy] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._registry = registry
        self._issuer = issuer
        self._policy = retry_policy or RetryPolicy()
        self._scan_policy = replace(self._policy, timeout_seconds=self._policy.timeout_seconds * SCAN_TIMEOUT_FACTOR)
        self._clock = clock

    async def reconcile(self, grace: timedelta) -> ReconcileReport:
        # List before scanning: a key persisted after the scan was created
        # before the listing and is therefore still inside the grace window.
        keys = await call_with_retry(
            self._issuer.list_credentials, operation="issuer.list_credentials", policy=self._scan_policy
        )
        rows = await call_with_retry(
            self._registry.scan_all, operation="registry.scan_all", policy=self._scan_policy
        )
        now = self._clock()
        report = ReconcileReport(listed=len(keys))

        referenced = {row.external_key_id for row in rows if row.external_key_id}
        unknown = [row for row in rows if isinstance(row, MalformedRecord) and not row.external_key_id]
        if unknown:
            logger.warning(
                "reconcile.aborted",
                extra={"reason": "registry rows without a readable key id", "rows": len(unknown)},
            )
            return report

        cutoff = now - grace
        for key in keys:
            if key.key_id in referenced:
                report.referenced += 1
                continue
            if key.created_at is None or key.created_at > cutoff:
                report.too_recent += 1
                continue
            try:
                await call_with_retry(
                    self._issuer.revoke_credential,
                    key.key_id,
                    operation="issuer.revoke_credential",
                    policy=self._policy,
                )
            except BackendError as exc:
                report.failed += 1
                logger.warning("reconcile.revoke_failed", extra={"key_id": key.key_id, "error": str(exc)})
                continue
            report.revoked += 1
            report.revoked_key_ids.append(key.key_id)

        logger.info(
            "reconcile.complete",
            extra={k: v for k, v in report.to_dict().items() if k != "revoked_key_ids"},
        )
        return report
