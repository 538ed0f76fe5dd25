"""Single-entry credential rotation.

Protocol order (must not change):

1. create a new credential at the issuer
2. bind it to the item's usage plan
3. compare-and-swap the registry record from the expected key to the new one
4. revoke the old credential

The registry never points at a revoked key and callers always have a bound
one. Anything created but never recorded (conflict, crash, store outage) is
an orphan; it is revoked on the spot where that is safe, otherwise left for
:mod:`keyrotation.reconciler`.
"""

from __future__ import annotations

import asyncio
import functools
from datetime import datetime, timezone
from typing import Callable, Optional, Set

from keyrotation.errors import BackendError, RecordValidationError, RotationInputError, TransientBackendError
from keyrotation.issuer.base import CredentialIssuer, IssuedCredential
from keyrotation.models.outcomes import FailureKind, RotationOutcome
from keyrotation.models.records import CredentialRecord
from keyrotation.registry.base import Registry, UpdateResult
from keyrotation.utils.logger import logger
from keyrotation.utils.retry import RetryPolicy, call_with_retry

__all__ = ["Rotator", "validate_rotation_input"]

SKIP_ALREADY_ROTATED = "already rotated"
SKIP_NOT_FOUND = "item not found"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _failure_kind(exc: BackendError) -> FailureKind:
    return FailureKind.transient if isinstance(exc, TransientBackendError) else FailureKind.backend


def validate_rotation_input(item_id, external_key_id, usage_plan_id) -> None:
    """Raise :class:`RotationInputError` unless all three fields are non-blank strings."""
    missing = [
        name
        for name, value in (
            ("itemID", item_id),
            ("externalKeyID", external_key_id),
            ("usagePlanID", usage_plan_id),
        )
        if not isinstance(value, str) or not value.strip()
    ]
    if missing:
        raise RotationInputError(f"Missing required parameters: {', '.join(missing)}")


class Rotator:
    """Runs the rotation protocol for one registry entry at a time.

    Safe to call concurrently for different items, and for the same item:
    the registry's conditional update lets exactly one caller win per
    expected key.
    """

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
        self._clock = clock
        self._in_flight: Set["asyncio.Future[RotationOutcome]"] = set()

    async def rotate(self, item_id: str, expected_external_key_id: str, usage_plan_id: str) -> RotationOutcome:
        try:
            validate_rotation_input(item_id, expected_external_key_id, usage_plan_id)
        except RotationInputError as exc:
            logger.warning("rotation.invalid_input", extra={"item_id": item_id, "error": str(exc)})
            return RotationOutcome.failed(str(item_id or ""), str(exc), FailureKind.validation)

        try:
            current = await call_with_retry(
                self._registry.get, item_id, operation="registry.get", policy=self._policy
            )
        except RecordValidationError as exc:
            return RotationOutcome.failed(item_id, f"stored record is malformed: {exc}", FailureKind.validation)
        except BackendError as exc:
            # The stored timestamp is needed to keep last_rotated_at monotonic.
            logger.warning("rotation.precheck_failed", extra={"item_id": item_id, "error": str(exc)})
            return RotationOutcome.failed(item_id, f"registry.get: {exc}", _failure_kind(exc))

        if current is None:
            return RotationOutcome.skipped(item_id, SKIP_NOT_FOUND)
        if current.external_key_id != expected_external_key_id:
            logger.info("rotation.skipped", extra={"item_id": item_id, "reason": SKIP_ALREADY_ROTATED})
            return RotationOutcome.skipped(item_id, SKIP_ALREADY_ROTATED)
        if current.usage_plan_id != usage_plan_id:
            return RotationOutcome.failed(
                item_id,
                f"usage plan mismatch: record is bound to {current.usage_plan_id!r}",
                FailureKind.validation,
            )

        # Once a credential exists the protocol must reach step 3 or cleanup,
        # so cancellation of the caller does not abandon it half-way.
        task = asyncio.ensure_future(self._replace(item_id, expected_external_key_id, usage_plan_id, current))
        self._in_flight.add(task)
        task.add_done_callback(functools.partial(self._finish_task, item_id))
        return await asyncio.shield(task)

    def _finish_task(self, item_id: str, task: "asyncio.Future[RotationOutcome]") -> None:
        """Surface errors from a rotation whose caller stopped waiting."""
        self._in_flight.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("rotation.crashed", exc_info=exc, extra={"item_id": item_id, "error": str(exc)})

    async def _replace(
        self,
        item_id: str,
        expected_external_key_id: str,
        usage_plan_id: str,
        current: CredentialRecord,
    ) -> RotationOutcome:
        # Step 1
        try:
            new = await call_with_retry(
                self._issuer.create_credential, operation="issuer.create_credential", policy=self._policy
            )
        except BackendError as exc:
            logger.error("rotation.create_failed", extra={"item_id": item_id, "error": str(exc)})
            return RotationOutcome.failed(item_id, f"create_credential: {exc}", _failure_kind(exc))

        # Step 2
        try:
            await call_with_retry(
                self._issuer.bind_to_usage_plan,
                new.key_id,
                usage_plan_id,
                operation="issuer.bind_to_usage_plan",
                policy=self._policy,
            )
        except BackendError as exc:
            logger.error(
                "rotation.bind_failed",
                extra={"item_id": item_id, "new_key_id": new.key_id, "error": str(exc)},
            )
            await self._discard(item_id, new, reason="bind failed")
            return RotationOutcome.failed(item_id, f"bind_to_usage_plan: {exc}", _failure_kind(exc))

        # Step 3
        rotated_at = self._clock()
        if current.last_rotated_at > rotated_at:
            rotated_at = current.last_rotated_at
        try:
            result = await call_with_retry(
                self._registry.conditional_update,
                item_id,
                expected_external_key_id,
                external_key_id=new.key_id,
                key_value=new.value,
                last_rotated_at=rotated_at,
                operation="registry.conditional_update",
                policy=self._policy,
            )
        except BackendError as exc:
            # The registry still names the old key, so a retry is safe; the
            # new credential becomes an orphan for reconciliation.
            logger.error(
                "rotation.persist_failed",
                extra={"item_id": item_id, "orphaned_key_id": new.key_id, "error": str(exc)},
            )
            return RotationOutcome.failed(item_id, f"conditional_update: {exc}", _failure_kind(exc))

        if result is UpdateResult.conflict:
            outcome = await self._resolve_conflict(item_id, new)
            if outcome is not None:
                return outcome

        # Step 4
        old_revoked = await self._revoke_old(item_id, expected_external_key_id)
        logger.info(
            "rotation.complete",
            extra={
                "item_id": item_id,
                "old_key_id": expected_external_key_id,
                "new_key_id": new.key_id,
                "old_key_revoked": old_revoked,
            },
        )
        return RotationOutcome.rotated(item_id, new.key_id, old_key_revoked=old_revoked)

    async def _resolve_conflict(self, item_id: str, new: IssuedCredential) -> Optional[RotationOutcome]:
        """Decide what a lost compare-and-swap means.

        Returns ``None`` when the record already names ``new`` (an earlier
        attempt of this same update timed out after it was applied).
        """
        try:
            latest = await call_with_retry(
                self._registry.get, item_id, operation="registry.get", policy=self._policy
            )
        except (BackendError, RecordValidationError) as exc:
            # Cannot prove the new key is unused, so it must not be revoked here.
            logger.error(
                "rotation.conflict_unresolved",
                extra={"item_id": item_id, "orphaned_key_id": new.key_id, "error": str(exc)},
            )
            return RotationOutcome.failed(
                item_id, f"conflict could not be verified: {exc}", FailureKind.transient
            )

        if latest is not None and latest.external_key_id == new.key_id:
            return None

        await self._discard(item_id, new, reason="conditional update conflict")
        logger.info("rotation.skipped", extra={"item_id": item_id, "reason": SKIP_ALREADY_ROTATED})
        return RotationOutcome.skipped(item_id, SKIP_ALREADY_ROTATED)

    async def _discard(self, item_id: str, new: IssuedCredential, *, reason: str) -> None:
        """Revoke a credential this rotation created but never recorded."""
        try:
            await call_with_retry(
                self._issuer.revoke_credential,
                new.key_id,
                operation="issuer.revoke_credential",
                policy=self._policy,
            )
        except BackendError as exc:
            logger.error(
                "rotation.orphaned_credential",
                extra={"item_id": item_id, "orphaned_key_id": new.key_id, "reason": reason, "error": str(exc)},
            )

    async def _revoke_old(self, item_id: str, old_key_id: str) -> bool:
        try:
            await call_with_retry(
                self._issuer.revoke_credential,
                old_key_id,
                operation="issuer.revoke_credential",
                policy=self._policy,
            )
        except BackendError as exc:
            logger.warning(
                "rotation.revoke_failed",
                extra={"item_id": item_id, "old_key_id": old_key_id, "error": str(exc)},
            )
            return False
        return True
