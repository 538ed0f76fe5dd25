"""Typed results returned by the rotator, the sweeper and the reconciler."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

__all__ = [
    "FailureKind",
    "ReconcileReport",
    "RotationOutcome",
    "RotationStatus",
    "SweepReport",
]


class RotationStatus(str, Enum):
    rotated = "rotated"
    skipped = "skipped"
    failed = "failed"


class FailureKind(str, Enum):
    """Why a rotation failed; drives whether the next sweep may retry it."""

    validation = "validation"
    transient = "transient"
    backend = "backend"
    unexpected = "unexpected"


@dataclass(frozen=True)
class RotationOutcome:
    """Result of one ``Rotator.rotate`` call.

    ``new_external_key_id`` is set only when the registry now points at a
    freshly issued credential.
    """

    item_id: str
    status: RotationStatus
    reason: str = ""
    new_external_key_id: Optional[str] = None
    failure_kind: Optional[FailureKind] = None
    old_key_revoked: Optional[bool] = None

    @classmethod
    def rotated(cls, item_id: str, new_external_key_id: str, *, old_key_revoked: bool) -> "RotationOutcome":
        return cls(
            item_id=item_id,
            status=RotationStatus.rotated,
            new_external_key_id=new_external_key_id,
            old_key_revoked=old_key_revoked,
        )

    @classmethod
    def skipped(cls, item_id: str, reason: str) -> "RotationOutcome":
        return cls(item_id=item_id, status=RotationStatus.skipped, reason=reason)

    @classmethod
    def failed(cls, item_id: str, reason: str, kind: FailureKind) -> "RotationOutcome":
        return cls(item_id=item_id, status=RotationStatus.failed, reason=reason, failure_kind=kind)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_id": self.item_id,
            "status": self.status.value,
            "reason": self.reason,
            "new_external_key_id": self.new_external_key_id,
            "failure_kind": self.failure_kind.value if self.failure_kind else None,
            "old_key_revoked": self.old_key_revoked,
        }


@dataclass
class SweepReport:
    """Counts for one sweep.

    ``scanned == fresh + stale + invalid`` and
    ``stale == rotated + skipped + failed + cancelled``.
    """

    scanned: int = 0
    stale: int = 0
    rotated: int = 0
    skipped: int = 0
    failed: int = 0
    invalid: int = 0
    cancelled: int = 0
    outcomes: List[RotationOutcome] = field(default_factory=list)

    @property
    def fresh(self) -> int:
        return self.scanned - self.stale - self.invalid

    def record(self, outcome: RotationOutcome) -> None:
        self.outcomes.append(outcome)
        if outcome.status is RotationStatus.rotated:
            self.rotated += 1
        elif outcome.status is RotationStatus.skipped:
            self.skipped += 1
        else:
            self.failed += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scanned": self.scanned,
            "stale": self.stale,
            "fresh": self.fresh,
            "rotated": self.rotated,
            "skipped": self.skipped,
            "failed": self.failed,
            "invalid": self.invalid,
            "cancelled": self.cancelled,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


@dataclass
class ReconcileReport:
    """Counts for one orphan-reconciliation pass."""

    listed: int = 0
    referenced: int = 0
    too_recent: int = 0
    revoked: int = 0
    failed: int = 0
    revoked_key_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "listed": self.listed,
            "referenced": self.referenced,
            "too_recent": self.too_recent,
            "revoked": self.revoked,
            "failed": self.failed,
            "revoked_key_ids": list(self.revoked_key_ids),
        }
