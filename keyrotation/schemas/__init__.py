from __future__ import annotations

"""Pydantic models for request/response bodies of the HTTP surface.

The rotation request keeps the legacy wire names (``itemID``,
``usagePlanID`` and ``APIGWKeyID`` as an alias of ``externalKeyID``) so the
old scheduler payloads still validate.
"""

from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from keyrotation.models.outcomes import ReconcileReport, RotationOutcome, SweepReport


class RotationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    item_id: str = Field(..., min_length=1, validation_alias=AliasChoices("itemID", "item_id"))
    external_key_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("externalKeyID", "APIGWKeyID", "external_key_id"),
    )
    usage_plan_id: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("usagePlanID", "usage_plan_id")
    )


class RotationOutcomeResponse(BaseModel):
    item_id: str
    status: str
    reason: str = ""
    new_external_key_id: Optional[str] = None
    failure_kind: Optional[str] = None
    old_key_revoked: Optional[bool] = None

    @classmethod
    def from_outcome(cls, outcome: RotationOutcome) -> "RotationOutcomeResponse":
        return cls(**outcome.to_dict())


class SweepRequest(BaseModel):
    stale_threshold_days: Optional[float] = Field(
        None, ge=0, description="Override the configured threshold for this run"
    )


class SweepReportResponse(BaseModel):
    scanned: int
    stale: int
    fresh: int
    rotated: int
    skipped: int
    failed: int
    invalid: int
    cancelled: int
    outcomes: List[RotationOutcomeResponse]

    @classmethod
    def from_report(cls, report: SweepReport) -> "SweepReportResponse":
        return cls(**report.to_dict())


class ReconcileReportResponse(BaseModel):
    listed: int
    referenced: int
    too_recent: int
    revoked: int
    failed: int
    revoked_key_ids: List[str]

    @classmethod
    def from_report(cls, report: ReconcileReport) -> "ReconcileReportResponse":
        return cls(**report.to_dict())


__all__ = [
    "ReconcileReportResponse",
    "RotationOutcomeResponse",
    "RotationRequest",
    "SweepReportResponse",
    "SweepRequest",
]
