"""Registry record type and its encode/decode boundary.

Every backend stores the same five fields, only the column names differ
(the DynamoDB table keeps the legacy attribute names). All reads go through
:func:`decode_record`, which validates the row before a record is built.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

from keyrotation.errors import RecordValidationError

__all__ = [
    "CredentialRecord",
    "DYNAMODB_LAYOUT",
    "MalformedRecord",
    "RecordLayout",
    "SUPABASE_LAYOUT",
    "decode_record",
    "encode_record",
    "format_timestamp",
    "malformed_row",
    "parse_timestamp",
]


@dataclass(frozen=True)
class CredentialRecord:
    """One tracked credential lineage.

    ``key_value`` is secret material and is excluded from ``repr``.
    """

    item_id: str
    external_key_id: str
    key_value: str
    usage_plan_id: str
    last_rotated_at: datetime

    def __repr__(self) -> str:
        return (
            f"CredentialRecord(item_id={self.item_id!r}, "
            f"external_key_id={self.external_key_id!r}, "
            f"usage_plan_id={self.usage_plan_id!r}, "
            f"last_rotated_at={self.last_rotated_at.isoformat()!r})"
        )

    def age(self, now: datetime) -> timedelta:
        """Return ``now - last_rotated_at`` as a timedelta."""
        return now - self.last_rotated_at

    def is_stale(self, now: datetime, threshold: timedelta) -> bool:
        return self.age(now) >= threshold


@dataclass(frozen=True)
class MalformedRecord:
    """A scanned row that failed validation; reported, never rotated."""

    item_id: str | None
    reason: str
    external_key_id: str | None = None


@dataclass(frozen=True)
class RecordLayout:
    """Column names used by one backend for the record fields."""

    item_id: str
    external_key_id: str
    key_value: str
    usage_plan_id: str
    last_rotated_at: str

    def columns(self) -> dict[str, str]:
        return {
            "item_id": self.item_id,
            "external_key_id": self.external_key_id,
            "key_value": self.key_value,
            "usage_plan_id": self.usage_plan_id,
            "last_rotated_at": self.last_rotated_at,
        }


SUPABASE_LAYOUT = RecordLayout(
    item_id="item_id",
    external_key_id="external_key_id",
    key_value="key_value",
    usage_plan_id="usage_plan_id",
    last_rotated_at="last_rotated_at",
)

DYNAMODB_LAYOUT = RecordLayout(
    item_id="itemID",
    external_key_id="APIGWKeyID",
    key_value="APIKeyValue",
    usage_plan_id="usagePlanID",
    last_rotated_at="updateTime",
)


def parse_timestamp(raw: Any) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC.

    Accepts the trailing ``Z`` produced by JavaScript's ``toISOString()``.
    """
    if isinstance(raw, datetime):
        value = raw
    elif isinstance(raw, str) and raw.strip():
        text = raw.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            value = datetime.fromisoformat(text)
        except ValueError as exc:
            raise RecordValidationError(f"unparsable timestamp {raw!r}") from exc
    else:
        raise RecordValidationError(f"unparsable timestamp {raw!r}")

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def decode_record(row: Mapping[str, Any], layout: RecordLayout = SUPABASE_LAYOUT) -> CredentialRecord:
    """Build a :class:`CredentialRecord` from a stored row.

    Raises :class:`RecordValidationError` when a field is missing, blank or
    not a string, or when the timestamp cannot be parsed.
    """
    item_id = row.get(layout.item_id)
    item_label = item_id if isinstance(item_id, str) and item_id else None

    values: dict[str, str] = {}
    for field_name, column in layout.columns().items():
        if field_name == "last_rotated_at":
            continue
        raw = row.get(column)
        if not isinstance(raw, str) or not raw.strip():
            raise RecordValidationError(f"missing or blank field {column!r}", item_id=item_label)
        values[field_name] = raw

    if layout.last_rotated_at not in row:
        raise RecordValidationError(f"missing field {layout.last_rotated_at!r}", item_id=item_label)
    try:
        last_rotated_at = parse_timestamp(row[layout.last_rotated_at])
    except RecordValidationError as exc:
        raise RecordValidationError(str(exc), item_id=item_label) from exc

    return CredentialRecord(last_rotated_at=last_rotated_at, **values)


def encode_record(record: CredentialRecord, layout: RecordLayout = SUPABASE_LAYOUT) -> dict[str, str]:
    return {
        layout.item_id: record.item_id,
        layout.external_key_id: record.external_key_id,
        layout.key_value: record.key_value,
        layout.usage_plan_id: record.usage_plan_id,
        layout.last_rotated_at: format_timestamp(record.last_rotated_at),
    }


def malformed_row(row: Mapping[str, Any], layout: RecordLayout, error: RecordValidationError) -> MalformedRecord:
    """Describe a row that failed :func:`decode_record`.

    The key id is kept when readable so reconciliation never revokes a key
    that a damaged row may still reference.
    """
    key_id = row.get(layout.external_key_id)
    return MalformedRecord(
        item_id=error.item_id,
        reason=str(error),
        external_key_id=key_id if isinstance(key_id, str) and key_id else None,
    )
