from __future__ import annotations

"""Domain models namespace – registry records and rotation outcomes.

Call-sites can simply::

    from keyrotation.models import CredentialRecord, RotationOutcome, SweepReport
"""

from keyrotation.models.outcomes import (
    FailureKind,
    ReconcileReport,
    RotationOutcome,
    RotationStatus,
    SweepReport,
)
from keyrotation.models.records import (
    DYNAMODB_LAYOUT,
    SUPABASE_LAYOUT,
    CredentialRecord,
    MalformedRecord,
    RecordLayout,
    decode_record,
    encode_record,
)

__all__ = [
    "CredentialRecord",
    "DYNAMODB_LAYOUT",
    "FailureKind",
    "MalformedRecord",
    "ReconcileReport",
    "RecordLayout",
    "RotationOutcome",
    "RotationStatus",
    "SUPABASE_LAYOUT",
    "SweepReport",
    "decode_record",
    "encode_record",
]
