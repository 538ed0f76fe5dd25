"""Capability interface the rotation core needs from a credential issuer."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional, Protocol


@dataclass(frozen=True)
class IssuedCredential:
    key_id: str
    value: str

    def __repr__(self) -> str:
        return f"IssuedCredential(key_id={self.key_id!r})"


@dataclass(frozen=True)
class IssuedKeySummary:
    """Listing entry used by orphan reconciliation (no secret material)."""

    key_id: str
    name: str
    created_at: Optional[datetime]


class RevokeResult(str, Enum):
    revoked = "revoked"
    already_absent = "already_absent"


class CredentialIssuer(Protocol):
    """Creates, binds and revokes API credentials.

    ``bind_to_usage_plan`` treats an existing binding as success and
    ``revoke_credential`` reports a missing key as
    :attr:`RevokeResult.already_absent`, so every call is safe to retry.
    Failures raise ``BackendError`` subclasses.
    """

    async def create_credential(self) -> IssuedCredential: ...

    async def bind_to_usage_plan(self, key_id: str, usage_plan_id: str) -> None: ...

    async def revoke_credential(self, key_id: str) -> RevokeResult: ...

    async def list_credentials(self) -> List[IssuedKeySummary]: ...
