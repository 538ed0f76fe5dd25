"""Capability interface the rotation core needs from a registry backend."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional, Protocol, Union

from keyrotation.models.records import CredentialRecord, MalformedRecord

ScannedRow = Union[CredentialRecord, MalformedRecord]


class UpdateResult(str, Enum):
    updated = "updated"
    conflict = "conflict"


class Registry(Protocol):
    """Durable store of credential records keyed by ``item_id``.

    ``conditional_update`` is the only coordination primitive: it writes
    only while the stored ``external_key_id`` still equals the expected one
    and reports :attr:`UpdateResult.conflict` otherwise (missing items
    included). Backend failures raise ``BackendError`` subclasses.
    """

    async def scan_all(self) -> List[ScannedRow]: ...

    async def get(self, item_id: str) -> Optional[CredentialRecord]: ...

    async def conditional_update(
        self,
        item_id: str,
        expected_external_key_id: str,
        *,
        external_key_id: str,
        key_value: str,
        last_rotated_at: datetime,
    ) -> UpdateResult: ...

    async def find_by_external_key_id(self, external_key_id: str) -> Optional[CredentialRecord]: ...

    async def list_by_usage_plan(self, usage_plan_id: str) -> List[CredentialRecord]: ...
