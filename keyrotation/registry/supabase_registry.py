"""Registry backed by a Supabase (PostgREST) table.

Expected table::

    create table api_key_registry (
        item_id          text primary key,
        external_key_id  text not null unique,
        key_value        text not null,
        usage_plan_id    text not null,
        last_rotated_at  timestamptz not null
    );
    create index on api_key_registry (usage_plan_id);

The compare-and-swap is a plain ``UPDATE ... WHERE item_id = ? AND
external_key_id = ?``; PostgREST returns the changed rows, so an empty
result means another writer got there first.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from supabase import AsyncClient

from keyrotation.errors import RecordValidationError
from keyrotation.models.records import (
    SUPABASE_LAYOUT,
    CredentialRecord,
    decode_record,
    format_timestamp,
    malformed_row,
)
from keyrotation.registry.base import ScannedRow, UpdateResult
from keyrotation.utils.database import query_data, update_data
from keyrotation.utils.logger import logger

SCAN_PAGE_SIZE = 1000


class SupabaseRegistry:
    def __init__(self, supabase: AsyncClient, table_name: str, *, page_size: int = SCAN_PAGE_SIZE):
        self._supabase = supabase
        self._table = table_name
        self._page_size = page_size
        self._layout = SUPABASE_LAYOUT

    async def scan_all(self) -> List[ScannedRow]:
        rows: list[dict] = []
        start = 0
        while True:
            page = await query_data(
                self._supabase,
                self._table,
                order_by=(self._layout.item_id, False),
                page=(start, start + self._page_size - 1),
            )
            # PostgREST may cap a response below the requested range (db-max-rows).
            if not page:
                break
            rows.extend(page)
            start += len(page)

        scanned: List[ScannedRow] = []
        for row in rows:
            try:
                scanned.append(decode_record(row, self._layout))
            except RecordValidationError as exc:
                logger.warning(
                    "registry.malformed_row",
                    extra={"table": self._table, "item_id": exc.item_id, "reason": str(exc)},
                )
                scanned.append(malformed_row(row, self._layout, exc))
        return scanned

    async def _query_records(self, filters: dict, limit: Optional[int] = None) -> List[CredentialRecord]:
        rows = await query_data(self._supabase, self._table, filters=filters, limit=limit)
        return [decode_record(row, self._layout) for row in rows]

    async def get(self, item_id: str) -> Optional[CredentialRecord]:
        records = await self._query_records({self._layout.item_id: item_id}, limit=1)
        return records[0] if records else None

    async def conditional_update(
        self,
        item_id: str,
        expected_external_key_id: str,
        *,
        external_key_id: str,
        key_value: str,
        last_rotated_at: datetime,
    ) -> UpdateResult:
        changed = await update_data(
            self._supabase,
            self._table,
            update_values={
                self._layout.external_key_id: external_key_id,
                self._layout.key_value: key_value,
                self._layout.last_rotated_at: format_timestamp(last_rotated_at),
            },
            filters={
                self._layout.item_id: item_id,
                self._layout.external_key_id: expected_external_key_id,
            },
        )
        return UpdateResult.updated if changed else UpdateResult.conflict

    async def find_by_external_key_id(self, external_key_id: str) -> Optional[CredentialRecord]:
        records = await self._query_records({self._layout.external_key_id: external_key_id}, limit=1)
        return records[0] if records else None

    async def list_by_usage_plan(self, usage_plan_id: str) -> List[CredentialRecord]:
        return await self._query_records({self._layout.usage_plan_id: usage_plan_id})
