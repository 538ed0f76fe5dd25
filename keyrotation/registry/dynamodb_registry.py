"""Registry backed by the DynamoDB table the rotation handlers were built on.

Attribute names follow the existing table (``itemID`` hash key,
``APIGWKeyID``, ``APIKeyValue``, ``usagePlanID``, ``updateTime``) with the
``APIGWKeyIDIndex`` and ``usagePlanIDIndex`` global secondary indexes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from keyrotation.errors import RecordValidationError
from keyrotation.models.records import (
    DYNAMODB_LAYOUT,
    CredentialRecord,
    decode_record,
    format_timestamp,
    malformed_row,
)
from keyrotation.registry.base import ScannedRow, UpdateResult
from keyrotation.utils.aws import ClientError, BotoCoreError, error_code, run_blocking, translate
from keyrotation.utils.logger import logger

EXTERNAL_KEY_INDEX = "APIGWKeyIDIndex"
USAGE_PLAN_INDEX = "usagePlanIDIndex"


def _unwrap(item: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten DynamoDB's ``{"S": "..."}`` attribute values."""
    flat: Dict[str, Any] = {}
    for name, value in item.items():
        if isinstance(value, dict) and len(value) == 1:
            flat[name] = next(iter(value.values()))
        else:
            flat[name] = value
    return flat


class DynamoDBRegistry:
    def __init__(self, client, table_name: str):
        self._client = client
        self._table = table_name
        self._layout = DYNAMODB_LAYOUT

    async def _call(self, operation: str, **params: Any) -> Dict[str, Any]:
        method = getattr(self._client, operation)
        try:
            return await run_blocking(method, TableName=self._table, **params)
        except (ClientError, BotoCoreError) as exc:
            raise translate(exc, backend="dynamodb", operation=operation) from exc

    async def scan_all(self) -> List[ScannedRow]:
        items: List[Dict[str, Any]] = []
        params: Dict[str, Any] = {"ConsistentRead": True}
        while True:
            page = await self._call("scan", **params)
            items.extend(page.get("Items", []))
            last_key = page.get("LastEvaluatedKey")
            if not last_key:
                break
            params["ExclusiveStartKey"] = last_key

        scanned: List[ScannedRow] = []
        for item in items:
            flat = _unwrap(item)
            try:
                scanned.append(decode_record(flat, self._layout))
            except RecordValidationError as exc:
                logger.warning(
                    "registry.malformed_row",
                    extra={"table": self._table, "item_id": exc.item_id, "reason": str(exc)},
                )
                scanned.append(malformed_row(flat, self._layout, exc))
        return scanned

    async def get(self, item_id: str) -> Optional[CredentialRecord]:
        response = await self._call(
            "get_item",
            Key={self._layout.item_id: {"S": item_id}},
            ConsistentRead=True,
        )
        item = response.get("Item")
        return decode_record(_unwrap(item), self._layout) if item else None

    async def conditional_update(
        self,
        item_id: str,
        expected_external_key_id: str,
        *,
        external_key_id: str,
        key_value: str,
        last_rotated_at: datetime,
    ) -> UpdateResult:
        layout = self._layout
        try:
            await run_blocking(
                self._client.update_item,
                TableName=self._table,
                Key={layout.item_id: {"S": item_id}},
                UpdateExpression="SET #kid = :new_kid, #kval = :new_kval, #ts = :ts",
                ConditionExpression="attribute_exists(#item) AND #kid = :expected_kid",
                ExpressionAttributeNames={
                    "#item": layout.item_id,
                    "#kid": layout.external_key_id,
                    "#kval": layout.key_value,
                    "#ts": layout.last_rotated_at,
                },
                ExpressionAttributeValues={
                    ":new_kid": {"S": external_key_id},
                    ":new_kval": {"S": key_value},
                    ":ts": {"S": format_timestamp(last_rotated_at)},
                    ":expected_kid": {"S": expected_external_key_id},
                },
            )
        except ClientError as exc:
            if error_code(exc) == "ConditionalCheckFailedException":
                return UpdateResult.conflict
            raise translate(exc, backend="dynamodb", operation="update_item") from exc
        except BotoCoreError as exc:
            raise translate(exc, backend="dynamodb", operation="update_item") from exc
        return UpdateResult.updated

    async def _query_index(self, index: str, column: str, value: str) -> List[CredentialRecord]:
        records: List[CredentialRecord] = []
        params: Dict[str, Any] = {
            "IndexName": index,
            "KeyConditionExpression": "#col = :value",
            "ExpressionAttributeNames": {"#col": column},
            "ExpressionAttributeValues": {":value": {"S": value}},
        }
        while True:
            page = await self._call("query", **params)
            records.extend(decode_record(_unwrap(item), self._layout) for item in page.get("Items", []))
            last_key = page.get("LastEvaluatedKey")
            if not last_key:
                return records
            params["ExclusiveStartKey"] = last_key

    async def find_by_external_key_id(self, external_key_id: str) -> Optional[CredentialRecord]:
        records = await self._query_index(EXTERNAL_KEY_INDEX, self._layout.external_key_id, external_key_id)
        return records[0] if records else None

    async def list_by_usage_plan(self, usage_plan_id: str) -> List[CredentialRecord]:
        return await self._query_index(USAGE_PLAN_INDEX, self._layout.usage_plan_id, usage_plan_id)
