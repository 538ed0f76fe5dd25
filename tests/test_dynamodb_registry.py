from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from keyrotation.errors import BackendError, TransientBackendError
from keyrotation.models.records import MalformedRecord
from keyrotation.registry.base import UpdateResult
from keyrotation.registry.dynamodb_registry import EXTERNAL_KEY_INDEX, USAGE_PLAN_INDEX, DynamoDBRegistry

TABLE = "api-key-table"


def _item(item_id, key_id, plan="plan-1", ts="2025-11-01T00:00:00.000Z"):
    return {
        "itemID": {"S": item_id},
        "APIGWKeyID": {"S": key_id},
        "APIKeyValue": {"S": f"value-{key_id}"},
        "usagePlanID": {"S": plan},
        "updateTime": {"S": ts},
    }


def _client_error(code, status=400, operation="UpdateItem"):
    return ClientError(
        {"Error": {"Code": code, "Message": code}, "ResponseMetadata": {"HTTPStatusCode": status}},
        operation,
    )


@pytest.mark.asyncio
async def test_scan_follows_last_evaluated_key():
    client = MagicMock()
    client.scan.side_effect = [
        {"Items": [_item("item-1", "K1")], "LastEvaluatedKey": {"itemID": {"S": "item-1"}}},
        {"Items": [_item("item-2", "K2"), {"itemID": {"S": "item-3"}, "APIGWKeyID": {"S": "K3"}}]},
    ]
    registry = DynamoDBRegistry(client, TABLE)

    rows = await registry.scan_all()

    assert [r.item_id for r in rows] == ["item-1", "item-2", "item-3"]
    assert isinstance(rows[2], MalformedRecord)
    assert rows[2].external_key_id == "K3"
    assert rows[0].last_rotated_at == datetime(2025, 11, 1, tzinfo=timezone.utc)
    second_call = client.scan.call_args_list[1].kwargs
    assert second_call["ExclusiveStartKey"] == {"itemID": {"S": "item-1"}}
    assert second_call["TableName"] == TABLE
    assert second_call["ConsistentRead"] is True


@pytest.mark.asyncio
async def test_get_item():
    client = MagicMock()
    client.get_item.side_effect = [{"Item": _item("item-1", "K1")}, {}]
    registry = DynamoDBRegistry(client, TABLE)

    record = await registry.get("item-1")

    assert record.external_key_id == "K1"
    assert await registry.get("missing") is None
    assert client.get_item.call_args_list[0].kwargs["Key"] == {"itemID": {"S": "item-1"}}


@pytest.mark.asyncio
async def test_conditional_update_sends_condition_on_expected_key():
    client = MagicMock()
    client.update_item.return_value = {}
    registry = DynamoDBRegistry(client, TABLE)

    result = await registry.conditional_update(
        "item-1",
        "K1",
        external_key_id="K2",
        key_value="value-K2",
        last_rotated_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )

    assert result is UpdateResult.updated
    kwargs = client.update_item.call_args.kwargs
    assert "#kid = :expected_kid" in kwargs["ConditionExpression"]
    assert kwargs["ExpressionAttributeNames"]["#kid"] == "APIGWKeyID"
    assert kwargs["ExpressionAttributeValues"][":expected_kid"] == {"S": "K1"}
    assert kwargs["ExpressionAttributeValues"][":new_kid"] == {"S": "K2"}
    assert kwargs["ExpressionAttributeValues"][":ts"] == {"S": "2026-01-01T00:00:00+00:00"}


@pytest.mark.asyncio
async def test_failed_condition_is_a_conflict():
    client = MagicMock()
    client.update_item.side_effect = _client_error("ConditionalCheckFailedException")
    registry = DynamoDBRegistry(client, TABLE)

    result = await registry.conditional_update(
        "item-1", "K1", external_key_id="K2", key_value="v", last_rotated_at=datetime.now(timezone.utc)
    )

    assert result is UpdateResult.conflict


@pytest.mark.asyncio
async def test_throttling_is_transient():
    client = MagicMock()
    client.update_item.side_effect = _client_error("ProvisionedThroughputExceededException")
    registry = DynamoDBRegistry(client, TABLE)

    with pytest.raises(TransientBackendError):
        await registry.conditional_update(
            "item-1", "K1", external_key_id="K2", key_value="v", last_rotated_at=datetime.now(timezone.utc)
        )


@pytest.mark.asyncio
async def test_connection_error_is_transient():
    client = MagicMock()
    client.scan.side_effect = EndpointConnectionError(endpoint_url="https://dynamodb.test")
    registry = DynamoDBRegistry(client, TABLE)

    with pytest.raises(TransientBackendError):
        await registry.scan_all()


@pytest.mark.asyncio
async def test_missing_table_is_permanent():
    client = MagicMock()
    client.scan.side_effect = _client_error("ResourceNotFoundException", operation="Scan")
    registry = DynamoDBRegistry(client, TABLE)

    with pytest.raises(BackendError) as exc_info:
        await registry.scan_all()
    assert not isinstance(exc_info.value, TransientBackendError)


@pytest.mark.asyncio
async def test_index_lookups():
    client = MagicMock()
    client.query.side_effect = [
        {"Items": [_item("item-1", "K1")]},
        {"Items": [_item("item-1", "K1")], "LastEvaluatedKey": {"itemID": {"S": "item-1"}}},
        {"Items": [_item("item-2", "K2")]},
    ]
    registry = DynamoDBRegistry(client, TABLE)

    found = await registry.find_by_external_key_id("K1")
    by_plan = await registry.list_by_usage_plan("plan-1")

    assert found.item_id == "item-1"
    assert [r.item_id for r in by_plan] == ["item-1", "item-2"]
    calls = client.query.call_args_list
    assert calls[0].kwargs["IndexName"] == EXTERNAL_KEY_INDEX
    assert calls[1].kwargs["IndexName"] == USAGE_PLAN_INDEX
    assert calls[1].kwargs["ExpressionAttributeNames"] == {"#col": "usagePlanID"}
    assert calls[2].kwargs["ExclusiveStartKey"] == {"itemID": {"S": "item-1"}}
