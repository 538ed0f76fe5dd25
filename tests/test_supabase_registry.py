from datetime import datetime, timezone

import httpx
import pytest
from postgrest.exceptions import APIError

from keyrotation.errors import BackendError, RecordValidationError, TransientBackendError
from keyrotation.models.records import MalformedRecord
from keyrotation.registry.base import UpdateResult
from keyrotation.registry.supabase_registry import SupabaseRegistry
from tests.supabase_stub import SupabaseStub

TABLE = "api_keys"


def _row(item_id, key_id, plan="plan-1", ts="2025-11-01T00:00:00+00:00"):
    return {
        "item_id": item_id,
        "external_key_id": key_id,
        "key_value": f"value-{key_id}",
        "usage_plan_id": plan,
        "last_rotated_at": ts,
    }


@pytest.fixture()
def stub():
    return SupabaseStub(
        {
            TABLE: [
                _row("item-1", "K1"),
                _row("item-2", "K2", plan="plan-2"),
                _row("item-3", "K3"),
            ]
        }
    )


@pytest.mark.asyncio
async def test_scan_pages_through_table(stub):
    stub.tables[TABLE].extend([_row("item-4", "K4"), _row("item-5", "K5")])
    registry = SupabaseRegistry(stub, TABLE, page_size=2)

    rows = await registry.scan_all()

    assert [r.item_id for r in rows] == ["item-1", "item-2", "item-3", "item-4", "item-5"]
    assert [q.bounds for q in stub.executed] == [(0, 1), (2, 3), (4, 5), (5, 6)]


@pytest.mark.asyncio
async def test_scan_survives_server_row_cap(stub):
    stub.tables[TABLE].extend([_row("item-4", "K4"), _row("item-5", "K5")])
    stub.response_cap = 2
    registry = SupabaseRegistry(stub, TABLE, page_size=3)

    rows = await registry.scan_all()

    assert [r.item_id for r in rows] == ["item-1", "item-2", "item-3", "item-4", "item-5"]
    assert [q.bounds[0] for q in stub.executed] == [0, 2, 4, 5]


@pytest.mark.asyncio
async def test_scan_reports_malformed_rows(stub):
    stub.tables[TABLE].append({"item_id": "broken", "external_key_id": "K9"})
    registry = SupabaseRegistry(stub, TABLE)

    rows = await registry.scan_all()

    malformed = [r for r in rows if isinstance(r, MalformedRecord)]
    assert len(rows) == 4
    assert len(malformed) == 1
    assert malformed[0].item_id == "broken"
    assert malformed[0].external_key_id == "K9"


@pytest.mark.asyncio
async def test_get(stub):
    registry = SupabaseRegistry(stub, TABLE)

    record = await registry.get("item-2")

    assert record.external_key_id == "K2"
    assert await registry.get("missing") is None


@pytest.mark.asyncio
async def test_get_malformed_row_raises(stub):
    stub.tables[TABLE].append({"item_id": "broken"})
    registry = SupabaseRegistry(stub, TABLE)

    with pytest.raises(RecordValidationError):
        await registry.get("broken")


@pytest.mark.asyncio
async def test_conditional_update_applies_when_key_matches(stub):
    registry = SupabaseRegistry(stub, TABLE)
    rotated_at = datetime(2026, 1, 1, tzinfo=timezone.utc)

    result = await registry.conditional_update(
        "item-1", "K1", external_key_id="K1b", key_value="value-K1b", last_rotated_at=rotated_at
    )

    assert result is UpdateResult.updated
    row = stub.tables[TABLE][0]
    assert row["external_key_id"] == "K1b"
    assert row["key_value"] == "value-K1b"
    assert row["last_rotated_at"] == "2026-01-01T00:00:00+00:00"


@pytest.mark.asyncio
async def test_conditional_update_conflicts_on_stale_expectation(stub):
    registry = SupabaseRegistry(stub, TABLE)

    result = await registry.conditional_update(
        "item-1", "K-old", external_key_id="K1b", key_value="v", last_rotated_at=datetime.now(timezone.utc)
    )

    assert result is UpdateResult.conflict
    assert stub.tables[TABLE][0]["external_key_id"] == "K1"


@pytest.mark.asyncio
async def test_conditional_update_conflicts_on_missing_item(stub):
    registry = SupabaseRegistry(stub, TABLE)

    result = await registry.conditional_update(
        "ghost", "K1", external_key_id="K1b", key_value="v", last_rotated_at=datetime.now(timezone.utc)
    )

    assert result is UpdateResult.conflict


@pytest.mark.asyncio
async def test_secondary_lookups(stub):
    registry = SupabaseRegistry(stub, TABLE)

    found = await registry.find_by_external_key_id("K3")
    by_plan = await registry.list_by_usage_plan("plan-1")

    assert found.item_id == "item-3"
    assert await registry.find_by_external_key_id("nope") is None
    assert sorted(r.item_id for r in by_plan) == ["item-1", "item-3"]


@pytest.mark.asyncio
async def test_transport_error_is_transient(stub):
    stub.fail_with = httpx.ConnectError("connection refused")
    registry = SupabaseRegistry(stub, TABLE)

    with pytest.raises(TransientBackendError):
        await registry.scan_all()


@pytest.mark.asyncio
async def test_api_error_is_permanent(stub):
    stub.fail_with = APIError({"message": "relation does not exist", "code": "42P01", "hint": None, "details": None})
    registry = SupabaseRegistry(stub, TABLE)

    with pytest.raises(BackendError) as exc_info:
        await registry.get("item-1")
    assert not isinstance(exc_info.value, TransientBackendError)
