from datetime import timedelta

import pytest
from fastapi import status
from starlette.testclient import TestClient

from keyrotation.errors import BackendError
from keyrotation.main import create_app, limiter
from keyrotation.reconciler import Reconciler
from keyrotation.settings import Settings
from keyrotation.sweeper import Sweeper
from keyrotation.utils.auth import get_settings
from keyrotation.utils.dependencies import RotationServices, get_rotation_services
from tests.conftest import FAST_RETRY
from tests.fakes import seed

SECRET = "cron-s3cret"
AUTH = {"Authorization": f"Bearer {SECRET}"}


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    limiter.reset()
    yield
    limiter.reset()


@pytest.fixture()
def settings() -> Settings:
    return Settings(table_identity="api_keys", cron_secret=SECRET)


@pytest.fixture()
def services(settings, registry, issuer, rotator, clock) -> RotationServices:
    return RotationServices(
        settings=settings,
        registry=registry,
        issuer=issuer,
        rotator=rotator,
        sweeper=Sweeper(registry, rotator, retry_policy=FAST_RETRY, clock=clock),
        reconciler=Reconciler(registry, issuer, retry_policy=FAST_RETRY, clock=clock),
    )


@pytest.fixture()
def api_client(settings, services) -> TestClient:
    app = create_app()
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_rotation_services] = lambda: services
    return TestClient(app)


def test_health(api_client):
    resp = api_client.get("/")
    assert resp.status_code == status.HTTP_200_OK
    assert resp.json() == {"status": "ok"}


def test_missing_bearer_is_rejected(api_client):
    resp = api_client.post("/v1/cron/sweep")
    assert resp.status_code == status.HTTP_401_UNAUTHORIZED


def test_wrong_secret_is_rejected(api_client):
    resp = api_client.post("/v1/cron/sweep", headers={"Authorization": "Bearer nope"})
    assert resp.status_code == status.HTTP_401_UNAUTHORIZED


def test_unconfigured_secret_disables_endpoints(api_client):
    api_client.app.dependency_overrides[get_settings] = lambda: Settings(table_identity="api_keys")
    resp = api_client.post("/v1/cron/sweep", headers=AUTH)
    assert resp.status_code == status.HTTP_503_SERVICE_UNAVAILABLE


def test_dispatch_rotation(api_client, registry, issuer):
    seed(registry, issuer, "item-1", key_id="K1", age=timedelta(days=40))

    resp = api_client.post(
        "/v1/rotations",
        json={"itemID": "item-1", "externalKeyID": "K1", "usagePlanID": "plan-1"},
        headers=AUTH,
    )

    assert resp.status_code == status.HTTP_200_OK
    body = resp.json()
    assert body["status"] == "rotated"
    assert body["new_external_key_id"] == registry.records["item-1"].external_key_id
    assert "secret-" not in str(body)


def test_dispatch_accepts_legacy_key_field(api_client, registry, issuer):
    seed(registry, issuer, "item-1", key_id="K1", age=timedelta(days=40))

    resp = api_client.post(
        "/v1/rotations",
        json={"itemID": "item-1", "APIGWKeyID": "K1", "usagePlanID": "plan-1"},
        headers=AUTH,
    )

    assert resp.json()["status"] == "rotated"


def test_dispatch_same_message_twice_is_skipped(api_client, registry, issuer):
    seed(registry, issuer, "item-1", key_id="K1", age=timedelta(days=40))
    payload = {"itemID": "item-1", "externalKeyID": "K1", "usagePlanID": "plan-1"}

    first = api_client.post("/v1/rotations", json=payload, headers=AUTH)
    second = api_client.post("/v1/rotations", json=payload, headers=AUTH)

    assert first.json()["status"] == "rotated"
    assert second.json()["status"] == "skipped"
    assert len(issuer.created) == 1


@pytest.mark.parametrize(
    "payload",
    [
        {"externalKeyID": "K1", "usagePlanID": "plan-1"},
        {"itemID": "item-1", "externalKeyID": "", "usagePlanID": "plan-1"},
        {"itemID": "item-1", "externalKeyID": "K1", "usagePlanID": "   "},
    ],
)
def test_dispatch_rejects_incomplete_message(api_client, issuer, payload):
    resp = api_client.post("/v1/rotations", json=payload, headers=AUTH)
    assert resp.status_code == 422
    assert issuer.created == []


def test_sweep_endpoint_reports_counts(api_client, registry, issuer):
    seed(registry, issuer, "old", age=timedelta(days=40))
    seed(registry, issuer, "new", age=timedelta(days=2))

    resp = api_client.post("/v1/cron/sweep", headers=AUTH)

    assert resp.status_code == status.HTTP_200_OK
    body = resp.json()
    assert body["scanned"] == 2
    assert body["stale"] == 1
    assert body["fresh"] == 1
    assert body["rotated"] == 1
    assert body["outcomes"][0]["item_id"] == "old"


def test_sweep_threshold_override(api_client, registry, issuer):
    seed(registry, issuer, "new", age=timedelta(days=2))

    resp = api_client.post("/v1/cron/sweep", json={"stale_threshold_days": 1}, headers=AUTH)

    assert resp.json()["rotated"] == 1


def test_sweep_scan_failure_is_bad_gateway(api_client, registry):
    registry.scan_error = BackendError("registry unavailable")

    resp = api_client.post("/v1/cron/sweep", headers=AUTH)

    assert resp.status_code == status.HTTP_502_BAD_GATEWAY
    assert resp.json()["detail"] == "registry_scan_failed"


def test_reconcile_endpoint(api_client, registry, issuer):
    seed(registry, issuer, "item-1", key_id="K1", age=timedelta(days=3))

    resp = api_client.post("/v1/cron/reconcile", headers=AUTH)

    assert resp.status_code == status.HTTP_200_OK
    assert resp.json()["referenced"] == 1
    assert resp.json()["revoked"] == 0


def test_reconcile_listing_failure_is_bad_gateway(api_client, issuer):
    issuer.list_error = BackendError("forbidden")

    resp = api_client.post("/v1/cron/reconcile", headers=AUTH)

    assert resp.status_code == status.HTTP_502_BAD_GATEWAY
