from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from controlplane.main import app
from controlplane.services.bootstrap.expectations import ReconcileContext
from controlplane.services.bootstrap.reconciler import BootstrapReconciler
from controlplane.services.bootstrap.seed import day0_categories
from controlplane.services.dependencies import get_bootstrap_reconciler_for_request, get_worker_table
from controlplane.services.dynamodb_service import DynamoDBServiceError
from tests.fakes import FakeRegistry, FakeStore


@pytest.fixture
async def client(workers):
    store, registry = FakeStore(), FakeRegistry()
    app.dependency_overrides[get_worker_table] = lambda: workers
    app.dependency_overrides[get_bootstrap_reconciler_for_request] = lambda: BootstrapReconciler(
        categories=day0_categories(table_name="controlplane-dev-shared"),
        context=ReconcileContext(store=store, registry=registry),
    )
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_invoke_worker_by_name(client) -> None:
    response = await client.post("/workers/register-or-provision", json={"tenantId": "api-1"})

    assert response.status_code == 200
    assert response.json()["status"] == "active"


@pytest.mark.asyncio
async def test_unknown_worker_is_404(client) -> None:
    response = await client.post("/workers/make-coffee", json={})

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_invalid_worker_payload_is_422(client) -> None:
    response = await client.post("/workers/poll-status", json={"isolationMode": "shared"})

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_provider_errors_map_to_502(client, workers) -> None:
    async def broken(payload):
        raise DynamoDBServiceError("Failed to query index GSI1")

    workers["setup-access-control"] = broken

    response = await client.post("/workers/setup-access-control", json={"tenantId": "api-2"})

    assert response.status_code == 502
    assert response.json() == {"detail": "Failed to query index GSI1"}


@pytest.mark.asyncio
async def test_bootstrap_verify_then_fix(client) -> None:
    before = await client.get("/bootstrap/verify")
    assert before.status_code == 200
    assert before.json()["summary"]["failed"] > 0
    assert before.json()["fixMode"] is False

    fixed = await client.post("/bootstrap/fix")
    assert fixed.status_code == 200
    assert fixed.json()["summary"]["failed"] == 0
    assert fixed.json()["summary"]["fixed"] > 0
