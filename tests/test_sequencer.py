from __future__ import annotations

import pytest

from controlplane.models.tenant import IsolationMode, TenantCreationRequest, TenantEvent
from controlplane.services.entities import TenantParameters
from controlplane.services.sequencer import InProcessSequencer, SequencerError


@pytest.mark.asyncio
async def test_shared_tenant_full_creation(lifecycle, registry, store, notifier) -> None:
    outcome = await lifecycle.create(
        TenantCreationRequest(
            tenant_id="shared-1",
            tenant_name="Shared Co",
            admin_email="owner@shared.test",
            admin_first_name="Sam",
            admin_last_name="Owner",
        )
    )

    assert outcome.succeeded is True, outcome.error
    assert outcome.final_status == "active"
    assert [step.get("status") for step in outcome.steps][:2] == ["active", "READY"]
    assert len(notifier.sent) == 1
    assert registry.values[TenantParameters(tenant_id="shared-1").provisioning_status] == "active"
    assert any(item["email"] == "owner@shared.test" for item in store.of_type("USER"))


@pytest.mark.asyncio
async def test_dedicated_round_trip_after_wait_timeout(lifecycle, provisioner, registry) -> None:
    provisioner.complete_on_wait = False

    outcome = await lifecycle.create(
        TenantCreationRequest(tenant_id="T1", tenant_name="Acme", isolation_mode=IsolationMode.DEDICATED)
    )

    assert outcome.succeeded is True, outcome.error
    register, polled = outcome.steps[:2]
    assert register["status"] == "creating"
    assert polled["status"] == "READY"
    assert polled["resourceName"] == "acme-test-account-T1-table"
    assert outcome.final_status == "active"

    params = TenantParameters(tenant_id="T1")
    assert registry.values[params.resource_name] == "acme-test-account-T1-table"
    assert params.verified_at in registry.values
    statuses = [value for name, value in registry.history if name == params.provisioning_status]
    assert statuses[0] == "creating"
    assert "creating" not in statuses[statuses.index("active"):]


@pytest.mark.asyncio
async def test_failed_stack_fails_the_run(lifecycle, provisioner) -> None:
    provisioner.complete_on_wait = False
    provisioner.statuses = ["CREATE_IN_PROGRESS", "CREATE_FAILED"]

    outcome = await lifecycle.create(TenantCreationRequest(tenant_id="T9", isolation_mode=IsolationMode.DEDICATED))

    assert outcome.succeeded is False
    assert "Infrastructure failed" in (outcome.error or "")


@pytest.mark.asyncio
async def test_poll_budget_is_bounded(lifecycle, provisioner) -> None:
    provisioner.complete_on_wait = False
    provisioner.statuses = ["CREATE_IN_PROGRESS"]

    outcome = await lifecycle.create(TenantCreationRequest(tenant_id="T8", isolation_mode=IsolationMode.DEDICATED))

    assert outcome.succeeded is False
    assert "Timed out" in (outcome.error or "")


@pytest.mark.asyncio
async def test_dedicated_teardown_polls_until_deleted(lifecycle, provisioner, registry) -> None:
    await lifecycle.create(TenantCreationRequest(tenant_id="T7", isolation_mode=IsolationMode.DEDICATED))

    outcome = await lifecycle.teardown(TenantEvent(tenant_id="T7", isolation_mode=IsolationMode.DEDICATED))

    assert outcome.succeeded is True, outcome.error
    assert outcome.final_status == "DELETED"
    assert provisioner.stacks == {}


@pytest.mark.asyncio
async def test_shared_teardown_is_immediate(lifecycle, registry) -> None:
    await lifecycle.create(TenantCreationRequest(tenant_id="S7"))

    outcome = await lifecycle.teardown(TenantEvent(tenant_id="S7"))

    assert outcome.succeeded is True
    assert len(outcome.steps) == 1
    assert registry.values == {}


@pytest.mark.asyncio
async def test_unknown_worker_is_rejected(workers) -> None:
    with pytest.raises(SequencerError):
        await InProcessSequencer(workers).invoke("no-such-worker", {})


@pytest.mark.asyncio
async def test_worker_table_speaks_camel_case(workers) -> None:
    result = await workers["register-or-provision"]({"tenantId": "wire-1", "isolationMode": "shared"})

    assert result["tenantId"] == "wire-1"
    assert result["resourceName"] == "controlplane-dev-shared"
    assert "resource_name" not in result
