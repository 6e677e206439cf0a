from __future__ import annotations

import pytest

from controlplane.models.tenant import InfraStatus, IsolationMode, PollEvent, TenantEvent
from controlplane.services.entities import TenantParameters


@pytest.mark.asyncio
async def test_shared_tenant_maps_registry_status(poller, registry) -> None:
    params = TenantParameters(tenant_id="s1")
    for value, expected in (
        ("creating", InfraStatus.CREATING),
        ("active", InfraStatus.READY),
        ("deleting", InfraStatus.DELETING),
        ("failed", InfraStatus.FAILED),
        ("something-new", InfraStatus.CREATING),
    ):
        registry.values[params.provisioning_status] = value
        result = await poller.poll(PollEvent(tenant_id="s1"))
        assert result.status == expected, value


@pytest.mark.asyncio
async def test_missing_parameter_means_creating_unless_deleting(poller) -> None:
    creating = await poller.poll(PollEvent(tenant_id="s2"))
    assert creating.status == InfraStatus.CREATING

    deleted = await poller.poll(PollEvent(tenant_id="s2", prior_status=InfraStatus.DELETING))
    assert deleted.status == InfraStatus.DELETED


@pytest.mark.asyncio
async def test_dedicated_stack_progresses_to_ready_and_persists_outputs(storage, poller, provisioner, registry) -> None:
    provisioner.complete_on_wait = False
    event = TenantEvent(tenant_id="d1", tenant_name="Acme", isolation_mode=IsolationMode.DEDICATED, execution_id="exec-1")
    await storage.register_or_provision(event)

    first = await poller.poll(PollEvent(**event.model_dump()))
    assert first.status == InfraStatus.CREATING

    second = await poller.poll(PollEvent(**event.model_dump()))
    assert second.status == InfraStatus.READY
    assert second.resource_name == "acme-test-account-d1-table"
    # Pass-through fields survive for the next step.
    assert second.tenant_name == "Acme"
    assert second.execution_id == "exec-1"
    assert second.isolation_mode == IsolationMode.DEDICATED

    params = TenantParameters(tenant_id="d1")
    assert registry.values[params.provisioning_status] == "active"
    assert registry.values[params.resource_name] == "acme-test-account-d1-table"


@pytest.mark.asyncio
async def test_failed_stack_reports_reason(storage, poller, provisioner) -> None:
    provisioner.complete_on_wait = False
    provisioner.statuses = ["CREATE_IN_PROGRESS", "ROLLBACK_COMPLETE"]
    provisioner.reason = "Table limit exceeded"
    await storage.register_or_provision(TenantEvent(tenant_id="d2", isolation_mode=IsolationMode.DEDICATED))

    await poller.poll(PollEvent(tenant_id="d2", isolation_mode=IsolationMode.DEDICATED))
    failed = await poller.poll(PollEvent(tenant_id="d2", isolation_mode=IsolationMode.DEDICATED))

    assert failed.status == InfraStatus.FAILED
    assert "Table limit exceeded" in failed.detail


@pytest.mark.asyncio
async def test_missing_stack_is_deleted(poller) -> None:
    result = await poller.poll(PollEvent(tenant_id="d3", isolation_mode=IsolationMode.DEDICATED))
    assert result.status == InfraStatus.DELETED
