from __future__ import annotations

import asyncio

import pytest
from botocore.exceptions import ClientError

from controlplane.models.tenant import InfraStatus, IsolationMode, ProvisioningStatus, TenantEvent
from controlplane.services.cloudformation_service import CloudFormationServiceError, StackOperationError
from controlplane.services.entities import TenantParameters
from controlplane.services.interfaces import StackDescription
from controlplane.services.setup.storage_provisioning_service import StorageProvisioningService
from tests.fakes import FakeProvisioner


def _params(tenant_id: str) -> TenantParameters:
    return TenantParameters(tenant_id=tenant_id)


@pytest.mark.asyncio
async def test_shared_tenant_only_writes_registry(storage, registry, provisioner, config) -> None:
    result = await storage.register_or_provision(TenantEvent(tenant_id="t-shared", tenant_name="Shared Co"))

    assert result.status == ProvisioningStatus.ACTIVE
    assert result.resource_name == config.table_name
    params = _params("t-shared")
    assert registry.values == {
        params.isolation_mode: "shared",
        params.resource_name: config.table_name,
        params.provisioning_status: "active",
    }
    assert provisioner.created == []


@pytest.mark.asyncio
async def test_dedicated_tenant_creates_stack_and_records_outputs(storage, registry, provisioner, metrics, config) -> None:
    result = await storage.register_or_provision(
        TenantEvent(tenant_id="T1", tenant_name="Acme", isolation_mode=IsolationMode.DEDICATED)
    )

    assert result.status == ProvisioningStatus.ACTIVE
    assert result.resource_name == "acme-test-account-T1-table"
    assert result.stream_arn and result.stream_arn.endswith("/stream/1")
    assert result.stack_id

    created = provisioner.created[0]
    assert created["stack_name"] == "acme-test-account-T1"
    assert created["parameters"]["AccountName"] == "Acme"
    assert created["tags"]["ManagedBy"] == "acme"
    assert (config.template_bucket, config.template_key) in provisioner.templates

    params = _params("T1")
    assert registry.values[params.isolation_mode] == "dedicated"
    assert registry.values[params.resource_name] == "acme-test-account-T1-table"
    assert registry.values[params.resource_arn].endswith("table/acme-test-account-T1-table")
    assert registry.values[params.provisioning_status] == "active"
    # Status only ever moves forward: creating before active.
    statuses = [value for name, value in registry.history if name == params.provisioning_status]
    assert statuses == ["creating", "active"]
    assert "WorkerSuccess" in metrics.names("register-or-provision")


@pytest.mark.asyncio
async def test_dedicated_wait_timeout_returns_creating(storage, registry, provisioner) -> None:
    provisioner.complete_on_wait = False

    result = await storage.register_or_provision(
        TenantEvent(tenant_id="T2", tenant_name="Slow", isolation_mode=IsolationMode.DEDICATED)
    )

    assert result.status == ProvisioningStatus.CREATING
    assert result.stack_id
    assert registry.values[_params("T2").provisioning_status] == "creating"
    assert _params("T2").resource_name not in registry.values


@pytest.mark.asyncio
async def test_transient_create_errors_are_retried(storage, provisioner) -> None:
    provisioner.create_errors = [
        ClientError({"Error": {"Code": "ThrottlingException", "Message": "slow down"}}, "CreateStack"),
    ]

    result = await storage.register_or_provision(
        TenantEvent(tenant_id="T3", isolation_mode=IsolationMode.DEDICATED)
    )

    assert result.status == ProvisioningStatus.ACTIVE
    assert len(provisioner.created) == 1


@pytest.mark.asyncio
async def test_missing_table_output_is_an_error(storage, provisioner, metrics) -> None:
    provisioner.statuses = ["CREATE_COMPLETE"]
    original_describe = provisioner.describe_stack

    async def describe_without_outputs(stack_name: str):
        description = await original_describe(stack_name)
        if description is None:
            return None
        return StackDescription(stack_name=description.stack_name, status=description.status)

    provisioner.describe_stack = describe_without_outputs

    with pytest.raises(CloudFormationServiceError):
        await storage.register_or_provision(TenantEvent(tenant_id="T4", isolation_mode=IsolationMode.DEDICATED))
    assert "WorkerFailure" in metrics.names("register-or-provision")


@pytest.mark.asyncio
async def test_delete_shared_tenant_removes_parameters(storage, registry) -> None:
    await storage.register_or_provision(TenantEvent(tenant_id="t-gone"))

    result = await storage.delete_infra(TenantEvent(tenant_id="t-gone"))

    assert result.status == InfraStatus.DELETED
    assert registry.values == {}


@pytest.mark.asyncio
async def test_delete_shared_tenant_twice_is_harmless(storage, registry) -> None:
    first = await storage.delete_infra(TenantEvent(tenant_id="never-registered"))
    assert first.status == InfraStatus.DELETED
    assert first.detail == "Removed 0 registry parameters"


@pytest.mark.asyncio
async def test_delete_dedicated_tenant_starts_stack_deletion(storage, registry, provisioner) -> None:
    event = TenantEvent(tenant_id="T5", isolation_mode=IsolationMode.DEDICATED)
    await storage.register_or_provision(event)

    result = await storage.delete_infra(event)

    assert result.status == InfraStatus.DELETING
    assert provisioner.deleted == ["acme-test-account-T5"]
    assert registry.values[_params("T5").provisioning_status] == "deleting"


@pytest.mark.asyncio
async def test_delete_dedicated_tenant_without_stack_is_deleted(registry, metrics, config) -> None:
    service = StorageProvisioningService(
        registry=registry, provisioner=FakeProvisioner(), metrics=metrics, config=config
    )

    result = await service.delete_infra(TenantEvent(tenant_id="T6", isolation_mode=IsolationMode.DEDICATED))

    assert result.status == InfraStatus.DELETED
    assert registry.values[_params("T6").provisioning_status] == "deleted"


@pytest.mark.asyncio
async def test_dedicated_rerun_adopts_the_existing_stack(storage, registry, provisioner) -> None:
    event = TenantEvent(tenant_id="T1", tenant_name="Acme", isolation_mode=IsolationMode.DEDICATED)
    first = await storage.register_or_provision(event)

    second = await storage.register_or_provision(event)

    assert second.status == ProvisioningStatus.ACTIVE
    assert second.already_existed is True
    assert not first.already_existed
    assert second.resource_name == first.resource_name
    assert len(provisioner.created) == 1

    params = _params("T1")
    assert registry.values[params.provisioning_status] == "active"
    statuses = [value for name, value in registry.history if name == params.provisioning_status]
    assert "creating" not in statuses[statuses.index("active"):]


@pytest.mark.asyncio
async def test_dedicated_rerun_while_stack_is_creating_hands_over_to_polling(storage, registry, provisioner) -> None:
    provisioner.complete_on_wait = False
    provisioner.statuses = ["CREATE_IN_PROGRESS", "CREATE_IN_PROGRESS", "CREATE_COMPLETE"]
    event = TenantEvent(tenant_id="T2", isolation_mode=IsolationMode.DEDICATED)
    await storage.register_or_provision(event)

    second = await storage.register_or_provision(event)

    assert second.status == ProvisioningStatus.CREATING
    assert second.already_existed is True
    assert len(provisioner.created) == 1
    assert registry.values[_params("T2").provisioning_status] == "creating"


@pytest.mark.asyncio
async def test_concurrent_dedicated_calls_create_one_stack(storage, registry, provisioner) -> None:
    event = TenantEvent(tenant_id="T3", isolation_mode=IsolationMode.DEDICATED)

    results = await asyncio.gather(storage.register_or_provision(event), storage.register_or_provision(event))

    assert [result.status for result in results] == [ProvisioningStatus.ACTIVE, ProvisioningStatus.ACTIVE]
    assert len(provisioner.created) == 1
    assert registry.values[_params("T3").provisioning_status] == "active"


@pytest.mark.asyncio
async def test_rerun_against_a_failed_stack_is_an_error(storage, provisioner) -> None:
    provisioner.complete_on_wait = False
    provisioner.statuses = ["ROLLBACK_COMPLETE"]
    event = TenantEvent(tenant_id="T4", isolation_mode=IsolationMode.DEDICATED)
    await storage.register_or_provision(event)

    with pytest.raises(StackOperationError):
        await storage.register_or_provision(event)
    assert len(provisioner.created) == 1
