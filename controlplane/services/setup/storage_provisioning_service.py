from __future__ import annotations

import logging
import time
from typing import Optional

from controlplane.models.tenant import (
    InfraStatus,
    IsolationMode,
    PollResult,
    ProvisioningStatus,
    ProvisionResult,
    TenantEvent,
)
from controlplane.services.cloudformation_service import (
    CloudFormationServiceError,
    StackAlreadyExistsError,
    StackOperationError,
)
from controlplane.services.config import ProvisioningConfig
from controlplane.services.entities import TenantParameters
from controlplane.services.interfaces import MetricsEmitter, ParameterRegistry, StackDescription, StackProvisioner
from controlplane.services.metrics_service import record_outcome
from controlplane.services.retry import RetryPolicy, retry_async
from controlplane.services.stack_template import DEDICATED_TABLE_TEMPLATE

logger = logging.getLogger(__name__)


class StorageProvisioningService:
    """Creates (or registers) and tears down per-tenant storage.

    - `shared` tenants live in the control-plane table: only registry entries are written.
    - `dedicated` tenants get their own table through a CloudFormation stack created from
      the embedded template.

    The wait on stack creation is bounded by `ProvisioningConfig.stack_wait_seconds`. When
    it elapses, the call returns `creating` and the poll worker takes over.

    Re-running for a tenant whose stack already exists adopts that stack instead of
    creating another one, so the registry status never moves backwards.
    """

    PROVISION_WORKER = "register-or-provision"
    DELETE_WORKER = "delete-infra"

    def __init__(
        self,
        *,
        registry: ParameterRegistry,
        provisioner: StackProvisioner,
        metrics: MetricsEmitter,
        config: ProvisioningConfig,
        create_retry: Optional[RetryPolicy] = None,
        describe_retry: Optional[RetryPolicy] = None,
    ) -> None:
        self._registry = registry
        self._provisioner = provisioner
        self._metrics = metrics
        self._config = config
        self._create_retry = create_retry or RetryPolicy(max_attempts=3, base_delay_seconds=2.0)
        self._describe_retry = describe_retry or RetryPolicy(max_attempts=3, base_delay_seconds=1.0)

    def _params(self, tenant_id: str) -> TenantParameters:
        return TenantParameters(tenant_id=tenant_id, prefix=self._config.registry_prefix)

    async def register_or_provision(self, event: TenantEvent) -> ProvisionResult:
        started = time.monotonic()
        action = event.isolation_mode.value
        logger.info(
            "Provisioning storage (tenant=%s, mode=%s, execution=%s)",
            event.tenant_id,
            action,
            event.execution_id,
        )
        try:
            if event.isolation_mode == IsolationMode.SHARED:
                result = await self._register_shared(event)
            else:
                result = await self._provision_dedicated(event)
        except Exception:
            await record_outcome(
                self._metrics,
                self.PROVISION_WORKER,
                success=False,
                duration_ms=(time.monotonic() - started) * 1000,
                action=action,
            )
            raise

        await record_outcome(
            self._metrics,
            self.PROVISION_WORKER,
            success=True,
            duration_ms=(time.monotonic() - started) * 1000,
            action=action,
        )
        return result

    async def _register_shared(self, event: TenantEvent) -> ProvisionResult:
        params = self._params(event.tenant_id)
        await self._registry.put(params.isolation_mode, IsolationMode.SHARED.value)
        await self._registry.put(params.resource_name, self._config.table_name)
        await self._registry.put(params.provisioning_status, ProvisioningStatus.ACTIVE.value)

        logger.info("Registered shared tenant %s on table %s", event.tenant_id, self._config.table_name)
        return ProvisionResult(
            tenant_id=event.tenant_id,
            status=ProvisioningStatus.ACTIVE,
            resource_name=self._config.table_name,
        )

    async def _provision_dedicated(self, event: TenantEvent) -> ProvisionResult:
        params = self._params(event.tenant_id)
        stack_name = self._config.stack_name(event.tenant_id)

        existing = await self._describe(stack_name)
        if existing is not None and existing.infra_status != InfraStatus.DELETED:
            return await self._adopt_existing(event, existing)

        template_url = await self._provisioner.ensure_template(
            bucket=self._config.template_bucket,
            key=self._config.template_key,
            body=DEDICATED_TABLE_TEMPLATE,
        )

        await self._registry.put(params.isolation_mode, IsolationMode.DEDICATED.value)
        await self._registry.put(params.provisioning_status, ProvisioningStatus.CREATING.value)

        stack_id: Optional[str]
        try:
            stack_id = await retry_async(
                lambda: self._provisioner.create_stack(
                    stack_name=stack_name,
                    template_url=template_url,
                    parameters={
                        "AccountId": event.tenant_id,
                        "AccountName": event.tenant_name or event.tenant_id,
                        "Environment": self._config.environment,
                        "ProjectName": self._config.project_name,
                        "BillingMode": self._config.billing_mode,
                    },
                    tags={
                        "AccountId": event.tenant_id,
                        "AccountName": event.tenant_name or event.tenant_id,
                        "Environment": self._config.environment,
                        "ManagedBy": self._config.project_name,
                    },
                ),
                policy=self._create_retry,
                label=f"create_stack({stack_name})",
            )
            logger.info("Stack create issued (stack=%s, id=%s)", stack_name, stack_id)
        except StackAlreadyExistsError:
            # A concurrent invocation created it between our describe and create.
            logger.info("Stack %s was created concurrently; waiting on the existing stack", stack_name)
            stack_id = None

        completed = await self._provisioner.wait_for_create(
            stack_name=stack_name,
            max_wait_seconds=self._config.stack_wait_seconds,
        )
        if not completed:
            logger.info("Stack %s still creating after %.0fs; handing over to poll-status", stack_name, self._config.stack_wait_seconds)
            return ProvisionResult(tenant_id=event.tenant_id, status=ProvisioningStatus.CREATING, stack_id=stack_id)

        description = await self._describe(stack_name)
        if description is None:
            raise StackOperationError(f"Stack disappeared after creation: {stack_name}")
        return await self._record_outputs(event, description, stack_id=stack_id)

    async def _adopt_existing(self, event: TenantEvent, description: StackDescription) -> ProvisionResult:
        params = self._params(event.tenant_id)
        state = description.infra_status

        if state == InfraStatus.READY:
            logger.info("Stack %s already complete; reusing its outputs", description.stack_name)
            await self._registry.put(params.isolation_mode, IsolationMode.DEDICATED.value)
            return await self._record_outputs(event, description, stack_id=description.stack_id, already_existed=True)

        if state == InfraStatus.CREATING:
            logger.info("Stack %s already creating; handing over to poll-status", description.stack_name)
            await self._registry.put(params.isolation_mode, IsolationMode.DEDICATED.value)
            await self._registry.put(params.provisioning_status, ProvisioningStatus.CREATING.value)
            return ProvisionResult(
                tenant_id=event.tenant_id,
                status=ProvisioningStatus.CREATING,
                stack_id=description.stack_id,
                already_existed=True,
            )

        raise StackOperationError(
            f"Stack {description.stack_name} exists in status {description.status} and cannot be provisioned "
            f"(reason={description.reason or 'n/a'})"
        )

    async def _describe(self, stack_name: str) -> Optional[StackDescription]:
        return await retry_async(
            lambda: self._provisioner.describe_stack(stack_name),
            policy=self._describe_retry,
            label=f"describe_stack({stack_name})",
        )

    async def _record_outputs(
        self,
        event: TenantEvent,
        description: StackDescription,
        *,
        stack_id: Optional[str],
        already_existed: bool = False,
    ) -> ProvisionResult:
        params = self._params(event.tenant_id)
        table_name = description.outputs.get("TableName")
        if not table_name:
            raise CloudFormationServiceError(f"Stack created but TableName output not found: {description.stack_name}")

        table_arn = description.outputs.get("TableArn")
        await self._registry.put(params.resource_name, table_name)
        if table_arn:
            await self._registry.put(params.resource_arn, table_arn)
        await self._registry.put(params.provisioning_status, ProvisioningStatus.ACTIVE.value)

        logger.info("Dedicated table ready (tenant=%s, table=%s)", event.tenant_id, table_name)
        return ProvisionResult(
            tenant_id=event.tenant_id,
            status=ProvisioningStatus.ACTIVE,
            resource_name=table_name,
            resource_arn=table_arn,
            stream_arn=description.outputs.get("TableStreamArn"),
            stack_id=stack_id or description.stack_id,
            already_existed=already_existed,
        )

    # -----------------
    # Teardown
    # -----------------

    async def delete_infra(self, event: TenantEvent) -> PollResult:
        """Inverse of `register_or_provision`. Absent resources count as already deleted."""

        started = time.monotonic()
        action = event.isolation_mode.value
        try:
            if event.isolation_mode == IsolationMode.SHARED:
                status, detail = await self._deregister_shared(event)
            else:
                status, detail = await self._delete_dedicated(event)
        except Exception:
            await record_outcome(
                self._metrics,
                self.DELETE_WORKER,
                success=False,
                duration_ms=(time.monotonic() - started) * 1000,
                action=action,
            )
            raise

        await record_outcome(
            self._metrics,
            self.DELETE_WORKER,
            success=True,
            duration_ms=(time.monotonic() - started) * 1000,
            action=action,
        )
        return PollResult(
            tenant_id=event.tenant_id,
            status=status,
            detail=detail,
            tenant_name=event.tenant_name,
            isolation_mode=event.isolation_mode,
            execution_id=event.execution_id,
        )

    async def _deregister_shared(self, event: TenantEvent) -> tuple[InfraStatus, str]:
        removed = 0
        for name in self._params(event.tenant_id).all():
            if await self._registry.delete(name):
                removed += 1
        logger.info("Deregistered shared tenant %s (%d parameters removed)", event.tenant_id, removed)
        return InfraStatus.DELETED, f"Removed {removed} registry parameters"

    async def _delete_dedicated(self, event: TenantEvent) -> tuple[InfraStatus, str]:
        params = self._params(event.tenant_id)
        stack_name = self._config.stack_name(event.tenant_id)
        await self._registry.put(params.provisioning_status, ProvisioningStatus.DELETING.value)

        description = await self._describe(stack_name)
        if description is None or description.infra_status == InfraStatus.DELETED:
            await self._registry.put(params.provisioning_status, ProvisioningStatus.DELETED.value)
            return InfraStatus.DELETED, f"Stack {stack_name} does not exist"

        await retry_async(
            lambda: self._provisioner.delete_stack(stack_name),
            policy=self._create_retry,
            label=f"delete_stack({stack_name})",
        )
        logger.info("Stack delete issued (stack=%s)", stack_name)
        return InfraStatus.DELETING, f"Stack {stack_name} deletion started"
