from __future__ import annotations

import logging
import time
from typing import Optional

from controlplane.models.tenant import InfraStatus, IsolationMode, PollEvent, PollResult, ProvisioningStatus
from controlplane.services.config import ProvisioningConfig
from controlplane.services.entities import TenantParameters
from controlplane.services.interfaces import MetricsEmitter, ParameterRegistry, StackProvisioner
from controlplane.services.metrics_service import record_outcome
from controlplane.services.retry import RetryPolicy, retry_async

logger = logging.getLogger(__name__)

_REGISTRY_STATUS_MAP: dict[str, InfraStatus] = {
    ProvisioningStatus.ACTIVE.value: InfraStatus.READY,
    ProvisioningStatus.CREATING.value: InfraStatus.CREATING,
    ProvisioningStatus.DELETING.value: InfraStatus.DELETING,
    ProvisioningStatus.DELETED.value: InfraStatus.DELETED,
    ProvisioningStatus.FAILED.value: InfraStatus.FAILED,
}


class StatusPollService:
    """One status check per call; the sequencer owns the wait-then-poll loop."""

    WORKER = "poll-status"

    def __init__(
        self,
        *,
        registry: ParameterRegistry,
        provisioner: StackProvisioner,
        metrics: MetricsEmitter,
        config: ProvisioningConfig,
        describe_retry: Optional[RetryPolicy] = None,
    ) -> None:
        self._registry = registry
        self._provisioner = provisioner
        self._metrics = metrics
        self._config = config
        self._describe_retry = describe_retry or RetryPolicy(max_attempts=2, base_delay_seconds=1.0)

    async def poll(self, event: PollEvent) -> PollResult:
        started = time.monotonic()
        try:
            if event.isolation_mode == IsolationMode.DEDICATED:
                result = await self._poll_stack(event)
            else:
                result = await self._poll_registry(event)
        except Exception:
            logger.exception("Status poll failed (tenant=%s, execution=%s)", event.tenant_id, event.execution_id)
            await record_outcome(
                self._metrics,
                self.WORKER,
                success=False,
                duration_ms=(time.monotonic() - started) * 1000,
                action=event.isolation_mode.value,
            )
            raise

        await record_outcome(
            self._metrics,
            self.WORKER,
            success=True,
            duration_ms=(time.monotonic() - started) * 1000,
            action=event.isolation_mode.value,
        )
        # Pass-through fields let the sequencer feed this result straight into the next step.
        return result.model_copy(
            update={
                "tenant_name": event.tenant_name,
                "isolation_mode": event.isolation_mode,
                "execution_id": event.execution_id,
            }
        )

    async def _poll_registry(self, event: PollEvent) -> PollResult:
        params = TenantParameters(tenant_id=event.tenant_id, prefix=self._config.registry_prefix)
        value = await self._registry.get(params.provisioning_status)

        if value is None:
            # A missing parameter during delete means cleanup already finished.
            if event.prior_status == InfraStatus.DELETING:
                return PollResult(tenant_id=event.tenant_id, status=InfraStatus.DELETED, detail="Registry parameters already removed")
            return PollResult(tenant_id=event.tenant_id, status=InfraStatus.CREATING, detail="Registry parameter not yet created")

        status = _REGISTRY_STATUS_MAP.get(value, InfraStatus.CREATING)
        logger.info("Shared tenant %s registry status: %s -> %s", event.tenant_id, value, status.value)
        return PollResult(tenant_id=event.tenant_id, status=status, detail=f"provisioning-status: {value}")

    async def _poll_stack(self, event: PollEvent) -> PollResult:
        stack_name = self._config.stack_name(event.tenant_id)
        description = await retry_async(
            lambda: self._provisioner.describe_stack(stack_name),
            policy=self._describe_retry,
            label=f"describe_stack({stack_name})",
        )

        if description is None:
            return PollResult(tenant_id=event.tenant_id, status=InfraStatus.DELETED, detail="Stack not found (already deleted)")

        state = description.infra_status
        logger.info("Stack %s status: %s -> %s", stack_name, description.status, state.value)

        if state == InfraStatus.READY:
            table_name = description.outputs.get("TableName")
            table_arn = description.outputs.get("TableArn")
            if table_name:
                params = TenantParameters(tenant_id=event.tenant_id, prefix=self._config.registry_prefix)
                await self._registry.put(params.resource_name, table_name)
                if table_arn:
                    await self._registry.put(params.resource_arn, table_arn)
                await self._registry.put(params.provisioning_status, ProvisioningStatus.ACTIVE.value)
            return PollResult(
                tenant_id=event.tenant_id,
                status=state,
                detail=f"Stack complete: {description.status}",
                resource_name=table_name,
                resource_arn=table_arn,
            )

        if state == InfraStatus.FAILED:
            reason = description.reason or "Unknown failure"
            return PollResult(
                tenant_id=event.tenant_id,
                status=state,
                detail=f"Stack failed: {description.status}: {reason}",
            )

        if state == InfraStatus.DELETED:
            return PollResult(tenant_id=event.tenant_id, status=state, detail=f"Stack deleted: {description.status}")

        return PollResult(tenant_id=event.tenant_id, status=state, detail=f"Stack in progress: {description.status}")
