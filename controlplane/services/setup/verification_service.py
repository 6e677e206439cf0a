from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

from controlplane.models.tenant import (
    AdminIdentityResult,
    FinalizeEvent,
    FinalizeResult,
    IdentitySummary,
    InfraStatus,
    IsolationMode,
    NotificationSummary,
    ProvisioningStatus,
    StorageSummary,
    VerificationCheck,
    VerificationSummary,
)
from controlplane.services.config import ProvisioningConfig
from controlplane.services.entities import TenantParameters, now_iso
from controlplane.services.interfaces import (
    IdentityProvider,
    KeyValueStore,
    MetricsEmitter,
    ParameterRegistry,
    StackDescription,
    StackProvisioner,
)

logger = logging.getLogger(__name__)


class ProvisioningVerificationService:
    """Final step of tenant creation: verify live state and write the final registry status.

    A tenant is only marked `active` when the registry says so AND the live resources
    agree (table ACTIVE, and for dedicated tenants a CREATE_COMPLETE stack). Otherwise
    it is marked `partial` so the bootstrap reconciler or an operator can pick it up.
    """

    WORKER = "finalize-and-verify"

    def __init__(
        self,
        *,
        store: KeyValueStore,
        registry: ParameterRegistry,
        provisioner: StackProvisioner,
        identity: Optional[IdentityProvider],
        metrics: MetricsEmitter,
        config: ProvisioningConfig,
    ) -> None:
        self._store = store
        self._registry = registry
        self._provisioner = provisioner
        self._identity = identity
        self._metrics = metrics
        self._config = config

    async def finalize(self, event: FinalizeEvent) -> FinalizeResult:
        started = time.monotonic()
        params = TenantParameters(tenant_id=event.tenant_id, prefix=self._config.registry_prefix)
        dedicated = event.isolation_mode == IsolationMode.DEDICATED

        status_value, resource_name, stack = await asyncio.gather(
            self._registry.get(params.provisioning_status),
            self._registry.get(params.resource_name),
            self._describe_stack(event.tenant_id) if dedicated else _none(),
        )
        table_status, identity = await asyncio.gather(
            self._store.describe_table(resource_name) if resource_name else _none(),
            self._verify_identities(event.identities),
        )

        checks = [
            VerificationCheck(
                name="registry-status",
                passed=status_value == ProvisioningStatus.ACTIVE.value,
                detail=f"provisioning-status={status_value}",
            ),
            VerificationCheck(
                name="registry-resource-name",
                passed=bool(resource_name),
                detail=f"resource-name={resource_name}",
            ),
            VerificationCheck(
                name="table-active",
                passed=table_status == "ACTIVE",
                detail=f"table {resource_name} status={table_status}",
            ),
        ]
        if dedicated:
            checks.append(
                VerificationCheck(
                    name="stack-complete",
                    passed=stack is not None and stack.infra_status == InfraStatus.READY,
                    detail=f"stack status={stack.status if stack else 'missing'}",
                )
            )
        if event.identities:
            checks.append(
                VerificationCheck(
                    name="identity-users",
                    passed=identity.failed == 0,
                    detail=f"created={identity.created}, existing={identity.existing}, failed={identity.failed}",
                )
            )

        verified = all(c.passed for c in checks)
        final_status = ProvisioningStatus.ACTIVE if verified else ProvisioningStatus.PARTIAL
        completed_at = now_iso()
        await self._registry.put(params.provisioning_status, final_status.value)
        await self._registry.put(params.verified_at, completed_at)

        await self._metrics.emit(self.WORKER, "VerificationPassed" if verified else "VerificationPartial")
        await self._metrics.emit(
            self.WORKER, "WorkerDuration", value=(time.monotonic() - started) * 1000, unit="Milliseconds"
        )

        failed = [c.name for c in checks if not c.passed]
        if failed:
            logger.warning("Tenant %s verification partial; failed checks: %s", event.tenant_id, ", ".join(failed))
        else:
            logger.info("Tenant %s verified", event.tenant_id)

        return FinalizeResult(
            tenant_id=event.tenant_id,
            verified=verified,
            status=final_status,
            completed_at=completed_at,
            summary=VerificationSummary(
                storage=StorageSummary(
                    resource_name=resource_name,
                    table_status=table_status,
                    stack_status=stack.status if stack else None,
                ),
                identity=identity,
                notifications=_notification_summary(event.identities),
                checks=checks,
            ),
        )

    async def _describe_stack(self, tenant_id: str) -> Optional[StackDescription]:
        return await self._provisioner.describe_stack(self._config.stack_name(tenant_id))

    async def _verify_identities(self, identities: list[AdminIdentityResult]) -> IdentitySummary:
        summary = IdentitySummary()
        if self._identity is None:
            return summary

        targets = [r for r in identities if r.identity_subject]
        found = await asyncio.gather(
            *(self._identity.get_user(r.email) for r in targets),
            return_exceptions=True,
        )
        for result, user in zip(targets, found):
            if isinstance(user, BaseException) or user is None:
                summary.failed += 1
                logger.warning("Identity user missing for %s", result.email)
            elif result.created:
                summary.created += 1
            else:
                summary.existing += 1
        return summary


def _notification_summary(identities: list[AdminIdentityResult]) -> NotificationSummary:
    summary = NotificationSummary()
    for result in identities:
        if result.notification == "sent":
            summary.sent += 1
        elif result.notification == "failed":
            summary.failed += 1
        else:
            summary.skipped += 1
    return summary


async def _none() -> None:
    return None
