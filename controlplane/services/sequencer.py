"""Sequencing of the tenant lifecycle.

In production the ordering between workers lives in an external workflow engine
that calls each worker and loops on poll results. `Sequencer` is the narrow seam
to that engine; `InProcessSequencer` runs the same workers in-process for local
runs and tests, and `TenantLifecycle` encodes the step order once.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable, Mapping, Optional, Protocol

from controlplane.models.tenant import (
    AccessControlEvent,
    AdminIdentityEvent,
    FinalizeEvent,
    InfraStatus,
    LifecycleOutcome,
    PollEvent,
    TenantCreationRequest,
    TenantEvent,
)
from controlplane.services.setup.access_control_setup_service import AccessControlSetupService
from controlplane.services.setup.admin_identity_service import AdminIdentityService
from controlplane.services.setup.signup_sync_service import SignupSyncService
from controlplane.services.setup.status_poll_service import StatusPollService
from controlplane.services.setup.storage_provisioning_service import StorageProvisioningService
from controlplane.services.setup.verification_service import ProvisioningVerificationService

logger = logging.getLogger(__name__)

Payload = dict[str, Any]
WorkerFn = Callable[[Payload], Awaitable[Payload]]


class SequencerError(RuntimeError):
    pass


class Sequencer(Protocol):
    async def invoke(self, worker: str, payload: Payload) -> Payload: ...

    async def wait_then_retry(self, seconds: float) -> None: ...


def build_worker_table(
    *,
    storage: StorageProvisioningService,
    poll: StatusPollService,
    access_control: AccessControlSetupService,
    admin_identity: AdminIdentityService,
    signup_sync: SignupSyncService,
    verification: ProvisioningVerificationService,
) -> dict[str, WorkerFn]:
    """Map worker names to JSON-in/JSON-out callables."""

    async def register_or_provision(payload: Payload) -> Payload:
        return (await storage.register_or_provision(TenantEvent.model_validate(payload))).to_wire()

    async def delete_infra(payload: Payload) -> Payload:
        return (await storage.delete_infra(TenantEvent.model_validate(payload))).to_wire()

    async def poll_status(payload: Payload) -> Payload:
        return (await poll.poll(PollEvent.model_validate(payload))).to_wire()

    async def setup_access_control(payload: Payload) -> Payload:
        return (await access_control.setup(AccessControlEvent.model_validate(payload))).to_wire()

    async def create_admin_identity(payload: Payload) -> Payload:
        return (await admin_identity.create_admin(AdminIdentityEvent.model_validate(payload))).to_wire()

    async def post_signup_sync(payload: Payload) -> Payload:
        return await signup_sync.handle(payload)

    async def finalize_and_verify(payload: Payload) -> Payload:
        return (await verification.finalize(FinalizeEvent.model_validate(payload))).to_wire()

    return {
        StorageProvisioningService.PROVISION_WORKER: register_or_provision,
        StorageProvisioningService.DELETE_WORKER: delete_infra,
        StatusPollService.WORKER: poll_status,
        AccessControlSetupService.WORKER: setup_access_control,
        AdminIdentityService.WORKER: create_admin_identity,
        "post-signup-sync": post_signup_sync,
        ProvisioningVerificationService.WORKER: finalize_and_verify,
    }


class InProcessSequencer:
    def __init__(
        self,
        workers: Mapping[str, WorkerFn],
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._workers = dict(workers)
        self._sleep = sleep

    async def invoke(self, worker: str, payload: Payload) -> Payload:
        fn = self._workers.get(worker)
        if fn is None:
            raise SequencerError(f"Unknown worker: {worker}")
        return await fn(payload)

    async def wait_then_retry(self, seconds: float) -> None:
        await self._sleep(seconds)


class TenantLifecycle:
    """create -> poll loop -> access control -> admin identity -> finalize, and the teardown mirror."""

    _DEFAULT_POLL_INTERVAL_SECONDS: float = 30.0
    _DEFAULT_MAX_POLLS: int = 40

    def __init__(
        self,
        sequencer: Sequencer,
        *,
        poll_interval_seconds: float = _DEFAULT_POLL_INTERVAL_SECONDS,
        max_polls: int = _DEFAULT_MAX_POLLS,
    ) -> None:
        self._sequencer = sequencer
        self._poll_interval = poll_interval_seconds
        self._max_polls = max_polls

    async def create(self, request: TenantCreationRequest) -> LifecycleOutcome:
        execution_id = request.execution_id or str(uuid.uuid4())
        tenant = TenantEvent(
            tenant_id=request.tenant_id,
            tenant_name=request.tenant_name,
            isolation_mode=request.isolation_mode,
            execution_id=execution_id,
        ).to_wire()
        steps: list[Payload] = []

        try:
            steps.append(await self._step("register-or-provision", tenant))
            steps.append(await self._poll_until(tenant, terminal=InfraStatus.READY, prior=InfraStatus.CREATING))
            steps.append(
                await self._step(
                    "setup-access-control",
                    AccessControlEvent(
                        tenant_id=request.tenant_id,
                        enterprise_id=request.enterprise_id,
                        execution_id=execution_id,
                    ).to_wire(),
                )
            )

            identities: list[Payload] = []
            if request.admin_email:
                admin = await self._step(
                    "create-admin-identity",
                    AdminIdentityEvent(
                        tenant_id=request.tenant_id,
                        enterprise_id=request.enterprise_id,
                        email=request.admin_email,
                        first_name=request.admin_first_name,
                        last_name=request.admin_last_name,
                        execution_id=execution_id,
                    ).to_wire(),
                )
                steps.append(admin)
                identities.append(admin)

            final = await self._step("finalize-and-verify", {**tenant, "identities": identities})
            steps.append(final)
        except Exception as exc:
            logger.exception("Tenant creation failed (tenant=%s, execution=%s)", request.tenant_id, execution_id)
            return LifecycleOutcome(tenant_id=request.tenant_id, succeeded=False, error=str(exc), steps=steps)

        return LifecycleOutcome(
            tenant_id=request.tenant_id,
            succeeded=True,
            final_status=final.get("status"),
            steps=steps,
        )

    async def teardown(self, event: TenantEvent) -> LifecycleOutcome:
        tenant = event.to_wire()
        steps: list[Payload] = []
        try:
            deleted = await self._step("delete-infra", tenant)
            steps.append(deleted)
            if deleted.get("status") != InfraStatus.DELETED.value:
                steps.append(await self._poll_until(tenant, terminal=InfraStatus.DELETED, prior=InfraStatus.DELETING))
        except Exception as exc:
            logger.exception("Tenant teardown failed (tenant=%s)", event.tenant_id)
            return LifecycleOutcome(tenant_id=event.tenant_id, succeeded=False, error=str(exc), steps=steps)

        return LifecycleOutcome(
            tenant_id=event.tenant_id,
            succeeded=True,
            final_status=InfraStatus.DELETED.value,
            steps=steps,
        )

    async def _step(self, worker: str, payload: Payload) -> Payload:
        logger.info("Invoking %s (tenant=%s)", worker, payload.get("tenantId"))
        return await self._sequencer.invoke(worker, payload)

    async def _poll_until(self, tenant: Payload, *, terminal: InfraStatus, prior: InfraStatus) -> Payload:
        status: Optional[str] = prior.value
        for attempt in range(1, self._max_polls + 1):
            result = await self._step("poll-status", {**tenant, "priorStatus": status})
            status = result.get("status")
            if status == terminal.value:
                return result
            if status == InfraStatus.FAILED.value:
                raise SequencerError(f"Infrastructure failed: {result.get('detail')}")
            if status == InfraStatus.DELETED.value:
                raise SequencerError(f"Infrastructure disappeared while waiting for {terminal.value}")
            if attempt < self._max_polls:
                await self._sequencer.wait_then_retry(self._poll_interval)
        raise SequencerError(f"Timed out waiting for {terminal.value} after {self._max_polls} polls")
