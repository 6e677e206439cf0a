from __future__ import annotations

from fastapi import APIRouter, Depends, Path, Query

from controlplane.models.tenant import IsolationMode, LifecycleOutcome, TenantCreationRequest, TenantEvent
from controlplane.services.dependencies import get_tenant_lifecycle
from controlplane.services.sequencer import TenantLifecycle

router = APIRouter(prefix="/tenants", tags=["tenants"])


@router.post("", response_model=LifecycleOutcome)
async def create_tenant(
    request: TenantCreationRequest,
    lifecycle: TenantLifecycle = Depends(get_tenant_lifecycle),
) -> LifecycleOutcome:
    return await lifecycle.create(request)


@router.delete("/{tenant_id}", response_model=LifecycleOutcome)
async def delete_tenant(
    tenant_id: str = Path(...),
    isolation_mode: IsolationMode = Query(default=IsolationMode.SHARED, alias="isolationMode"),
    lifecycle: TenantLifecycle = Depends(get_tenant_lifecycle),
) -> LifecycleOutcome:
    return await lifecycle.teardown(TenantEvent(tenant_id=tenant_id, isolation_mode=isolation_mode))
