from __future__ import annotations

from fastapi import APIRouter, Depends

from controlplane.models.bootstrap import ReconcileReport
from controlplane.services.bootstrap.reconciler import BootstrapReconciler
from controlplane.services.dependencies import get_bootstrap_reconciler_for_request

router = APIRouter(prefix="/bootstrap", tags=["bootstrap"])


@router.get("/verify", response_model=ReconcileReport)
async def verify(
    reconciler: BootstrapReconciler = Depends(get_bootstrap_reconciler_for_request),
) -> ReconcileReport:
    return await reconciler.reconcile(fix=False)


@router.post("/fix", response_model=ReconcileReport)
async def fix(
    reconciler: BootstrapReconciler = Depends(get_bootstrap_reconciler_for_request),
) -> ReconcileReport:
    return await reconciler.reconcile(fix=True)
