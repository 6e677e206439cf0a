from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Path
from starlette import status

from controlplane.services.dependencies import get_worker_table
from controlplane.services.sequencer import WorkerFn

router = APIRouter(prefix="/workers", tags=["workers"])


@router.post("/{name}")
async def invoke_worker(
    name: str = Path(..., description="Worker name, e.g. register-or-provision"),
    payload: dict[str, Any] = Body(...),
    workers: dict[str, WorkerFn] = Depends(get_worker_table),
) -> dict[str, Any]:
    worker = workers.get(name)
    if worker is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown worker: {name}")
    return await worker(payload)
