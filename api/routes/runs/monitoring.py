"""
Run monitoring routes.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from services.container import ServiceContainer
from ...dependencies import get_services
from ...models import RunListResponse

router = APIRouter(tags=["Runs"])


@router.get("", response_model=RunListResponse)
async def list_runs(
    workflow_id: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    services: ServiceContainer = Depends(get_services),
):
    """List runs, newest first, with optional workflow filter"""
    runs = services.runs.list_runs(workflow_id=workflow_id, limit=limit, offset=offset)
    return RunListResponse(
        runs=[run.model_dump(mode="json") for run in runs],
        limit=limit,
        offset=offset,
    )


@router.get("/{run_id}")
async def get_run(run_id: str, services: ServiceContainer = Depends(get_services)):
    """Get a specific run with every node state"""
    run = services.runs.get_run(run_id)
    if run is None:
        raise HTTPException(status_code=404, detail="Run not found")
    data = run.model_dump(mode="json")
    data["drained"] = run.is_drained()
    return data
