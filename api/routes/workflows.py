"""
Workflow graph routes.
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException

from services.container import ServiceContainer
from ..dependencies import get_services
from ..models import WorkflowCreate, WorkflowResponse

router = APIRouter(prefix="/workflows", tags=["Workflows"])


@router.post("", status_code=201, response_model=WorkflowResponse)
async def save_workflow(request: WorkflowCreate, services: ServiceContainer = Depends(get_services)):
    """Create a workflow, or replace one no run references yet"""
    workflow_id = request.workflow_id or str(uuid.uuid4())
    record = services.graphs.save_graph(workflow_id, request.graph, name=request.name)
    return WorkflowResponse(graph=request.graph, **record.model_dump())


@router.get("")
async def list_workflows(services: ServiceContainer = Depends(get_services)):
    records = services.graphs.list_graphs()
    return {"workflows": [record.model_dump(mode="json") for record in records]}


@router.get("/{workflow_id}", response_model=WorkflowResponse)
async def get_workflow(workflow_id: str, services: ServiceContainer = Depends(get_services)):
    record = services.graphs.get_record(workflow_id)
    graph = services.graphs.get_graph(workflow_id)
    if record is None or graph is None:
        raise HTTPException(status_code=404, detail="Workflow not found")
    return WorkflowResponse(graph=graph, **record.model_dump())
