"""
Webhook config administration routes.
"""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from database.models import WebhookConfig
from services.container import ServiceContainer
from ..dependencies import get_services
from ..models import WebhookConfigCreate, WebhookConfigResponse, WebhookConfigUpdate

router = APIRouter(prefix="/webhook-configs", tags=["Webhook Configs"])


@router.post("", status_code=201, response_model=WebhookConfigResponse)
async def create_webhook_config(request: WebhookConfigCreate, services: ServiceContainer = Depends(get_services)):
    """Create a webhook endpoint for a workflow entry edge"""
    graph = services.graphs.get_graph(request.workflow_id)
    if graph is None:
        raise HTTPException(status_code=404, detail="Workflow not found")
    entry_edge = graph.get_edge(request.entry_edge_id)
    if entry_edge is None:
        raise HTTPException(status_code=400, detail="Entry edge not found in workflow")
    if graph.fan_out_splitter(entry_edge.target) is not None:
        raise HTTPException(status_code=400, detail="Entry edge cannot target a parallel node")

    config = services.webhook_configs.create(
        WebhookConfig(config_id=str(uuid.uuid4()), **request.model_dump())
    )
    return WebhookConfigResponse.from_config(config)


@router.get("", response_model=List[WebhookConfigResponse])
async def list_webhook_configs(canvas_id: str, services: ServiceContainer = Depends(get_services)):
    return [WebhookConfigResponse.from_config(c) for c in services.webhook_configs.list_for_canvas(canvas_id)]


@router.get("/{config_id}", response_model=WebhookConfigResponse)
async def get_webhook_config(config_id: str, services: ServiceContainer = Depends(get_services)):
    config = services.webhook_configs.get(config_id)
    if config is None:
        raise HTTPException(status_code=404, detail="Webhook config not found")
    return WebhookConfigResponse.from_config(config)


@router.patch("/{config_id}", response_model=WebhookConfigResponse)
async def update_webhook_config(config_id: str, request: WebhookConfigUpdate,
                                services: ServiceContainer = Depends(get_services)):
    """Activate or deactivate a webhook endpoint"""
    config = services.webhook_configs.set_active(config_id, request.is_active)
    return WebhookConfigResponse.from_config(config)


@router.get("/{config_id}/events")
async def list_webhook_events(config_id: str, limit: int = Query(50, ge=1, le=500),
                              status: Optional[str] = None,
                              services: ServiceContainer = Depends(get_services)):
    """Recent deliveries for a webhook endpoint, newest first"""
    if services.webhook_configs.get(config_id) is None:
        raise HTTPException(status_code=404, detail="Webhook config not found")
    events = services.webhook_events.list_for_config(config_id, limit=limit)
    if status:
        events = [event for event in events if event.status.value == status]
    return {"events": [event.model_dump(mode="json") for event in events]}
