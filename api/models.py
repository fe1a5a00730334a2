"""
API models for the workflow execution engine
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from database.models import EntityMapping, WebhookConfig
from services.engine.models import Graph

# ============================================================================
# Workflow Models
# ============================================================================

class WorkflowCreate(BaseModel):
    workflow_id: Optional[str] = Field(None, description="Generated when omitted")
    name: Optional[str] = None
    graph: Graph

class WorkflowResponse(BaseModel):
    workflow_id: str
    name: Optional[str] = None
    graph: Graph
    created_at: datetime
    updated_at: datetime

# ============================================================================
# Run Models
# ============================================================================

class RunCreate(BaseModel):
    workflow_id: str
    input: Optional[Any] = Field(None, description="Payload given to the entry nodes")
    entity_id: Optional[str] = None

class RunListResponse(BaseModel):
    runs: List[Dict[str, Any]]
    limit: int
    offset: int

# ============================================================================
# Callback Models
# ============================================================================

class CompleteRequest(BaseModel):
    input: Optional[Any] = Field(None, description="User-supplied output of the UX node")

# ============================================================================
# Webhook Config Models
# ============================================================================

class WebhookConfigCreate(BaseModel):
    canvas_id: str
    name: Optional[str] = None
    source: str
    endpoint_slug: str
    secret: Optional[str] = None
    require_signature: bool = False
    is_active: bool = True
    workflow_id: str
    entry_edge_id: str
    entity_mapping: EntityMapping = Field(default_factory=EntityMapping)

class WebhookConfigUpdate(BaseModel):
    is_active: bool

class WebhookConfigResponse(BaseModel):
    """Webhook config without its secret."""
    config_id: str
    canvas_id: str
    name: Optional[str] = None
    source: str
    endpoint_slug: str
    has_secret: bool
    require_signature: bool
    is_active: bool
    workflow_id: str
    entry_edge_id: str
    entity_mapping: EntityMapping
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_config(cls, config: WebhookConfig) -> "WebhookConfigResponse":
        data = config.model_dump(exclude={"secret"})
        return cls(has_secret=bool(config.secret), **data)
