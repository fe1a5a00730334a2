"""
Records persisted by the workflow engine stores (besides runs, which live in
services.engine.models).
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from services.engine.models import utcnow


class WorkflowRecord(BaseModel):
    """Stored workflow summary."""

    workflow_id: str
    name: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class EntityMapping(BaseModel):
    """
    Declarative mapping from a webhook payload to entity fields.

    Values starting with ``$.`` are JSON paths into the payload; anything else
    is used as a static value.
    """

    name: Optional[str] = None
    email: Optional[str] = None
    entity_type: Optional[str] = None
    avatar_url: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)


class WebhookConfig(BaseModel):
    """Operator-managed webhook endpoint configuration."""

    config_id: str
    canvas_id: str
    name: Optional[str] = None
    source: str = Field(..., description="Provider name used to select the adapter")
    endpoint_slug: str = Field(..., description="Unique public path segment")
    secret: Optional[str] = None
    require_signature: bool = False
    is_active: bool = True
    workflow_id: str
    entry_edge_id: str
    entity_mapping: EntityMapping = Field(default_factory=EntityMapping)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("endpoint_slug")
    @classmethod
    def validate_slug(cls, v):
        if not v or "/" in v:
            raise ValueError("endpoint_slug must be a non-empty path segment")
        return v


class WebhookEventStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class WebhookEvent(BaseModel):
    """Audit log entry for one inbound webhook delivery."""

    event_id: str
    config_id: str
    payload: Optional[Any] = None
    status: WebhookEventStatus = WebhookEventStatus.PENDING
    error: Optional[str] = None
    error_type: Optional[str] = None
    event_type: Optional[str] = None
    external_event_id: Optional[str] = None
    entity_id: Optional[str] = None
    run_id: Optional[str] = None
    duplicate_of: Optional[str] = None
    received_at: datetime = Field(default_factory=utcnow)
    processed_at: Optional[datetime] = None


class JourneyStep(BaseModel):
    """One position change of an entity."""

    kind: str = Field(..., description="'edge' or 'node'")
    id: str
    status: Optional[str] = None
    at: datetime = Field(default_factory=utcnow)


class Entity(BaseModel):
    """An externally originated record tracked across workflow executions."""

    entity_id: str
    canvas_id: str
    name: str
    email: Optional[str] = None
    entity_type: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    source: Optional[str] = None
    current_node_id: Optional[str] = None
    current_edge_id: Optional[str] = None
    journey: List[JourneyStep] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
