"""
Entity routes.
"""

from fastapi import APIRouter, Depends, HTTPException

from services.container import ServiceContainer
from ..dependencies import get_services

router = APIRouter(prefix="/entities", tags=["Entities"])


@router.get("/{entity_id}")
async def get_entity(entity_id: str, services: ServiceContainer = Depends(get_services)):
    """Get an entity with its current position and journey"""
    entity = services.entities.get(entity_id)
    if entity is None:
        raise HTTPException(status_code=404, detail="Entity not found")
    return entity.model_dump(mode="json")
