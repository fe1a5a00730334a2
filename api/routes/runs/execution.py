"""
Run execution routes.
"""

from fastapi import APIRouter, Depends

from core.logging_config import get_logger
from services.container import ServiceContainer
from ...dependencies import get_services
from ...models import RunCreate

logger = get_logger(__name__)

router = APIRouter(tags=["Runs"])


@router.post("", status_code=201)
async def create_run(request: RunCreate, services: ServiceContainer = Depends(get_services)):
    """Start a run manually and settle its synchronous part"""
    run = await services.walker.start_run(
        request.workflow_id, input=request.input, entity_id=request.entity_id
    )
    logger.info(f"Run {run.id} started for workflow {request.workflow_id}")
    return run.model_dump(mode="json")
