"""
Worker callback and UX completion routes.

Responses to callers carry fixed generic messages only; the detail is logged.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from core.errors import DuplicateDeliveryNoop, NotFoundError, ValidationError
from core.logging_config import get_logger
from services.container import ServiceContainer
from ..dependencies import get_services
from ..models import CompleteRequest

logger = get_logger(__name__)
router = APIRouter(tags=["Callbacks"])


def _invalid_request() -> JSONResponse:
    return JSONResponse(status_code=400, content={"success": False, "error": "Invalid request"})


def _not_found() -> JSONResponse:
    return JSONResponse(status_code=404, content={"success": False, "error": "Not found"})


async def _read_json(request: Request):
    try:
        return await request.json()
    except ValueError:
        return None


@router.post("/callback/{run_id}/{node_id}")
async def worker_callback(run_id: str, node_id: str, request: Request,
                          services: ServiceContainer = Depends(get_services)):
    """Receive a completion or failure report from an external worker"""
    body = await _read_json(request)
    try:
        return await services.callbacks.handle_callback(run_id, node_id, body)
    except DuplicateDeliveryNoop:
        return {"success": True}
    except ValidationError as e:
        logger.warning(f"Rejected callback for {run_id}/{node_id}: {e.message}")
        return _invalid_request()
    except NotFoundError as e:
        logger.warning(f"Rejected callback for {run_id}/{node_id}: {e.message}")
        return _not_found()


@router.post("/complete/{run_id}/{node_id}")
async def complete_ux_node(run_id: str, node_id: str, request: Request,
                           services: ServiceContainer = Depends(get_services)):
    """Complete a UX node with human-supplied input"""
    try:
        completion = CompleteRequest.model_validate(await _read_json(request))
    except PydanticValidationError:
        return _invalid_request()
    try:
        return await services.callbacks.complete_ux(run_id, node_id, completion.input)
    except ValidationError as e:
        logger.warning(f"Rejected completion for {run_id}/{node_id}: {e.message}")
        return _invalid_request()
    except NotFoundError as e:
        logger.warning(f"Rejected completion for {run_id}/{node_id}: {e.message}")
        return _not_found()
