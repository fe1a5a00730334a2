"""
Inbound webhook route.
"""

import json

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from core.errors import HTTP_STATUS_BY_ERROR_TYPE
from core.logging_config import get_logger
from services.container import ServiceContainer
from services.webhooks.adapters import signature_from_headers
from ..dependencies import get_services

logger = get_logger(__name__)
router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


def _invalid_payload() -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "webhookEventId": None,
            "error": "Payload must be a JSON object",
            "errorType": "validation",
        },
    )


@router.post("/{endpoint_slug}")
async def receive_webhook(endpoint_slug: str, request: Request,
                          services: ServiceContainer = Depends(get_services)):
    """Ingest one webhook delivery for a configured endpoint"""
    raw = await request.body()
    try:
        raw_body = raw.decode("utf-8")
        payload = json.loads(raw_body)
    except ValueError:
        logger.warning(f"Rejected webhook for '{endpoint_slug}': body is not valid JSON")
        return _invalid_payload()
    if not isinstance(payload, dict):
        return _invalid_payload()

    result = await services.webhooks.ingest(
        endpoint_slug, raw_body, payload, signature_from_headers(request.headers)
    )
    status_code = 200 if result.success else HTTP_STATUS_BY_ERROR_TYPE.get(result.error_type, 500)
    return JSONResponse(status_code=status_code, content=result.to_dict())
