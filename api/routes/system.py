"""
System routes for health checks.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter

from core.config import settings

router = APIRouter(tags=["System"])


@router.get("/health")
async def health_check() -> Dict[str, Any]:
    """Health check endpoint"""
    return {
        "status": "healthy",
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": "1.0.0"
    }
