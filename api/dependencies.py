"""
Service wiring for route handlers.
"""

from typing import Optional

from fastapi import HTTPException

from core.config import settings
from core.logging_config import get_logger
from services.container import ServiceContainer, build_services

logger = get_logger(__name__)

# Global instance, created on application startup
services: Optional[ServiceContainer] = None


def init_services() -> ServiceContainer:
    """Build the global service container from settings."""
    global services
    services = build_services(settings)
    return services


async def shutdown_services():
    global services
    if services is not None:
        await services.aclose()
        services = None


def get_services() -> ServiceContainer:
    """Dependency to get the service container."""
    if services is None:
        raise HTTPException(status_code=500, detail="Services not initialized")
    return services
