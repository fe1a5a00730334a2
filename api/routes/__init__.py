"""
API Routes Package

This package contains all the route modules organized by functionality.
"""

from api.routes.callbacks import router as callbacks_router
from api.routes.entities import router as entities_router
from api.routes.runs import runs_router
from api.routes.system import router as system_router
from api.routes.webhook_configs import router as webhook_configs_router
from api.routes.webhooks import router as webhooks_router
from api.routes.workflows import router as workflows_router

__all__ = [
    "callbacks_router",
    "entities_router",
    "runs_router",
    "system_router",
    "webhook_configs_router",
    "webhooks_router",
    "workflows_router",
]
