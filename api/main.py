"""
Main FastAPI application for the workflow execution engine.
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Import route modules
from api.routes import (
    callbacks_router,
    entities_router,
    runs_router,
    system_router,
    webhook_configs_router,
    webhooks_router,
    workflows_router,
)
from api.dependencies import init_services, shutdown_services

# Import enhanced logging
from core.errors import EngineError
from core.logging_config import get_logger
from api.middleware import add_logging_middleware

logger = get_logger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Workflow Execution Engine",
    description="Executes workflow graphs of Worker, UX, Splitter, Collector and Trigger nodes, "
                "resumes them on worker callbacks and starts them from verified webhooks.",
    version="1.0.0",
    openapi_tags=[
        {
            "name": "Runs",
            "description": "Start and inspect workflow runs"
        },
        {
            "name": "Callbacks",
            "description": "Worker callbacks and UX node completion"
        },
        {
            "name": "Webhooks",
            "description": "Inbound provider webhooks"
        },
        {
            "name": "Workflows",
            "description": "Workflow graph storage"
        },
        {
            "name": "Webhook Configs",
            "description": "Webhook endpoint administration"
        },
        {
            "name": "Entities",
            "description": "Entities tracked across runs"
        }
    ]
)


@app.on_event("startup")
async def startup_event():
    """Initialize services when the server starts"""
    logger.info("🚀 Starting workflow engine API server...")
    init_services()
    logger.info("🎉 Workflow engine API server startup complete!")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup services when the server shuts down"""
    logger.info("🛑 Shutting down workflow engine API server...")
    await shutdown_services()
    logger.info("👋 Workflow engine API server shutdown complete!")


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    """Translate engine errors to their HTTP status"""
    if exc.http_status >= 500:
        logger.error(f"{exc.error_type} error on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.http_status, content={"success": False, "error": "Internal server error"})
    return JSONResponse(status_code=exc.http_status, content={"success": False, **exc.to_dict()})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler"""
    logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})


# Add logging middleware first (for request tracking)
add_logging_middleware(app)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins for development
    allow_credentials=False,  # Must be False when allow_origins=["*"]
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include all route modules
app.include_router(system_router)
app.include_router(webhooks_router)
app.include_router(callbacks_router)
app.include_router(runs_router)
app.include_router(workflows_router)
app.include_router(webhook_configs_router)
app.include_router(entities_router)


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with API information"""
    return {
        "message": "Workflow Execution Engine API",
        "version": "1.0.0",
        "docs": "/docs",
        "redoc": "/redoc"
    }
