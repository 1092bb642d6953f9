"""
ASC Inventory API — FastAPI Application Entry Point
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.requests import Request

from core.config import get_settings
from core.errors import InventoryDomainError

settings = get_settings()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("ASC Inventory API starting up", version=settings.app_version)
    yield
    logger.info("ASC Inventory API shutting down")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Surgical-center inventory truth-state engine",
    lifespan=lifespan,
)


@app.exception_handler(InventoryDomainError)
async def inventory_domain_error_handler(request: Request, exc: InventoryDomainError):
    """Translate domain errors (NotFound / Validation / Conflict) into JSON bodies."""
    logger.info(
        "api.domain_error",
        path=request.url.path,
        status_code=exc.status_code,
        error=exc.code,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Import and register routers
from api.v1.routers import devices, inventory

app.include_router(inventory.router)
app.include_router(devices.router)


@app.get("/health")
async def health_check():
    """Health check endpoint for load balancers."""
    return {"status": "healthy", "version": settings.app_version}
