"""
ERP FastAPI application.

Procurement and inventory REST API: purchase orders, goods receipts,
batch inventory, landed cost, smart allocation and the audit trail.
"""

import logging
from contextlib import asynccontextmanager

import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from erp import __version__
from erp.api import (
    allocation_router,
    audit_router,
    costing_router,
    grns_router,
    inventory_router,
    purchase_orders_router,
)
from erp.config.settings import get_settings
from erp.database import close_db
from erp.exception_handlers import setup_exception_handlers

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

if settings.sentry_dsn:
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        release=f"{settings.service_name}@{__version__}",
        traces_sample_rate=0.1,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info(f"ERP Service {__version__} starting ({settings.environment})...")
    logger.info(f"API Documentation: http://{settings.host}:{settings.port}/docs")

    yield

    # Shutdown
    logger.info("Shutting down...")
    await close_db()


# Create FastAPI app
app = FastAPI(
    title="ERP Service",
    description="Procurement, goods receipt, inventory costing and smart allocation API",
    version=__version__,
    debug=settings.debug,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

setup_exception_handlers(app)

app.include_router(purchase_orders_router)
app.include_router(grns_router)
app.include_router(inventory_router)
app.include_router(costing_router)
app.include_router(allocation_router)
app.include_router(audit_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": settings.service_name,
        "version": __version__,
        "status": "running"
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "environment": settings.environment}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("erp.main:app", host=settings.host, port=settings.port, reload=settings.debug)
