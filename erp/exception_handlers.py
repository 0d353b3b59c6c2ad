"""
Exception handlers for the ERP FastAPI application.

Maps domain exceptions to JSON error bodies and logs anything unhandled
with an error id that clients can quote when reporting issues.
"""

import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from erp.exceptions import ErpError

logger = logging.getLogger(__name__)


async def erp_error_handler(request: Request, exc: ErpError) -> JSONResponse:
    """Return the status and body carried by a domain exception."""
    logger.info(
        f"{type(exc).__name__} in {request.method} {request.url.path}: {exc.message}"
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_response())


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Log an unhandled exception and return a generic 500 response.

    Args:
        request: The HTTP request that caused the exception
        exc: The exception that was raised

    Returns:
        JSONResponse with an error id
    """
    error_id = uuid.uuid4().hex[:12]

    logger.error(
        f"Unhandled exception [{error_id}] in {request.method} {request.url.path}: {exc}",
        exc_info=True,
        extra={
            "error_id": error_id,
            "method": request.method,
            "path": request.url.path,
            "query_params": dict(request.query_params),
            "client": request.client.host if request.client else "unknown",
            "error_type": type(exc).__name__,
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "error_id": error_id,
            "error_type": type(exc).__name__,
        },
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers with the FastAPI application."""
    app.add_exception_handler(ErpError, erp_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)
