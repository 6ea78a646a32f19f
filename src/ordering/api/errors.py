"""Exception handlers rendering ordering errors as JSON responses."""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.exceptions import ValidationError
from protean.integrations.fastapi import register_exception_handlers

from ordering.errors import OrderingError

logger = structlog.get_logger(__name__)


async def ordering_error_handler(request: Request, exc: OrderingError) -> JSONResponse:
    logger.info(
        "Request rejected",
        path=request.url.path,
        error=exc.kind,
        message=exc.message,
        **exc.context,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={
            "error": "validation_error",
            "message": "Invalid input",
            "fields": exc.messages,
        },
    )


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error", path=request.url.path, method=request.method)
    return JSONResponse(
        status_code=500,
        content={"error": "internal_error", "message": "An internal error occurred"},
    )


def register_error_handlers(app: FastAPI) -> None:
    """Install Protean's handlers, then the ordering-specific ones on top."""
    register_exception_handlers(app)
    app.add_exception_handler(OrderingError, ordering_error_handler)
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
