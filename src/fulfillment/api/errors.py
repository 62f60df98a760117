"""HTTP mapping for courier failures.

Guard violations and missing records are handled by Protean's own FastAPI
exception handlers; this adds the courier taxonomy on top.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

from fulfillment.shared.errors import CourierError

logger = structlog.get_logger(__name__)


async def courier_error_handler(request: Request, exc: CourierError) -> JSONResponse:
    logger.warning(
        "Courier error returned to caller",
        path=request.url.path,
        error=type(exc).__name__,
        message=exc.message,
    )
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


def register_fulfillment_exception_handlers(app: FastAPI) -> None:
    register_exception_handlers(app)
    app.add_exception_handler(CourierError, courier_error_handler)
