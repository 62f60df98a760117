"""Bazaarline fulfillment FastAPI application.

Web server for checkout, order administration, returns and courier
reconciliation. Every request runs inside the fulfillment domain context.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV selects the config overlay from domain.toml.
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fulfillment.domain import fulfillment  # noqa: E402
from fulfillment.utils.logging import add_context, clear_context  # noqa: E402

fulfillment.init()

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Bazaarline Fulfillment API",
    description="Orders, courier dispatch and reconciliation, returns",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the fulfillment domain context for each request."""
    clear_context()
    add_context(method=request.method, path=request.url.path)
    with fulfillment.domain_context():
        response = await call_next(request)
    return response


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from fulfillment.api import (  # noqa: E402
    admin_router,
    delivery_router,
    maintenance_router,
    orders_router,
    register_fulfillment_exception_handlers,
    returns_router,
)

register_fulfillment_exception_handlers(app)
app.include_router(orders_router)
app.include_router(returns_router)
app.include_router(delivery_router)
app.include_router(admin_router)
app.include_router(maintenance_router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    from fulfillment.courier import get_courier

    courier = get_courier()
    return JSONResponse(
        content={
            "status": "ok",
            "domain": fulfillment.name,
            "courier": {"partner": courier.partner_name, "configured": courier.configured},
        }
    )
