"""Fulfillment domain API package."""

from fulfillment.api.admin_routes import admin_router, maintenance_router
from fulfillment.api.errors import register_fulfillment_exception_handlers
from fulfillment.api.routes import delivery_router, orders_router, returns_router

__all__ = [
    "orders_router",
    "returns_router",
    "delivery_router",
    "admin_router",
    "maintenance_router",
    "register_fulfillment_exception_handlers",
]
