"""FastAPI routes for the back office — order and return administration,
tariffs, shipping settings, courier account passthroughs and maintenance."""

import os

from fastapi import APIRouter, Depends, HTTPException
from protean.utils.globals import current_domain

from fulfillment.api.actors import Actor, require_back_office, require_settings_role
from fulfillment.api.schemas import (
    ActivityResponse,
    AddOrderNoteRequest,
    ApproveReturnRequest,
    CancelOrderRequest,
    CompleteReturnRequest,
    ConfigureCourierRequest,
    CourierReturnRequest,
    OrderResponse,
    PurgeResponse,
    RejectReturnRequest,
    ReturnResponse,
    ShippingSettingsRequest,
    StatusResponse,
    SyncSummaryResponse,
    TariffRequest,
    TariffUpdateRequest,
    UpdateOrderStatusRequest,
)
from fulfillment.audit.activity_log import find_activity
from fulfillment.courier import get_courier
from fulfillment.courier.fake_adapter import FakeCourier
from fulfillment.order.cancellation import cancel_order
from fulfillment.order.dispatch import dispatch_order
from fulfillment.order.management import add_order_note, update_order_status
from fulfillment.order.reconciliation import refresh_courier_status, sync_courier_statuses
from fulfillment.order.visibility import purge_hidden_orders, purge_order
from fulfillment.returns.visibility import purge_hidden_returns, purge_return
from fulfillment.returns.workflow import (
    approve_return,
    complete_return,
    mark_return_in_transit,
    mark_return_received,
    reject_return,
    request_return_pickup,
)
from fulfillment.shared import errors
from fulfillment.shipping.settings import UpdateShippingSettings, get_shipping_settings
from fulfillment.shipping.tariff import CreateTariff, DeleteTariff, UpdateTariff, list_tariffs

# ---------------------------------------------------------------------------
# Admin Router
# ---------------------------------------------------------------------------
admin_router = APIRouter(prefix="/admin", tags=["admin"])


# Orders
@admin_router.post("/orders/{order_id}/approve", response_model=OrderResponse)
def approve_order(order_id: str, actor: Actor = Depends(require_back_office)) -> OrderResponse:
    """Send the order to the courier. A failure leaves the order in place for a retry."""
    order = dispatch_order(order_id, actor_id=actor.actor_id, via_admin=True)
    return OrderResponse.from_order(order)


@admin_router.put("/orders/{order_id}/status", response_model=OrderResponse)
async def change_order_status(
    order_id: str,
    body: UpdateOrderStatusRequest,
    actor: Actor = Depends(require_back_office),
) -> OrderResponse:
    order = update_order_status(
        order_id,
        body.status,
        payment_status=body.payment_status,
        note=body.note,
        actor_id=actor.actor_id,
    )
    return OrderResponse.from_order(order)


@admin_router.post("/orders/{order_id}/notes", response_model=OrderResponse)
async def note_order(
    order_id: str,
    body: AddOrderNoteRequest,
    actor: Actor = Depends(require_back_office),
) -> OrderResponse:
    return OrderResponse.from_order(add_order_note(order_id, body.message, actor_id=actor.actor_id))


@admin_router.post("/orders/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order_as_admin(
    order_id: str,
    body: CancelOrderRequest,
    actor: Actor = Depends(require_back_office),
) -> OrderResponse:
    return OrderResponse.from_order(cancel_order(order_id, body.reason, actor_id=actor.actor_id))


@admin_router.post("/orders/{order_id}/courier-refresh", response_model=OrderResponse)
def refresh_order_courier_status(order_id: str, actor: Actor = Depends(require_back_office)) -> OrderResponse:
    order = refresh_courier_status(order_id, actor_id=actor.actor_id, manual=True)
    return OrderResponse.from_order(order)


@admin_router.delete("/orders/{order_id}/purge", response_model=StatusResponse)
async def purge_one_order(order_id: str, actor: Actor = Depends(require_settings_role)) -> StatusResponse:
    purge_order(order_id, actor_id=actor.actor_id)
    return StatusResponse(status="purged")


@admin_router.post("/orders/purge", response_model=PurgeResponse)
async def purge_orders(actor: Actor = Depends(require_settings_role)) -> PurgeResponse:
    return PurgeResponse(purged=purge_hidden_orders(actor_id=actor.actor_id))


# Returns
@admin_router.post("/returns/{return_id}/approve", response_model=ReturnResponse)
def approve(
    return_id: str,
    body: ApproveReturnRequest,
    actor: Actor = Depends(require_back_office),
) -> ReturnResponse:
    """Approve the return and ask the courier for a pickup (best effort)."""
    return ReturnResponse.from_return(approve_return(return_id, actor.actor_id, body.admin_notes))


@admin_router.post("/returns/{return_id}/reject", response_model=ReturnResponse)
async def reject(
    return_id: str,
    body: RejectReturnRequest,
    actor: Actor = Depends(require_back_office),
) -> ReturnResponse:
    return ReturnResponse.from_return(reject_return(return_id, body.reason, admin_id=actor.actor_id))


@admin_router.post("/returns/{return_id}/pickup", response_model=ReturnResponse)
def retry_pickup(return_id: str, actor: Actor = Depends(require_back_office)) -> ReturnResponse:
    return ReturnResponse.from_return(request_return_pickup(return_id, admin_id=actor.actor_id))


@admin_router.post("/returns/{return_id}/in-transit", response_model=ReturnResponse)
async def in_transit(return_id: str, actor: Actor = Depends(require_back_office)) -> ReturnResponse:
    return ReturnResponse.from_return(mark_return_in_transit(return_id, admin_id=actor.actor_id))


@admin_router.post("/returns/{return_id}/received", response_model=ReturnResponse)
async def received(return_id: str, actor: Actor = Depends(require_back_office)) -> ReturnResponse:
    return ReturnResponse.from_return(mark_return_received(return_id, admin_id=actor.actor_id))


@admin_router.post("/returns/{return_id}/complete", response_model=ReturnResponse)
async def complete(
    return_id: str,
    body: CompleteReturnRequest,
    actor: Actor = Depends(require_back_office),
) -> ReturnResponse:
    rr = complete_return(return_id, body.refund_type, admin_id=actor.actor_id, admin_notes=body.admin_notes)
    return ReturnResponse.from_return(rr)


@admin_router.delete("/returns/{return_id}/purge", response_model=StatusResponse)
async def purge_one_return(return_id: str, actor: Actor = Depends(require_settings_role)) -> StatusResponse:
    purge_return(return_id, actor_id=actor.actor_id)
    return StatusResponse(status="purged")


@admin_router.post("/returns/purge", response_model=PurgeResponse)
async def purge_returns(actor: Actor = Depends(require_settings_role)) -> PurgeResponse:
    return PurgeResponse(purged=purge_hidden_returns(actor_id=actor.actor_id))


# Tariffs
@admin_router.get("/tariffs")
async def tariffs(actor: Actor = Depends(require_back_office)) -> list[dict]:
    return [tariff.to_dict() for tariff in list_tariffs()]


@admin_router.post("/tariffs", status_code=201)
async def create_tariff(body: TariffRequest, actor: Actor = Depends(require_settings_role)) -> dict:
    tariff_id = current_domain.process(CreateTariff(actor_id=actor.actor_id, **body.model_dump()), asynchronous=False)
    return {"tariff_id": tariff_id}


@admin_router.put("/tariffs/{tariff_id}")
async def update_tariff(
    tariff_id: str,
    body: TariffUpdateRequest,
    actor: Actor = Depends(require_settings_role),
) -> dict:
    command = UpdateTariff(actor_id=actor.actor_id, tariff_id=tariff_id, **body.model_dump(exclude_none=True))
    return current_domain.process(command, asynchronous=False)


@admin_router.delete("/tariffs/{tariff_id}", response_model=StatusResponse)
async def delete_tariff(tariff_id: str, actor: Actor = Depends(require_settings_role)) -> StatusResponse:
    current_domain.process(DeleteTariff(actor_id=actor.actor_id, tariff_id=tariff_id), asynchronous=False)
    return StatusResponse(status="deleted")


# Shipping settings
@admin_router.get("/settings/shipping")
async def shipping_settings(actor: Actor = Depends(require_back_office)) -> dict:
    return get_shipping_settings().to_dict()


@admin_router.put("/settings/shipping")
async def update_shipping_settings(
    body: ShippingSettingsRequest,
    actor: Actor = Depends(require_settings_role),
) -> dict:
    command = UpdateShippingSettings(actor_id=actor.actor_id, **body.model_dump(exclude_none=True))
    return current_domain.process(command, asynchronous=False)


# Courier account
@admin_router.get("/courier/balance")
def courier_balance(actor: Actor = Depends(require_back_office)) -> dict:
    return get_courier().get_balance()


@admin_router.get("/courier/payments")
def courier_payments(actor: Actor = Depends(require_back_office)) -> dict:
    return get_courier().list_payments()


@admin_router.get("/courier/payments/{payment_id}")
def courier_payment(payment_id: str, actor: Actor = Depends(require_back_office)) -> dict:
    return get_courier().get_payment(payment_id)


@admin_router.get("/courier/return-requests")
def courier_return_requests(actor: Actor = Depends(require_back_office)) -> dict:
    return get_courier().list_return_requests()


@admin_router.get("/courier/return-requests/{request_id}")
def courier_return_request(request_id: str, actor: Actor = Depends(require_back_office)) -> dict:
    return get_courier().get_return_request(request_id)


@admin_router.post("/courier/return-requests", status_code=201)
def create_courier_return_request(
    body: CourierReturnRequest,
    actor: Actor = Depends(require_back_office),
) -> dict:
    result = get_courier().request_return_pickup(body.reason, invoice=body.invoice, consignment_id=body.consignment_id)
    return {
        "consignment_id": result.consignment_id,
        "tracking_code": result.tracking_code,
        "status": result.status,
        "raw": result.raw,
    }


@admin_router.post("/courier/configure")
async def configure_courier(body: ConfigureCourierRequest, actor: Actor = Depends(require_settings_role)) -> dict:
    """Configure the FakeCourier behavior (non-production only)."""
    if os.environ.get("PROTEAN_ENV") == "production":
        raise HTTPException(status_code=403, detail="Courier configuration not available in production")

    courier = get_courier()
    if not isinstance(courier, FakeCourier):
        raise HTTPException(status_code=400, detail="Courier configuration only available for FakeCourier")

    failure = getattr(errors, body.failure, None)
    if not (isinstance(failure, type) and issubclass(failure, errors.CourierError)):
        raise HTTPException(status_code=400, detail=f"Unknown courier failure: {body.failure}")

    courier.configure(
        should_succeed=body.should_succeed,
        failure=failure,
        failure_reason=body.failure_reason,
        configured=body.configured,
        pickup_scheduled=body.pickup_scheduled,
    )
    return {
        "courier": type(courier).__name__,
        "should_succeed": courier.should_succeed,
        "failure": courier.failure.__name__,
        "configured": courier.configured,
    }


# Audit trail
@admin_router.get("/activity", response_model=list[ActivityResponse])
async def activity(
    action: str | None = None,
    entity: str | None = None,
    limit: int = 100,
    actor: Actor = Depends(require_back_office),
) -> list[ActivityResponse]:
    return [
        ActivityResponse(
            actor_id=str(entry.actor_id) if entry.actor_id else None,
            action=entry.action,
            entity=entry.entity,
            meta=entry.meta_data,
            created_at=entry.created_at,
        )
        for entry in find_activity(action=action, entity=entity, limit=limit)
    ]


# ---------------------------------------------------------------------------
# Maintenance Router
# ---------------------------------------------------------------------------
maintenance_router = APIRouter(prefix="/maintenance", tags=["maintenance"])


@maintenance_router.post("/courier-sync", response_model=SyncSummaryResponse)
def courier_sync(actor: Actor = Depends(require_back_office)) -> SyncSummaryResponse:
    """Run one reconciliation sweep over outstanding shipments."""
    return SyncSummaryResponse(**sync_courier_statuses())
