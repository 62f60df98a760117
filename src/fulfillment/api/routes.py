"""FastAPI routes for customers — orders, returns and delivery quotes."""

from fastapi import APIRouter, Depends, HTTPException
from protean.utils.globals import current_domain

from fulfillment.api.actors import Actor, current_actor, ensure_owner, require_customer
from fulfillment.api.schemas import (
    CancelOrderRequest,
    CourierStatusResponse,
    DeliveryChargeRequest,
    DeliveryQuoteResponse,
    DestinationsResponse,
    DispatchOrderRequest,
    FileReturnRequest,
    OrderResponse,
    PlaceOrderRequest,
    ReturnResponse,
)
from fulfillment.courier import get_courier
from fulfillment.courier.status import map_status
from fulfillment.order.cancellation import cancel_order
from fulfillment.order.dispatch import dispatch_order
from fulfillment.order.order import Order
from fulfillment.order.placement import place_order
from fulfillment.order.visibility import hide_order, orders_visible_to
from fulfillment.returns.return_request import ReturnRequest
from fulfillment.returns.visibility import hide_return, returns_visible_to
from fulfillment.returns.workflow import file_return
from fulfillment.shared.deletion import Party, is_visible_to
from fulfillment.shipping.destinations import get_destinations
from fulfillment.shipping.resolver import quote_delivery


def _visible_order(order_id: str, actor: Actor) -> Order:
    order = current_domain.repository_for(Order).get(order_id)
    if actor.party == Party.USER:
        ensure_owner(order, actor)
    if not is_visible_to(order, actor.party):
        raise HTTPException(status_code=404, detail="Order not found")
    return order


def _visible_return(return_id: str, actor: Actor) -> ReturnRequest:
    rr = current_domain.repository_for(ReturnRequest).get(return_id)
    if actor.party == Party.USER:
        ensure_owner(rr, actor)
    if not is_visible_to(rr, actor.party):
        raise HTTPException(status_code=404, detail="Return request not found")
    return rr


# ---------------------------------------------------------------------------
# Orders Router
# ---------------------------------------------------------------------------
orders_router = APIRouter(prefix="/orders", tags=["orders"])


@orders_router.post("", status_code=201, response_model=OrderResponse)
async def create_order(body: PlaceOrderRequest, actor: Actor = Depends(require_customer)) -> OrderResponse:
    """Place an order from a checked-out cart."""
    order = place_order(
        user_id=actor.actor_id,
        items=[item.model_dump() for item in body.items],
        shipping=body.shipping.model_dump(),
        payment_method=body.payment_method,
        shipping_charge=body.shipping_charge,
        discount=body.discount,
        coupon_code=body.coupon_code,
    )
    return OrderResponse.from_order(order)


@orders_router.get("", response_model=list[OrderResponse])
async def list_orders(actor: Actor = Depends(current_actor)) -> list[OrderResponse]:
    orders = orders_visible_to(actor.party, user_id=actor.actor_id)
    return [OrderResponse.from_order(order) for order in orders]


@orders_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, actor: Actor = Depends(current_actor)) -> OrderResponse:
    return OrderResponse.from_order(_visible_order(order_id, actor))


@orders_router.post("/{order_id}/dispatch", response_model=OrderResponse)
def dispatch(
    order_id: str,
    body: DispatchOrderRequest,
    actor: Actor = Depends(require_customer),
) -> OrderResponse:
    """Hand a COD order to the courier at checkout.

    A courier failure cancels a still-pending order before the error is returned.
    """
    ensure_owner(current_domain.repository_for(Order).get(order_id), actor)
    order = dispatch_order(order_id, expected_charge=body.expected_charge, actor_id=actor.actor_id)
    return OrderResponse.from_order(order)


@orders_router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel(order_id: str, body: CancelOrderRequest, actor: Actor = Depends(require_customer)) -> OrderResponse:
    ensure_owner(current_domain.repository_for(Order).get(order_id), actor)
    order = cancel_order(order_id, body.reason, actor_id=actor.actor_id)
    return OrderResponse.from_order(order)


@orders_router.delete("/{order_id}", response_model=OrderResponse)
async def delete_order(order_id: str, actor: Actor = Depends(current_actor)) -> OrderResponse:
    """Hide the order from the caller's own view."""
    order = hide_order(order_id, actor.party, actor_id=actor.actor_id)
    return OrderResponse.from_order(order)


# ---------------------------------------------------------------------------
# Returns Router
# ---------------------------------------------------------------------------
returns_router = APIRouter(prefix="/returns", tags=["returns"])


@returns_router.post("", status_code=201, response_model=ReturnResponse)
async def create_return(body: FileReturnRequest, actor: Actor = Depends(require_customer)) -> ReturnResponse:
    """File a return for a delivered order within the return window."""
    items = [item.model_dump() for item in body.items] if body.items else None
    rr = file_return(
        order_id=body.order_id,
        user_id=actor.actor_id,
        reason=body.reason,
        reason_details=body.reason_details,
        items=items,
    )
    return ReturnResponse.from_return(rr)


@returns_router.get("", response_model=list[ReturnResponse])
async def list_returns(actor: Actor = Depends(current_actor)) -> list[ReturnResponse]:
    return [ReturnResponse.from_return(rr) for rr in returns_visible_to(actor.party, user_id=actor.actor_id)]


@returns_router.get("/{return_id}", response_model=ReturnResponse)
async def get_return(return_id: str, actor: Actor = Depends(current_actor)) -> ReturnResponse:
    return ReturnResponse.from_return(_visible_return(return_id, actor))


@returns_router.delete("/{return_id}", response_model=ReturnResponse)
async def delete_return(return_id: str, actor: Actor = Depends(current_actor)) -> ReturnResponse:
    rr = hide_return(return_id, actor.party, actor_id=actor.actor_id)
    return ReturnResponse.from_return(rr)


# ---------------------------------------------------------------------------
# Delivery Router
# ---------------------------------------------------------------------------
delivery_router = APIRouter(prefix="/delivery", tags=["delivery"])


@delivery_router.post("/charge", response_model=DeliveryQuoteResponse)
async def delivery_charge(body: DeliveryChargeRequest) -> DeliveryQuoteResponse:
    """Quote the delivery charge for a cart going to ``city``."""
    return DeliveryQuoteResponse(**quote_delivery(body.country, body.city, body.cart_total))


@delivery_router.get("/destinations", response_model=DestinationsResponse)
def destinations() -> DestinationsResponse:
    return DestinationsResponse(**get_destinations())


@delivery_router.get("/status/{tracking_code}", response_model=CourierStatusResponse)
def courier_status(tracking_code: str) -> CourierStatusResponse:
    raw = get_courier().query_status(tracking_code)
    return CourierStatusResponse(
        tracking_code=tracking_code,
        status_raw=raw,
        status_friendly=map_status(raw).value,
    )
