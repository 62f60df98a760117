"""Pydantic API schemas for the Fulfillment domain.

These are the external API contracts — separate from domain commands.
The API layer translates between these schemas and domain commands.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------
class OrderItemRequest(BaseModel):
    product_id: str
    variant_id: str | None = None
    sku: str | None = None
    title: str | None = None
    quantity: int = Field(ge=1)
    unit_price: float = Field(ge=0)


class ShippingAddressRequest(BaseModel):
    name: str
    phone: str
    email: str | None = None
    address: str
    city: str
    country: str = "Bangladesh"


class PlaceOrderRequest(BaseModel):
    items: list[OrderItemRequest]
    shipping: ShippingAddressRequest
    payment_method: str = "cod"
    shipping_charge: float | None = None
    discount: float = 0.0
    coupon_code: str | None = None


class DispatchOrderRequest(BaseModel):
    expected_charge: float | None = None


class CancelOrderRequest(BaseModel):
    reason: str = "Cancelled by customer"


class UpdateOrderStatusRequest(BaseModel):
    status: str
    payment_status: str | None = None
    note: str | None = None


class AddOrderNoteRequest(BaseModel):
    message: str


class ReturnItemRequest(BaseModel):
    product_id: str
    variant_id: str | None = None
    quantity: int | None = Field(default=None, ge=1)
    reason: str | None = None


class FileReturnRequest(BaseModel):
    order_id: str
    reason: str
    reason_details: str | None = None
    items: list[ReturnItemRequest] | None = None


class ApproveReturnRequest(BaseModel):
    admin_notes: str | None = None


class RejectReturnRequest(BaseModel):
    reason: str


class CompleteReturnRequest(BaseModel):
    refund_type: str
    admin_notes: str | None = None


class DeliveryChargeRequest(BaseModel):
    country: str = "Bangladesh"
    city: str
    cart_total: float = Field(ge=0)


class TariffRequest(BaseModel):
    courier: str = "steadfast"
    origin_district: str
    destination_district: str
    service_type: str = "regular"
    category: str = "regular"
    base_weight_kg: float = 0.5
    max_weight_kg: float = 1.0
    price: float = Field(ge=0)
    active: bool = True


class TariffUpdateRequest(BaseModel):
    courier: str | None = None
    origin_district: str | None = None
    destination_district: str | None = None
    service_type: str | None = None
    category: str | None = None
    base_weight_kg: float | None = None
    max_weight_kg: float | None = None
    price: float | None = Field(default=None, ge=0)
    active: bool | None = None


class ShippingSettingsRequest(BaseModel):
    default_local_charge: float | None = Field(default=None, ge=0)
    default_outside_charge: float | None = Field(default=None, ge=0)
    free_shipping_enabled: bool | None = None
    free_shipping_threshold: float | None = Field(default=None, ge=0)
    origin_district: str | None = None
    courier_enabled: bool | None = None


class CourierReturnRequest(BaseModel):
    reason: str
    invoice: str | None = None
    consignment_id: str | None = None


class ConfigureCourierRequest(BaseModel):
    should_succeed: bool = True
    failure: str = "PartnerRejected"
    failure_reason: str = "Courier unavailable"
    configured: bool = True
    pickup_scheduled: bool = True


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------
class StatusResponse(BaseModel):
    status: str


class PurgeResponse(BaseModel):
    purged: int


class CourierInfo(BaseModel):
    partner_name: str | None = None
    tracking_id: str | None = None
    consignment_id: str | None = None
    status_raw: str | None = None
    status_friendly: str | None = None
    last_synced_at: datetime | None = None
    error: str | None = None


class OrderItemResponse(BaseModel):
    product_id: str
    variant_id: str | None = None
    title: str | None = None
    quantity: int
    unit_price: float


class OrderNoteResponse(BaseModel):
    message: str
    created_at: datetime | None = None


class OrderResponse(BaseModel):
    order_id: str
    order_number: str | None = None
    user_id: str | None = None
    status: str
    payment_method: str
    payment_status: str
    total: float
    shipping_charge: float
    discount: float
    coupon_code: str | None = None
    items: list[OrderItemResponse]
    notes: list[OrderNoteResponse]
    courier: CourierInfo | None = None
    delivered_at: datetime | None = None
    created_at: datetime | None = None

    @classmethod
    def from_order(cls, order) -> "OrderResponse":
        courier = None
        if order.courier:
            courier = CourierInfo(
                partner_name=order.courier.partner_name,
                tracking_id=order.courier.tracking_id,
                consignment_id=order.courier.consignment_id,
                status_raw=order.courier.status_raw,
                status_friendly=order.courier.status_friendly,
                last_synced_at=order.courier.last_synced_at,
                error=order.courier.error,
            )
        return cls(
            order_id=str(order.id),
            order_number=order.order_number,
            user_id=str(order.user_id) if order.user_id else None,
            status=order.status,
            payment_method=order.payment_method,
            payment_status=order.payment_status,
            total=order.total,
            shipping_charge=order.shipping_charge,
            discount=order.discount,
            coupon_code=order.coupon_code,
            items=[
                OrderItemResponse(
                    product_id=str(item.product_id),
                    variant_id=item.variant_id,
                    title=item.title,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                )
                for item in order.items
            ],
            notes=[OrderNoteResponse(message=n.message, created_at=n.created_at) for n in order.notes],
            courier=courier,
            delivered_at=order.delivered_at,
            created_at=order.created_at,
        )


class PickupResponse(BaseModel):
    consignment_id: str | None = None
    tracking_code: str | None = None
    status: str | None = None
    pickup_date: datetime | None = None
    error: str | None = None


class ReturnItemResponse(BaseModel):
    product_id: str
    variant_id: str | None = None
    title: str | None = None
    quantity: int
    unit_price: float
    reason: str | None = None


class ReturnResponse(BaseModel):
    return_id: str
    order_id: str
    order_number: str | None = None
    user_id: str
    status: str
    reason: str
    reason_details: str | None = None
    admin_notes: str | None = None
    refund_type: str
    refund_amount: float
    coupon_code: str | None = None
    items: list[ReturnItemResponse]
    pickup: PickupResponse | None = None
    created_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_return(cls, rr) -> "ReturnResponse":
        pickup = None
        if rr.steadfast_data:
            pickup = PickupResponse(
                consignment_id=rr.steadfast_data.consignment_id,
                tracking_code=rr.steadfast_data.tracking_code,
                status=rr.steadfast_data.status,
                pickup_date=rr.steadfast_data.pickup_date,
                error=rr.steadfast_data.error,
            )
        return cls(
            return_id=str(rr.id),
            order_id=str(rr.order_id),
            order_number=rr.order_number,
            user_id=str(rr.user_id),
            status=rr.status,
            reason=rr.reason,
            reason_details=rr.reason_details,
            admin_notes=rr.admin_notes,
            refund_type=rr.refund_type,
            refund_amount=rr.refund_amount,
            coupon_code=rr.coupon_code,
            items=[
                ReturnItemResponse(
                    product_id=str(item.product_id),
                    variant_id=item.variant_id,
                    title=item.title,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    reason=item.reason,
                )
                for item in rr.items
            ],
            pickup=pickup,
            created_at=rr.created_at,
            completed_at=rr.completed_at,
        )


class DeliveryQuoteResponse(BaseModel):
    available: bool
    courier: str | None = None
    delivery_charge: float | None = None
    message: str | None = None


class DestinationsResponse(BaseModel):
    destinations: list[dict]
    from_cache: bool
    cached_at: datetime | None = None
    reason: str | None = None


class CourierStatusResponse(BaseModel):
    tracking_code: str
    status_raw: str | None = None
    status_friendly: str


class SyncSummaryResponse(BaseModel):
    checked: int
    updated: int
    failed: int


class ActivityResponse(BaseModel):
    actor_id: str | None = None
    action: str
    entity: str | None = None
    meta: dict
    created_at: datetime | None = None
