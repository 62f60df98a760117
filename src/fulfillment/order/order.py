"""Order aggregate (CQRS) — order status, courier sub-record and visibility flags.

State Machine:
    PENDING → {CONFIRMED, DELIVERED, CANCELLED}
    CONFIRMED → {SHIPPED, DELIVERED, CANCELLED}
    SHIPPED → {DELIVERED, CANCELLED}
    DELIVERED → RETURNED → DELIVERED (return rejected)
    CANCELLED is terminal

Courier dispatch is guarded by ``dispatch_state``: an order is claimed before
the courier call and becomes DISPATCHED once a tracking id is stored. A claim
or a tracking id both block a second dispatch.
"""

from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from fulfillment.courier.status import FriendlyStatus
from fulfillment.domain import fulfillment
from fulfillment.order.events import (
    CourierStatusSynced,
    OrderCancelled,
    OrderDispatched,
    OrderDispatchFailed,
    OrderPlaced,
    OrderStatusChanged,
)
from fulfillment.shared.deletion import Party, soft_delete
from fulfillment.shared.errors import AlreadyDispatched, InvalidTransition, PriceMismatch


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"


class PaymentMethod(Enum):
    COD = "cod"
    ONLINE = "online"


class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"


class DispatchState(Enum):
    NONE = "none"
    CLAIMED = "claimed"
    DISPATCHED = "dispatched"


_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: {OrderStatus.RETURNED},
    OrderStatus.RETURNED: {OrderStatus.DELIVERED},
    OrderStatus.CANCELLED: set(),  # terminal
}

_MANUALLY_CANCELLABLE = {OrderStatus.PENDING, OrderStatus.CONFIRMED}
_DISPATCHABLE = {OrderStatus.PENDING, OrderStatus.CONFIRMED}
# Statuses the courier merge rule may still move
_RECONCILABLE = {OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.SHIPPED}
DELETABLE_STATUSES = {OrderStatus.DELIVERED.value, OrderStatus.CANCELLED.value}


def generate_order_number(now: datetime | None = None) -> str:
    now = now or datetime.now(UTC)
    return f"ORD-{now:%Y%m%d}-{uuid4().hex[:6].upper()}"


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@fulfillment.value_object(part_of="Order")
class ShippingAddress:
    """Recipient snapshot taken at checkout."""

    name = String(max_length=100)
    phone = String(max_length=20)
    email = String(max_length=255)
    address = String(max_length=250)
    city = String(max_length=100)
    country = String(max_length=100, default="Bangladesh")


@fulfillment.value_object(part_of="Order")
class CourierShipment:
    """Courier-side view of the parcel."""

    partner_name = String(max_length=50)
    tracking_id = String(max_length=100)
    consignment_id = String(max_length=100)
    status_raw = String(max_length=100)
    status_friendly = String(max_length=50)
    delivery_charge = Float()
    last_synced_at = DateTime()
    error = String(max_length=1000)


_COURIER_FIELDS = (
    "partner_name",
    "tracking_id",
    "consignment_id",
    "status_raw",
    "status_friendly",
    "delivery_charge",
    "last_synced_at",
    "error",
)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@fulfillment.entity(part_of="Order")
class OrderItem:
    product_id = Identifier(required=True)
    variant_id = String(max_length=100)
    sku = String(max_length=100)
    title = String(max_length=255)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)

    @property
    def line_total(self) -> float:
        return (self.unit_price or 0.0) * (self.quantity or 0)


@fulfillment.entity(part_of="Order")
class OrderNote:
    message = Text(required=True)
    created_at = DateTime()


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@fulfillment.aggregate
class Order:
    user_id = Identifier()
    order_number = String(max_length=50)
    items = HasMany(OrderItem)
    shipping = ValueObject(ShippingAddress)
    payment_method = String(choices=PaymentMethod, default=PaymentMethod.COD.value)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    dispatch_state = String(choices=DispatchState, default=DispatchState.NONE.value)
    courier = ValueObject(CourierShipment)
    total = Float(default=0.0, min_value=0.0)
    shipping_charge = Float(default=0.0, min_value=0.0)
    discount = Float(default=0.0, min_value=0.0)
    coupon_code = String(max_length=50)
    notes = HasMany(OrderNote)
    hidden_from_user = Boolean(default=False)
    hidden_from_admin = Boolean(default=False)
    delivered_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        user_id: str | None,
        items_data: list[dict],
        shipping: dict,
        payment_method: str = PaymentMethod.COD.value,
        shipping_charge: float = 0.0,
        discount: float = 0.0,
        coupon_code: str | None = None,
    ):
        """Place a new order. Always starts PENDING."""
        if not items_data:
            raise ValidationError({"items": ["An order needs at least one item"]})

        now = datetime.now(UTC)
        order = cls(
            user_id=user_id,
            order_number=generate_order_number(now),
            shipping=ShippingAddress(**shipping),
            payment_method=payment_method,
            payment_status=PaymentStatus.PENDING.value,
            status=OrderStatus.PENDING.value,
            dispatch_state=DispatchState.NONE.value,
            shipping_charge=shipping_charge or 0.0,
            discount=discount or 0.0,
            coupon_code=coupon_code,
            created_at=now,
            updated_at=now,
        )
        for item_data in items_data:
            order.add_items(OrderItem(**item_data))

        subtotal = sum(item.line_total for item in order.items)
        order.total = max(0.0, subtotal - (discount or 0.0))

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order.order_number,
                user_id=user_id,
                total=order.total,
                shipping_charge=order.shipping_charge,
                item_count=len(items_data),
                payment_method=payment_method,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    @property
    def tracking_id(self) -> str | None:
        return self.courier.tracking_id if self.courier else None

    @property
    def cod_amount(self) -> float:
        return max(0.0, (self.total or 0.0) + (self.shipping_charge or 0.0))

    def add_note(self, message: str) -> None:
        self.add_notes(OrderNote(message=message, created_at=datetime.now(UTC)))

    def _update_courier(self, **changes) -> None:
        values = {name: getattr(self.courier, name) if self.courier else None for name in _COURIER_FIELDS}
        values.update(changes)
        self.courier = CourierShipment(**values)

    def _assert_can_transition(self, target_status: OrderStatus) -> None:
        current = OrderStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise InvalidTransition({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def _transition(self, target_status: OrderStatus) -> None:
        self._assert_can_transition(target_status)
        previous = self.status
        now = datetime.now(UTC)
        self.status = target_status.value
        if target_status == OrderStatus.DELIVERED:
            self.delivered_at = now
        self.updated_at = now
        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                previous_status=previous,
                new_status=self.status,
                payment_status=self.payment_status,
                changed_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Courier dispatch
    # -------------------------------------------------------------------
    def claim_dispatch(self, require_cod: bool = False, expected_charge: float | None = None) -> None:
        """Reserve the order for one courier dispatch attempt."""
        if self.tracking_id or self.dispatch_state == DispatchState.DISPATCHED.value:
            raise AlreadyDispatched({"courier": ["Courier order already created"]})
        if self.dispatch_state == DispatchState.CLAIMED.value:
            raise AlreadyDispatched({"courier": ["Courier dispatch already in progress"]})
        if require_cod and self.payment_method != PaymentMethod.COD.value:
            raise InvalidTransition({"payment_method": ["Courier order allowed only for COD payments"]})
        if expected_charge is not None and float(expected_charge) != float(self.shipping_charge or 0.0):
            raise PriceMismatch(
                {"expected_delivery_charge": ["Delivery charge mismatch. Please refresh checkout and try again."]}
            )
        if OrderStatus(self.status) not in _DISPATCHABLE:
            raise InvalidTransition({"status": [f"Cannot dispatch an order in status {self.status}"]})
        self.dispatch_state = DispatchState.CLAIMED.value
        self.updated_at = datetime.now(UTC)

    def record_dispatch(
        self,
        partner_name: str,
        tracking_id: str,
        consignment_id: str | None,
        status_raw: str | None,
        status_friendly: FriendlyStatus,
    ) -> None:
        if self.dispatch_state != DispatchState.CLAIMED.value:
            raise InvalidTransition({"courier": ["Dispatch was not claimed"]})

        now = datetime.now(UTC)
        self._update_courier(
            partner_name=partner_name,
            tracking_id=tracking_id,
            consignment_id=consignment_id,
            status_raw=status_raw,
            status_friendly=status_friendly.value,
            delivery_charge=self.shipping_charge,
            last_synced_at=now,
            error=None,
        )
        self.dispatch_state = DispatchState.DISPATCHED.value
        if OrderStatus(self.status) != OrderStatus.CONFIRMED:
            self._transition(OrderStatus.CONFIRMED)
        self.updated_at = now
        self.raise_(
            OrderDispatched(
                order_id=str(self.id),
                tracking_id=tracking_id,
                consignment_id=consignment_id,
                courier_status=status_raw,
                dispatched_at=now,
            )
        )

    def record_dispatch_failure(self, partner_name: str, error: str, reason: str | None = None) -> None:
        """Release the claim and keep the error on the courier sub-record."""
        now = datetime.now(UTC)
        self.dispatch_state = DispatchState.NONE.value
        self._update_courier(partner_name=partner_name, error=error[:1000])
        self.updated_at = now
        self.raise_(
            OrderDispatchFailed(
                order_id=str(self.id),
                error=error[:1000],
                reason=reason,
                failed_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Reconciliation
    # -------------------------------------------------------------------
    def apply_courier_status(self, status_raw: str | None, status_friendly: FriendlyStatus) -> OrderStatus | None:
        """Merge a courier status into the order. One-way: only Delivered and Cancelled move the order.

        Returns the new order status when it changed.
        """
        now = datetime.now(UTC)
        self._update_courier(
            status_raw=status_raw,
            status_friendly=status_friendly.value,
            last_synced_at=now,
            error=None,
        )
        self.updated_at = now
        self.raise_(
            CourierStatusSynced(
                order_id=str(self.id),
                tracking_id=self.tracking_id or "",
                status_raw=status_raw,
                status_friendly=status_friendly.value,
                synced_at=now,
            )
        )

        if OrderStatus(self.status) not in _RECONCILABLE:
            return None
        if status_friendly == FriendlyStatus.DELIVERED:
            self.payment_status = PaymentStatus.PAID.value
            self._transition(OrderStatus.DELIVERED)
            return OrderStatus.DELIVERED
        if status_friendly == FriendlyStatus.CANCELLED:
            self.cancel(f"Cancelled by courier (status: {status_raw})", by_courier=True)
            return OrderStatus.CANCELLED
        return None

    def record_sync_error(self, error: str) -> None:
        self._update_courier(error=error[:1000])
        self.updated_at = datetime.now(UTC)

    # -------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------
    def cancel(self, reason: str, by_courier: bool = False) -> bool:
        """Cancel the order. Returns False when it was already cancelled."""
        current = OrderStatus(self.status)
        if current == OrderStatus.CANCELLED:
            return False
        if not by_courier and current not in _MANUALLY_CANCELLABLE:
            raise InvalidTransition({"status": [f"Cannot cancel an order in status {current.value}"]})

        self._assert_can_transition(OrderStatus.CANCELLED)
        now = datetime.now(UTC)
        self.status = OrderStatus.CANCELLED.value
        self.add_note(reason)
        self.updated_at = now
        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                previous_status=current.value,
                reason=reason,
                cancelled_at=now,
            )
        )
        return True

    # -------------------------------------------------------------------
    # Admin status updates and returns
    # -------------------------------------------------------------------
    def update_status(self, target_status: str, payment_status: str | None = None, note: str | None = None) -> None:
        try:
            target = OrderStatus(target_status)
            payment = PaymentStatus(payment_status) if payment_status else None
        except ValueError as exc:
            raise ValidationError({"status": [str(exc)]}) from exc
        if target in (OrderStatus.CANCELLED, OrderStatus.RETURNED):
            raise InvalidTransition({"status": [f"Use the dedicated workflow to move an order to {target.value}"]})
        if payment:
            self.payment_status = payment.value
        if target != OrderStatus(self.status):
            self._transition(target)
        if note:
            self.add_note(note)
        self.updated_at = datetime.now(UTC)

    def update_payment_status(self, payment_status: str) -> None:
        self.payment_status = PaymentStatus(payment_status).value
        self.updated_at = datetime.now(UTC)

    def mark_returned(self, note: str) -> None:
        self._transition(OrderStatus.RETURNED)
        self.add_note(note)

    def restore_delivered(self, note: str) -> None:
        self._assert_can_transition(OrderStatus.DELIVERED)
        previous = self.status
        now = datetime.now(UTC)
        # delivered_at keeps the original delivery time
        self.status = OrderStatus.DELIVERED.value
        self.updated_at = now
        self.add_note(note)
        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                previous_status=previous,
                new_status=self.status,
                payment_status=self.payment_status,
                changed_at=now,
            )
        )

    def mark_refunded(self, note: str | None = None) -> None:
        self.payment_status = PaymentStatus.REFUNDED.value
        if note:
            self.add_note(note)
        self.updated_at = datetime.now(UTC)

    # -------------------------------------------------------------------
    # Visibility
    # -------------------------------------------------------------------
    def hide_for(self, party: Party) -> None:
        soft_delete(self, party, DELETABLE_STATUSES)
        self.updated_at = datetime.now(UTC)
