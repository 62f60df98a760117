"""ReturnRequest aggregate (CQRS) — the return workflow for a delivered order.

State Machine (strictly forward):
    PENDING → {APPROVED, REJECTED}
    APPROVED → {PICKUP_SCHEDULED, RECEIVED}
    PICKUP_SCHEDULED → {IN_TRANSIT, RECEIVED}
    IN_TRANSIT → RECEIVED
    RECEIVED → COMPLETED
    REJECTED and COMPLETED are terminal
"""

from datetime import UTC, datetime, timedelta
from enum import Enum

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

from fulfillment.domain import fulfillment
from fulfillment.order.order import OrderStatus
from fulfillment.returns.events import (
    ReturnApproved,
    ReturnCompleted,
    ReturnInTransit,
    ReturnPickupScheduled,
    ReturnReceived,
    ReturnRejected,
    ReturnRequested,
)
from fulfillment.shared.deletion import Party, soft_delete
from fulfillment.shared.errors import InvalidTransition, OutOfWindow

RETURN_WINDOW_DAYS = 7


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class ReturnStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PICKUP_SCHEDULED = "pickup_scheduled"
    IN_TRANSIT = "in_transit"
    RECEIVED = "received"
    COMPLETED = "completed"


class RefundType(Enum):
    PENDING = "pending"
    REFUND = "refund"
    COUPON = "coupon"
    NONE = "none"


class ReturnReason(Enum):
    DEFECTIVE = "defective"
    WRONG_ITEM = "wrong_item"
    NOT_AS_DESCRIBED = "not_as_described"
    CHANGED_MIND = "changed_mind"
    OTHER = "other"


_VALID_TRANSITIONS = {
    ReturnStatus.PENDING: {ReturnStatus.APPROVED, ReturnStatus.REJECTED},
    ReturnStatus.APPROVED: {ReturnStatus.PICKUP_SCHEDULED, ReturnStatus.RECEIVED},
    ReturnStatus.PICKUP_SCHEDULED: {ReturnStatus.IN_TRANSIT, ReturnStatus.RECEIVED},
    ReturnStatus.IN_TRANSIT: {ReturnStatus.RECEIVED},
    ReturnStatus.RECEIVED: {ReturnStatus.COMPLETED},
    ReturnStatus.REJECTED: set(),  # terminal
    ReturnStatus.COMPLETED: set(),  # terminal
}

OPEN_STATUSES = {
    ReturnStatus.PENDING.value,
    ReturnStatus.APPROVED.value,
    ReturnStatus.PICKUP_SCHEDULED.value,
    ReturnStatus.IN_TRANSIT.value,
    ReturnStatus.RECEIVED.value,
}
DELETABLE_STATUSES = {ReturnStatus.COMPLETED.value, ReturnStatus.REJECTED.value}


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=UTC)


def is_within_return_window(order, as_of: datetime | None = None, window_days: int = RETURN_WINDOW_DAYS) -> bool:
    """True when the order was delivered (or last updated) no more than ``window_days`` ago."""
    reference = order.delivered_at or order.updated_at
    if reference is None:
        return False
    as_of = _as_utc(as_of or datetime.now(UTC))
    elapsed = as_of - _as_utc(reference)
    return elapsed <= timedelta(days=window_days)


def _snapshot_items(order, requested: list[dict] | None) -> list[dict]:
    """Price returned lines from the order, never from the caller. No selection means every line."""
    lines = list(order.items or [])
    if requested is None:
        requested = [
            {"product_id": line.product_id, "variant_id": line.variant_id, "quantity": line.quantity} for line in lines
        ]

    snapshot = []
    for wanted in requested:
        line = next(
            (
                candidate
                for candidate in lines
                if str(candidate.product_id) == str(wanted.get("product_id"))
                and (candidate.variant_id or None) == (wanted.get("variant_id") or None)
            ),
            None,
        )
        if line is None:
            raise ValidationError({"items": [f"Product {wanted.get('product_id')} is not part of this order"]})
        quantity = int(wanted.get("quantity") or line.quantity)
        if quantity > line.quantity:
            raise ValidationError(
                {"items": [f"Cannot return more than {line.quantity} of {line.title or line.product_id}"]}
            )
        item = {
            "product_id": line.product_id,
            "variant_id": line.variant_id,
            "title": line.title,
            "quantity": quantity,
            "unit_price": line.unit_price,
        }
        if wanted.get("reason"):
            item["reason"] = wanted["reason"]
        snapshot.append(item)
    return snapshot


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@fulfillment.value_object(part_of="ReturnRequest")
class PickupInfo:
    """Courier pickup for the returned parcel."""

    consignment_id = String(max_length=100)
    tracking_code = String(max_length=100)
    status = String(max_length=100)
    pickup_date = DateTime()
    error = String(max_length=1000)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@fulfillment.entity(part_of="ReturnRequest")
class ReturnItem:
    """A returned line, priced as it was on the order."""

    product_id = Identifier(required=True)
    variant_id = String(max_length=100)
    title = String(max_length=255)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(required=True, min_value=0.0)
    reason = String(max_length=50)


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@fulfillment.aggregate
class ReturnRequest:
    order_id = Identifier(required=True)
    order_number = String(max_length=50)
    user_id = Identifier(required=True)
    items = HasMany(ReturnItem)
    status = String(choices=ReturnStatus, default=ReturnStatus.PENDING.value)
    reason = String(required=True, choices=ReturnReason)
    reason_details = Text()
    admin_notes = Text()
    processed_by = Identifier()
    refund_type = String(choices=RefundType, default=RefundType.PENDING.value)
    refund_amount = Float(default=0.0, min_value=0.0)
    coupon_code = String(max_length=50)
    steadfast_data = ValueObject(PickupInfo)
    approved_at = DateTime()
    rejected_at = DateTime()
    pickup_scheduled_at = DateTime()
    in_transit_at = DateTime()
    received_at = DateTime()
    completed_at = DateTime()
    hidden_from_user = Boolean(default=False)
    hidden_from_admin = Boolean(default=False)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def file(
        cls,
        order,
        user_id: str,
        reason: str,
        reason_details: str | None = None,
        items_data: list[dict] | None = None,
        as_of: datetime | None = None,
    ):
        """File a return against a delivered order inside the return window."""
        if order.status != OrderStatus.DELIVERED.value:
            raise OutOfWindow({"order": ["Only delivered orders can be returned"]})
        if not is_within_return_window(order, as_of):
            raise OutOfWindow(
                {
                    "order": [
                        f"Return window has expired. Returns must be requested within "
                        f"{RETURN_WINDOW_DAYS} days of delivery."
                    ]
                }
            )

        try:
            reason = ReturnReason(reason).value
        except ValueError as exc:
            raise ValidationError({"reason": [f"Unknown return reason: {reason}"]}) from exc
        items_data = _snapshot_items(order, items_data)
        if not items_data:
            raise ValidationError({"items": ["A return needs at least one item"]})

        now = _as_utc(as_of) if as_of else datetime.now(UTC)
        rr = cls(
            order_id=str(order.id),
            order_number=order.order_number,
            user_id=user_id,
            status=ReturnStatus.PENDING.value,
            reason=reason,
            reason_details=reason_details,
            refund_type=RefundType.PENDING.value,
            created_at=now,
            updated_at=now,
        )
        for item_data in items_data:
            rr.add_items(ReturnItem(**{"reason": reason, **item_data}))

        rr.raise_(
            ReturnRequested(
                return_id=str(rr.id),
                order_id=str(order.id),
                user_id=user_id,
                reason=reason,
                item_count=len(items_data),
                requested_at=now,
            )
        )
        return rr

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target_status: ReturnStatus) -> None:
        current = ReturnStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise InvalidTransition({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def compute_refund_amount(self) -> float:
        return sum((item.unit_price or 0.0) * (item.quantity or 0) for item in self.items or [])

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    # -------------------------------------------------------------------
    # Review
    # -------------------------------------------------------------------
    def approve(self, admin_id: str | None, admin_notes: str | None = None) -> None:
        self._assert_can_transition(ReturnStatus.APPROVED)
        now = datetime.now(UTC)
        self.status = ReturnStatus.APPROVED.value
        self.admin_notes = admin_notes
        self.processed_by = admin_id
        self.approved_at = now
        self.updated_at = now
        self.raise_(
            ReturnApproved(
                return_id=str(self.id),
                order_id=str(self.order_id),
                processed_by=admin_id,
                approved_at=now,
            )
        )

    def reject(self, admin_id: str | None, reason: str) -> None:
        if not reason or not reason.strip():
            raise ValidationError({"reason": ["A rejection reason is required"]})
        self._assert_can_transition(ReturnStatus.REJECTED)
        now = datetime.now(UTC)
        self.status = ReturnStatus.REJECTED.value
        self.admin_notes = reason
        self.processed_by = admin_id
        self.rejected_at = now
        self.updated_at = now
        self.raise_(
            ReturnRejected(
                return_id=str(self.id),
                order_id=str(self.order_id),
                reason=reason,
                rejected_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Pickup
    # -------------------------------------------------------------------
    def record_pickup(self, consignment_id: str | None, tracking_code: str | None, status: str | None) -> None:
        self._assert_can_transition(ReturnStatus.PICKUP_SCHEDULED)
        now = datetime.now(UTC)
        self.status = ReturnStatus.PICKUP_SCHEDULED.value
        self.steadfast_data = PickupInfo(
            consignment_id=consignment_id,
            tracking_code=tracking_code,
            status=status or "initiated",
            pickup_date=now,
        )
        self.pickup_scheduled_at = now
        self.updated_at = now
        self.raise_(
            ReturnPickupScheduled(
                return_id=str(self.id),
                consignment_id=consignment_id,
                tracking_code=tracking_code,
                scheduled_at=now,
            )
        )

    def record_pickup_error(self, error: str) -> None:
        """Keep the courier error; the return stays APPROVED so pickup can be retried."""
        self.steadfast_data = PickupInfo(error=(error or "Failed to schedule pickup")[:1000])
        self.updated_at = datetime.now(UTC)

    def mark_in_transit(self, admin_id: str | None = None) -> None:
        self._assert_can_transition(ReturnStatus.IN_TRANSIT)
        now = datetime.now(UTC)
        self.status = ReturnStatus.IN_TRANSIT.value
        self.processed_by = admin_id or self.processed_by
        self.in_transit_at = now
        self.updated_at = now
        self.raise_(ReturnInTransit(return_id=str(self.id), in_transit_at=now))

    def mark_received(self, admin_id: str | None = None) -> None:
        self._assert_can_transition(ReturnStatus.RECEIVED)
        now = datetime.now(UTC)
        self.status = ReturnStatus.RECEIVED.value
        self.processed_by = admin_id or self.processed_by
        self.received_at = now
        self.updated_at = now
        self.raise_(
            ReturnReceived(
                return_id=str(self.id),
                order_id=str(self.order_id),
                received_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Settlement
    # -------------------------------------------------------------------
    def complete(
        self,
        refund_type: str,
        admin_id: str | None = None,
        admin_notes: str | None = None,
        coupon_code: str | None = None,
    ) -> None:
        """Settle the return. Irreversible; the refund amount is fixed here from the item snapshot."""
        self._assert_can_transition(ReturnStatus.COMPLETED)
        refund = RefundType(refund_type) if refund_type in {r.value for r in RefundType} else None
        if refund not in (RefundType.REFUND, RefundType.COUPON):
            raise ValidationError({"refund_type": ['Invalid refund type. Must be "refund" or "coupon"']})
        if refund == RefundType.COUPON and not coupon_code:
            raise ValidationError({"coupon_code": ["A coupon code is required for coupon settlement"]})

        now = datetime.now(UTC)
        self.refund_type = refund.value
        self.refund_amount = self.compute_refund_amount()
        self.coupon_code = coupon_code if refund == RefundType.COUPON else None
        if admin_notes:
            self.admin_notes = admin_notes
        self.processed_by = admin_id or self.processed_by
        self.status = ReturnStatus.COMPLETED.value
        self.completed_at = now
        self.updated_at = now
        self.raise_(
            ReturnCompleted(
                return_id=str(self.id),
                order_id=str(self.order_id),
                refund_type=self.refund_type,
                refund_amount=self.refund_amount,
                coupon_code=self.coupon_code,
                completed_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Visibility
    # -------------------------------------------------------------------
    def hide_for(self, party: Party) -> None:
        soft_delete(self, party, DELETABLE_STATUSES)
        self.updated_at = datetime.now(UTC)
