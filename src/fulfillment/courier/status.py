"""Courier status mapping — partner vocabulary to the internal friendly status.

The partner reports free-form status strings. They are bucketed through
explicit allow-lists; anything unrecognised lands in ``Pending`` so an unknown
value flags the shipment for attention instead of closing the order.
"""

from enum import Enum


class FriendlyStatus(Enum):
    PENDING = "Pending"
    PICKED = "Picked"
    IN_TRANSIT = "In Transit"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


_BUCKETS = {
    FriendlyStatus.PENDING: frozenset({"pending", "in_review", "unknown", "hold"}),
    FriendlyStatus.IN_TRANSIT: frozenset({"delivered_approval_pending", "partial_delivered_approval_pending"}),
    FriendlyStatus.PICKED: frozenset({"partial_delivered"}),
    FriendlyStatus.DELIVERED: frozenset({"delivered"}),
    FriendlyStatus.CANCELLED: frozenset({"cancelled", "cancelled_approval_pending"}),
}

_LOOKUP = {raw: bucket for bucket, raws in _BUCKETS.items() for raw in raws}


def map_status(raw: str | None) -> FriendlyStatus:
    """Translate a raw partner status into a FriendlyStatus. Total and pure."""
    if not raw:
        return FriendlyStatus.PENDING
    return _LOOKUP.get(str(raw).strip().lower(), FriendlyStatus.PENDING)
