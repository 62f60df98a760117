"""Order domain events — immutable facts about order state changes.

``OrderPlaced`` is the ``order:new`` signal for notification observers.
"""

from protean.fields import DateTime, Float, Identifier, Integer, String

from fulfillment.domain import fulfillment


@fulfillment.event(part_of="Order")
class OrderPlaced:
    """A customer (or admin on their behalf) placed an order."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    user_id = Identifier()
    total = Float(required=True)
    shipping_charge = Float()
    item_count = Integer(required=True)
    payment_method = String(required=True)
    placed_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class OrderDispatched:
    """The courier accepted the parcel and issued a tracking code."""

    __version__ = 1

    order_id = Identifier(required=True)
    tracking_id = String(required=True)
    consignment_id = String()
    courier_status = String()
    dispatched_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class OrderDispatchFailed:
    """A courier dispatch attempt failed."""

    __version__ = 1

    order_id = Identifier(required=True)
    error = String(required=True)
    reason = String()
    failed_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class OrderStatusChanged:
    """The order moved along its state machine."""

    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    payment_status = String()
    changed_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class OrderCancelled:
    """The order was cancelled manually, after a failed dispatch, or by the courier."""

    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    reason = String()
    cancelled_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class CourierStatusSynced:
    """Courier status was re-read for the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    tracking_id = String(required=True)
    status_raw = String()
    status_friendly = String(required=True)
    synced_at = DateTime(required=True)
