"""Return request domain events — one per stage of the return workflow."""

from protean.fields import DateTime, Float, Identifier, Integer, String

from fulfillment.domain import fulfillment


@fulfillment.event(part_of="ReturnRequest")
class ReturnRequested:
    """A customer filed a return for a delivered order."""

    __version__ = 1

    return_id = Identifier(required=True)
    order_id = Identifier(required=True)
    user_id = Identifier(required=True)
    reason = String(required=True)
    item_count = Integer(required=True)
    requested_at = DateTime(required=True)


@fulfillment.event(part_of="ReturnRequest")
class ReturnApproved:
    __version__ = 1

    return_id = Identifier(required=True)
    order_id = Identifier(required=True)
    processed_by = Identifier()
    approved_at = DateTime(required=True)


@fulfillment.event(part_of="ReturnRequest")
class ReturnPickupScheduled:
    """The courier accepted a pickup request for the returned parcel."""

    __version__ = 1

    return_id = Identifier(required=True)
    consignment_id = String()
    tracking_code = String()
    scheduled_at = DateTime(required=True)


@fulfillment.event(part_of="ReturnRequest")
class ReturnRejected:
    __version__ = 1

    return_id = Identifier(required=True)
    order_id = Identifier(required=True)
    reason = String(required=True)
    rejected_at = DateTime(required=True)


@fulfillment.event(part_of="ReturnRequest")
class ReturnInTransit:
    __version__ = 1

    return_id = Identifier(required=True)
    in_transit_at = DateTime(required=True)


@fulfillment.event(part_of="ReturnRequest")
class ReturnReceived:
    """Returned items arrived at the warehouse."""

    __version__ = 1

    return_id = Identifier(required=True)
    order_id = Identifier(required=True)
    received_at = DateTime(required=True)


@fulfillment.event(part_of="ReturnRequest")
class ReturnCompleted:
    """The return was settled by manual refund or store-credit coupon."""

    __version__ = 1

    return_id = Identifier(required=True)
    order_id = Identifier(required=True)
    refund_type = String(required=True)
    refund_amount = Float(required=True)
    coupon_code = String()
    completed_at = DateTime(required=True)
