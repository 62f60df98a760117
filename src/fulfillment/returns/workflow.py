"""Return workflow — commands, handlers and the services that wrap them.

Filing and rejection change the ReturnRequest and its Order in a single
handler, so both commit together. Courier pickup, stock restoration and
store-credit minting happen around the commands, never inside them.
"""

import json
from datetime import datetime

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, String, Text
from protean.utils.globals import current_domain

from fulfillment.audit.activity_log import record_activity, record_activity_safely
from fulfillment.coupon.coupon import deactivate_coupon, mint_store_credit
from fulfillment.courier import get_courier
from fulfillment.domain import fulfillment
from fulfillment.order.order import Order
from fulfillment.returns.return_request import OPEN_STATUSES, RefundType, ReturnRequest, ReturnStatus
from fulfillment.shared.errors import CourierError, InvalidTransition
from fulfillment.shared.locks import keyed_lock
from fulfillment.stock.stock import restore_items

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
@fulfillment.command(part_of="ReturnRequest")
class FileReturn:
    """File a return for a delivered order."""

    order_id = Identifier(required=True)
    user_id = Identifier(required=True)
    reason = String(required=True, max_length=50)
    reason_details = Text()
    items = Text()  # Optional JSON list of {product_id, variant_id, quantity, reason}
    as_of = DateTime()  # Optional: defaults to now


@fulfillment.command(part_of="ReturnRequest")
class ApproveReturn:
    return_id = Identifier(required=True)
    admin_id = Identifier()
    admin_notes = Text()


@fulfillment.command(part_of="ReturnRequest")
class RejectReturn:
    return_id = Identifier(required=True)
    admin_id = Identifier()
    reason = Text(required=True)


@fulfillment.command(part_of="ReturnRequest")
class MarkReturnInTransit:
    return_id = Identifier(required=True)
    admin_id = Identifier()


@fulfillment.command(part_of="ReturnRequest")
class MarkReturnReceived:
    return_id = Identifier(required=True)
    admin_id = Identifier()


@fulfillment.command(part_of="ReturnRequest")
class CompleteReturn:
    return_id = Identifier(required=True)
    refund_type = String(required=True, max_length=20)
    admin_id = Identifier()
    admin_notes = Text()
    coupon_code = String(max_length=50)


# ---------------------------------------------------------------------------
# Handler
# ---------------------------------------------------------------------------
@fulfillment.command_handler(part_of=ReturnRequest)
class ReturnRequestHandler:
    @handle(FileReturn)
    def file_return(self, command):
        order_repo = current_domain.repository_for(Order)
        order = order_repo.get(command.order_id)
        if str(order.user_id) != str(command.user_id):
            raise ValidationError({"order": ["You can only return your own orders"]})

        repo = current_domain.repository_for(ReturnRequest)
        existing = repo._dao.query.filter(order_id=str(order.id)).all().items
        if any(r.status in OPEN_STATUSES for r in existing):
            raise ValidationError({"order": ["A return request already exists for this order"]})

        items_data = json.loads(command.items) if command.items else None
        rr = ReturnRequest.file(
            order=order,
            user_id=command.user_id,
            reason=command.reason,
            reason_details=command.reason_details,
            items_data=items_data,
            as_of=command.as_of,
        )
        order.mark_returned("Return request submitted by customer")
        repo.add(rr)
        order_repo.add(order)
        return str(rr.id)

    @handle(ApproveReturn)
    def approve_return(self, command):
        repo = current_domain.repository_for(ReturnRequest)
        rr = repo.get(command.return_id)
        rr.approve(command.admin_id, command.admin_notes)
        repo.add(rr)

    @handle(RejectReturn)
    def reject_return(self, command):
        repo = current_domain.repository_for(ReturnRequest)
        rr = repo.get(command.return_id)
        rr.reject(command.admin_id, command.reason)
        repo.add(rr)

        order_repo = current_domain.repository_for(Order)
        order = order_repo.get(rr.order_id)
        order.restore_delivered(f"Return request rejected: {command.reason}")
        order_repo.add(order)

    @handle(MarkReturnInTransit)
    def mark_in_transit(self, command):
        repo = current_domain.repository_for(ReturnRequest)
        rr = repo.get(command.return_id)
        rr.mark_in_transit(command.admin_id)
        repo.add(rr)

    @handle(MarkReturnReceived)
    def mark_received(self, command):
        repo = current_domain.repository_for(ReturnRequest)
        rr = repo.get(command.return_id)
        rr.mark_received(command.admin_id)
        repo.add(rr)

    @handle(CompleteReturn)
    def complete_return(self, command):
        repo = current_domain.repository_for(ReturnRequest)
        rr = repo.get(command.return_id)
        rr.complete(command.refund_type, command.admin_id, command.admin_notes, command.coupon_code)
        repo.add(rr)

        order_repo = current_domain.repository_for(Order)
        order = order_repo.get(rr.order_id)
        if rr.refund_type == RefundType.COUPON.value:
            order.add_note(f"Return completed. Coupon issued: {rr.coupon_code} (৳{rr.refund_amount:.2f})")
        else:
            order.mark_refunded(f"Return completed. Refund of ৳{rr.refund_amount:.2f} to be processed manually.")
        order_repo.add(order)


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------
def _get(return_id: str) -> ReturnRequest:
    return current_domain.repository_for(ReturnRequest).get(return_id)


def file_return(
    order_id: str,
    user_id: str,
    reason: str,
    reason_details: str | None = None,
    items: list[dict] | None = None,
    as_of: datetime | None = None,
) -> ReturnRequest:
    return_id = current_domain.process(
        FileReturn(
            order_id=order_id,
            user_id=user_id,
            reason=reason,
            reason_details=reason_details,
            items=json.dumps(items) if items is not None else None,
            as_of=as_of,
        ),
        asynchronous=False,
    )
    record_activity(user_id, "return:file", return_id, {"order_id": str(order_id), "reason": reason})
    logger.info("Return filed", return_id=return_id, order_id=str(order_id))
    return _get(return_id)


def request_return_pickup(return_id: str, admin_id: str | None = None) -> ReturnRequest:
    """Ask the courier to collect the parcel. Best effort: a failure stays on ``steadfast_data.error``."""
    rr = _get(return_id)
    if rr.status != ReturnStatus.APPROVED.value:
        raise InvalidTransition({"status": ["Pickup can only be requested for approved returns"]})

    courier = get_courier()
    order = current_domain.repository_for(Order).get(rr.order_id)
    consignment_id = order.courier.consignment_id if order.courier else None
    repo = current_domain.repository_for(ReturnRequest)

    try:
        pickup = courier.request_return_pickup(rr.reason, invoice=str(order.id), consignment_id=consignment_id)
    except CourierError as exc:
        with keyed_lock("return", return_id):
            rr = repo.get(return_id)
            rr.record_pickup_error(exc.message)
            repo.add(rr)
        record_activity_safely(
            admin_id,
            "return:pickup_failed",
            str(return_id),
            {"error": type(exc).__name__, "message": exc.message, "status": exc.status_code},
        )
        logger.warning("Return pickup scheduling failed", return_id=str(return_id), message=exc.message)
        return rr

    if not pickup.scheduled:
        logger.info("Courier did not schedule a return pickup", return_id=str(return_id))
        return rr

    with keyed_lock("return", return_id):
        rr = repo.get(return_id)
        rr.record_pickup(pickup.consignment_id, pickup.tracking_code, pickup.status)
        repo.add(rr)
    record_activity(
        admin_id,
        "return:pickup_scheduled",
        str(return_id),
        {"consignment_id": pickup.consignment_id, "tracking_code": pickup.tracking_code},
    )
    return rr


def approve_return(return_id: str, admin_id: str | None = None, admin_notes: str | None = None) -> ReturnRequest:
    current_domain.process(
        ApproveReturn(return_id=return_id, admin_id=admin_id, admin_notes=admin_notes),
        asynchronous=False,
    )
    record_activity(admin_id, "return:approve", str(return_id), {"admin_notes": admin_notes})

    rr = _get(return_id)
    order = current_domain.repository_for(Order).get(rr.order_id)
    if order.courier and order.courier.partner_name == get_courier().partner_name:
        rr = request_return_pickup(return_id, admin_id)
    return rr


def reject_return(return_id: str, reason: str, admin_id: str | None = None) -> ReturnRequest:
    current_domain.process(
        RejectReturn(return_id=return_id, admin_id=admin_id, reason=reason),
        asynchronous=False,
    )
    record_activity(admin_id, "return:reject", str(return_id), {"reason": reason})
    return _get(return_id)


def mark_return_in_transit(return_id: str, admin_id: str | None = None) -> ReturnRequest:
    current_domain.process(MarkReturnInTransit(return_id=return_id, admin_id=admin_id), asynchronous=False)
    record_activity(admin_id, "return:in_transit", str(return_id), {})
    return _get(return_id)


def mark_return_received(return_id: str, admin_id: str | None = None) -> ReturnRequest:
    """Record arrival at the warehouse and put the returned quantities back in stock."""
    current_domain.process(MarkReturnReceived(return_id=return_id, admin_id=admin_id), asynchronous=False)
    rr = _get(return_id)
    restore_items(rr.items)

    order_repo = current_domain.repository_for(Order)
    with keyed_lock("order", rr.order_id):
        order = order_repo.get(rr.order_id)
        order.add_note("Returned items received at warehouse. Stock restored.")
        order_repo.add(order)

    record_activity(admin_id, "return:received", str(return_id), {"items": len(rr.items)})
    return rr


def complete_return(
    return_id: str,
    refund_type: str,
    admin_id: str | None = None,
    admin_notes: str | None = None,
) -> ReturnRequest:
    """Settle a received return by manual refund or store-credit coupon. Irreversible."""
    rr = _get(return_id)
    if rr.status != ReturnStatus.RECEIVED.value:
        raise InvalidTransition({"status": ["Products must be received before completing the return"]})
    if refund_type not in (RefundType.REFUND.value, RefundType.COUPON.value):
        raise ValidationError({"refund_type": ['Invalid refund type. Must be "refund" or "coupon"']})

    coupon_code = None
    if refund_type == RefundType.COUPON.value:
        coupon_code = mint_store_credit(rr.compute_refund_amount()).code

    try:
        current_domain.process(
            CompleteReturn(
                return_id=return_id,
                refund_type=refund_type,
                admin_id=admin_id,
                admin_notes=admin_notes,
                coupon_code=coupon_code,
            ),
            asynchronous=False,
        )
    except Exception:
        if coupon_code:
            deactivate_coupon(coupon_code)
            logger.warning(
                "Return completion failed, store credit withdrawn", return_id=str(return_id), code=coupon_code
            )
        raise

    rr = _get(return_id)
    record_activity(
        admin_id,
        "return:complete",
        str(return_id),
        {"refund_type": refund_type, "refund_amount": rr.refund_amount, "coupon_code": coupon_code},
    )
    logger.info("Return completed", return_id=str(return_id), refund_type=refund_type, amount=rr.refund_amount)
    return rr
