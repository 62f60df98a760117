"""Courier dispatch — claim, courier call, record.

Dispatch runs in three short steps so no lock or unit of work spans the
courier round-trip:

1. Claim: under the per-order lock, reload the order, check the guards and
   persist ``dispatch_state = claimed``. Only one caller can win the claim;
   a writer that loses the aggregate version check gets AlreadyDispatched.
2. Call the courier.
3. Record: on success store the tracking id and confirm the order; on
   failure release the claim, audit, and (checkout path, still pending)
   auto-cancel the order before re-raising the courier error. Any other
   error after the claim also releases it, so the order can be retried.
"""

import re

import structlog
from protean.exceptions import ExpectedVersionError
from protean.utils.globals import current_domain

from fulfillment.audit.activity_log import record_activity, record_activity_safely
from fulfillment.courier import get_courier
from fulfillment.courier.phone import normalize_bd_phone
from fulfillment.courier.port import ShipmentRequest
from fulfillment.courier.status import map_status
from fulfillment.order.cancellation import cancel_order
from fulfillment.order.order import Order, OrderStatus
from fulfillment.shared.errors import AlreadyDispatched, CourierError
from fulfillment.shared.locks import keyed_lock

logger = structlog.get_logger(__name__)

AUTO_CANCEL_NOTE = "Order auto-cancelled due to courier error"

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def build_shipment_request(order: Order) -> ShipmentRequest:
    shipping = order.shipping
    email = shipping.email if shipping and shipping.email and _EMAIL_RE.match(shipping.email) else None
    latest_note = None
    if order.notes:
        latest_note = max(order.notes, key=lambda n: n.created_at).message
    return ShipmentRequest(
        invoice=str(order.id),
        recipient_name=(shipping.name if shipping else None) or "Guest",
        recipient_phone=normalize_bd_phone(shipping.phone if shipping else None) or "",
        recipient_address=(shipping.address if shipping else None) or "",
        cod_amount=order.cod_amount,
        recipient_email=email,
        note=latest_note,
        item_description=f"{len(order.items)} item(s)",
    )


def _claim(order_id: str, via_admin: bool, expected_charge: float | None) -> Order:
    repo = current_domain.repository_for(Order)
    with keyed_lock("order", order_id):
        order = repo.get(order_id)
        if via_admin:
            order.claim_dispatch()
        else:
            order.claim_dispatch(require_cod=True, expected_charge=expected_charge)
        try:
            repo.add(order)
        except ExpectedVersionError as exc:
            raise AlreadyDispatched({"courier": ["Courier dispatch already in progress"]}) from exc
    return order


def _record_success(order_id: str, partner_name: str, result) -> Order:
    repo = current_domain.repository_for(Order)
    with keyed_lock("order", order_id):
        order = repo.get(order_id)
        order.record_dispatch(
            partner_name=partner_name,
            tracking_id=result.tracking_code,
            consignment_id=result.consignment_id,
            status_raw=result.status,
            status_friendly=map_status(result.status),
        )
        repo.add(order)
    return order


def _record_failure(order_id: str, partner_name: str, message: str, reason: str) -> Order:
    repo = current_domain.repository_for(Order)
    with keyed_lock("order", order_id):
        order = repo.get(order_id)
        order.record_dispatch_failure(partner_name, message, reason)
        repo.add(order)
    return order


def dispatch_order(
    order_id: str,
    expected_charge: float | None = None,
    actor_id: str | None = None,
    via_admin: bool = False,
) -> Order:
    """Create the courier consignment for an order.

    Checkout dispatch (``via_admin=False``) requires a COD order and, when
    given, a matching expected delivery charge. Admin approval skips both.
    Raises AlreadyDispatched, PriceMismatch, InvalidTransition or the
    courier's CourierError.
    """
    action = "courier_approve" if via_admin else "courier_create"
    order = _claim(order_id, via_admin, expected_charge)
    actor = actor_id or (str(order.user_id) if order.user_id else None)
    courier = get_courier()

    try:
        result = courier.dispatch(build_shipment_request(order))
        order = _record_success(order_id, courier.partner_name, result)
    except CourierError as exc:
        order = _record_failure(order_id, courier.partner_name, exc.message, type(exc).__name__)
        record_activity_safely(
            actor,
            f"{action}_failed",
            str(order_id),
            {
                "courier": courier.partner_name,
                "error": type(exc).__name__,
                "message": exc.message,
                "status": exc.status_code,
                "response": exc.body,
            },
        )
        logger.warning(
            "Courier dispatch failed",
            order_id=str(order_id),
            error=type(exc).__name__,
            message=exc.message,
            via_admin=via_admin,
        )
        if not via_admin and order.status == OrderStatus.PENDING.value:
            try:
                cancel_order(order_id, AUTO_CANCEL_NOTE, actor_id=actor)
            except Exception:
                logger.exception("Auto-cancel after courier failure did not complete", order_id=str(order_id))
        raise
    except Exception as exc:
        try:
            _record_failure(order_id, courier.partner_name, str(exc) or type(exc).__name__, type(exc).__name__)
        except Exception:
            logger.exception("Could not release the dispatch claim", order_id=str(order_id))
        record_activity_safely(
            actor,
            f"{action}_failed",
            str(order_id),
            {"courier": courier.partner_name, "error": type(exc).__name__, "message": str(exc)},
        )
        logger.exception("Courier dispatch aborted", order_id=str(order_id), via_admin=via_admin)
        raise

    record_activity(
        actor,
        f"{action}_success",
        str(order_id),
        {
            "courier": courier.partner_name,
            "tracking_id": result.tracking_code,
            "consignment_id": result.consignment_id,
        },
    )
    logger.info(
        "Courier dispatch succeeded",
        order_id=str(order_id),
        tracking_id=result.tracking_code,
        via_admin=via_admin,
    )
    return order
