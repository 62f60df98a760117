"""Order cancellation — command, handler and resource release.

Every cancellation path (manual, auto-cancel after a failed dispatch, courier
``Cancelled``) ends in ``release_order_resources``: stock goes back on the
shelf and the coupon usage is handed back to the customer.
"""

import structlog
from protean import handle
from protean.fields import Boolean, Identifier, String
from protean.utils.globals import current_domain

from fulfillment.audit.activity_log import record_activity_safely
from fulfillment.coupon.coupon import release_coupon_usage
from fulfillment.domain import fulfillment
from fulfillment.order.order import Order
from fulfillment.shared.locks import keyed_lock
from fulfillment.stock.stock import restore_items

logger = structlog.get_logger(__name__)


@fulfillment.command(part_of="Order")
class CancelOrder:
    """Cancel an order that has not shipped. Cancelling twice is a no-op."""

    order_id = Identifier(required=True)
    reason = String(required=True, max_length=500)
    actor_id = Identifier()
    by_courier = Boolean(default=False)


@fulfillment.command_handler(part_of=Order)
class CancelOrderHandler:
    @handle(CancelOrder)
    def cancel_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        changed = order.cancel(command.reason, by_courier=bool(command.by_courier))
        if changed:
            repo.add(order)
        return changed


def release_order_resources(order: Order, actor_id: str | None, reason: str) -> None:
    restore_items(order.items)
    release_coupon_usage(order.coupon_code, order.user_id)
    record_activity_safely(
        actor_id,
        "order_cancelled",
        str(order.id),
        {"reason": reason, "order_number": order.order_number, "coupon_code": order.coupon_code},
    )
    logger.info("Order cancelled", order_id=str(order.id), reason=reason)


def cancel_order(order_id: str, reason: str, actor_id: str | None = None, by_courier: bool = False) -> Order:
    with keyed_lock("order", order_id):
        changed = current_domain.process(
            CancelOrder(order_id=order_id, reason=reason, actor_id=actor_id, by_courier=by_courier),
            asynchronous=False,
        )
    order = current_domain.repository_for(Order).get(order_id)
    if changed:
        release_order_resources(order, actor_id, reason)
    return order
