"""Admin order management — status updates and notes."""

from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from fulfillment.audit.activity_log import record_activity
from fulfillment.domain import fulfillment
from fulfillment.order.cancellation import cancel_order
from fulfillment.order.order import Order, OrderStatus


@fulfillment.command(part_of="Order")
class UpdateOrderStatus:
    """Move an order along its state machine, optionally changing payment status."""

    order_id = Identifier(required=True)
    status = String(required=True, max_length=20)
    payment_status = String(max_length=20)
    note = Text()
    actor_id = Identifier()


@fulfillment.command(part_of="Order")
class AddOrderNote:
    order_id = Identifier(required=True)
    message = Text(required=True)
    actor_id = Identifier()


@fulfillment.command_handler(part_of=Order)
class OrderManagementHandler:
    @handle(UpdateOrderStatus)
    def update_status(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.update_status(command.status, command.payment_status, command.note)
        repo.add(order)

    @handle(AddOrderNote)
    def add_note(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.add_note(command.message)
        repo.add(order)


def update_order_status(
    order_id: str,
    status: str,
    payment_status: str | None = None,
    note: str | None = None,
    actor_id: str | None = None,
) -> Order:
    """Admin status change. Cancellation goes through the cancellation workflow."""
    if status == OrderStatus.CANCELLED.value:
        order = cancel_order(order_id, note or "Cancelled by admin", actor_id=actor_id)
        if payment_status:
            repo = current_domain.repository_for(Order)
            order.update_payment_status(payment_status)
            repo.add(order)
        return order

    current_domain.process(
        UpdateOrderStatus(
            order_id=order_id,
            status=status,
            payment_status=payment_status,
            note=note,
            actor_id=actor_id,
        ),
        asynchronous=False,
    )
    record_activity(
        actor_id,
        "order_status_update",
        str(order_id),
        {"status": status, "payment_status": payment_status, "note": note},
    )
    return current_domain.repository_for(Order).get(order_id)


def add_order_note(order_id: str, message: str, actor_id: str | None = None) -> Order:
    current_domain.process(
        AddOrderNote(order_id=order_id, message=message, actor_id=actor_id),
        asynchronous=False,
    )
    record_activity(actor_id, "order_note", str(order_id), {"message": message})
    return current_domain.repository_for(Order).get(order_id)
