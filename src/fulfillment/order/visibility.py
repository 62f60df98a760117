"""Order visibility — per-party soft delete, permanent purge and visible listings."""

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from fulfillment.audit.activity_log import record_activity
from fulfillment.domain import fulfillment
from fulfillment.order.order import Order
from fulfillment.shared.deletion import Party, flag_for, purge, purge_all

DEFAULT_PAGE_SIZE = 100


@fulfillment.command(part_of="Order")
class HideOrder:
    """Soft-delete an order from one party's view."""

    order_id = Identifier(required=True)
    party = String(required=True, choices=Party)
    actor_id = Identifier()


@fulfillment.command_handler(part_of=Order)
class HideOrderHandler:
    @handle(HideOrder)
    def hide_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        party = Party(command.party)
        if party == Party.USER and str(order.user_id) != str(command.actor_id):
            raise ValidationError({"order": ["Order does not belong to this user"]})
        order.hide_for(party)
        repo.add(order)


def hide_order(order_id: str, party: Party, actor_id: str | None = None) -> Order:
    party = Party(party)
    current_domain.process(
        HideOrder(order_id=order_id, party=party.value, actor_id=actor_id),
        asynchronous=False,
    )
    record_activity(actor_id, f"order_delete:{party.value}", str(order_id), {})
    return current_domain.repository_for(Order).get(order_id)


def purge_order(order_id: str, actor_id: str | None = None) -> None:
    purge(Order, order_id)
    record_activity(actor_id, "order_purge", str(order_id), {})


def purge_hidden_orders(actor_id: str | None = None) -> int:
    purged = purge_all(Order)
    record_activity(actor_id, "order_bulk_purge", "Order", {"purged": purged})
    return purged


def orders_visible_to(party: Party, user_id: str | None = None, limit: int = DEFAULT_PAGE_SIZE) -> list[Order]:
    """Orders a party can still see. Customers only see their own."""
    party = Party(party)
    criteria = {flag_for(party): False}
    if party == Party.USER:
        criteria["user_id"] = str(user_id)
    repo = current_domain.repository_for(Order)
    return repo._dao.query.filter(**criteria).order_by("-created_at").limit(limit).all().items
