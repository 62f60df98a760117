"""Order placement — command, handler and the checkout service around them.

The handler persists the order. ``place_order`` then applies the side
effects on other aggregates: stock withdrawal per line, coupon usage and the
``order_created`` audit entry.
"""

import json

import structlog
from protean import handle
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain

from fulfillment.audit.activity_log import record_activity
from fulfillment.coupon.coupon import record_coupon_usage
from fulfillment.courier.phone import normalize_bd_phone
from fulfillment.domain import fulfillment
from fulfillment.order.order import Order, PaymentMethod
from fulfillment.shipping.resolver import resolve_charge
from fulfillment.stock.stock import withdraw_items

logger = structlog.get_logger(__name__)


@fulfillment.command(part_of="Order")
class PlaceOrder:
    """Place a new order from a checked-out cart."""

    user_id = Identifier()
    items = Text(required=True)  # JSON list of item dicts
    shipping = Text(required=True)  # JSON object: name, phone, email, address, city, country
    payment_method = String(max_length=10, default=PaymentMethod.COD.value)
    shipping_charge = Float(min_value=0.0)
    discount = Float(default=0.0, min_value=0.0)
    coupon_code = String(max_length=50)


@fulfillment.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        items_data = json.loads(command.items) if isinstance(command.items, str) else command.items
        shipping = json.loads(command.shipping) if isinstance(command.shipping, str) else dict(command.shipping)
        shipping["phone"] = normalize_bd_phone(shipping.get("phone"))

        shipping_charge = command.shipping_charge
        if shipping_charge is None:
            subtotal = sum(float(i["unit_price"]) * int(i["quantity"]) for i in items_data)
            shipping_charge = resolve_charge(None, shipping.get("city") or "", subtotal)

        order = Order.create(
            user_id=command.user_id,
            items_data=items_data,
            shipping=shipping,
            payment_method=command.payment_method or PaymentMethod.COD.value,
            shipping_charge=shipping_charge,
            discount=command.discount or 0.0,
            coupon_code=command.coupon_code,
        )
        current_domain.repository_for(Order).add(order)
        return str(order.id)


def place_order(
    user_id: str | None,
    items: list[dict],
    shipping: dict,
    payment_method: str = PaymentMethod.COD.value,
    shipping_charge: float | None = None,
    discount: float = 0.0,
    coupon_code: str | None = None,
) -> Order:
    order_id = current_domain.process(
        PlaceOrder(
            user_id=user_id,
            items=json.dumps(items),
            shipping=json.dumps(shipping),
            payment_method=payment_method,
            shipping_charge=shipping_charge,
            discount=discount,
            coupon_code=coupon_code,
        ),
        asynchronous=False,
    )
    order = current_domain.repository_for(Order).get(order_id)

    withdraw_items(order.items)
    if coupon_code and user_id:
        record_coupon_usage(coupon_code, user_id)

    record_activity(
        user_id,
        "order_created",
        str(order.id),
        {"order_number": order.order_number, "total": order.total, "items": len(order.items)},
    )
    logger.info(
        "Order placed",
        order_id=str(order.id),
        order_number=order.order_number,
        total=order.total,
        shipping_charge=order.shipping_charge,
    )
    return order
