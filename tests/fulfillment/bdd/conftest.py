"""Shared BDD fixtures and step definitions for orders and returns."""

import pytest
from fulfillment.order.order import Order
from fulfillment.stock.stock import stock_on_hand
from protean import current_domain
from pytest_bdd import parsers, then

_STARTING_STOCK = {
    ("prod-saree", None): 10,
    ("prod-saree", "red"): 5,
    ("prod-lungi", None): 10,
}


@pytest.fixture()
def error():
    """Container for captured domain or courier errors."""
    return {"exc": None}


def reload_order(order) -> Order:
    return current_domain.repository_for(Order).get(str(order.id))


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order status is "{status}"'))
def order_status_is(order, status):
    assert reload_order(order).status == status


@then("stock is back to its starting level")
def stock_restored():
    for (product_id, variant_id), expected in _STARTING_STOCK.items():
        assert stock_on_hand(product_id, variant_id) == expected
