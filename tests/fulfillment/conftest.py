from datetime import UTC, datetime, timedelta

import pytest
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def fulfillment_bed():
    from fulfillment.domain import fulfillment

    bed = DomainFixture(fulfillment)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(fulfillment_bed):
    from fulfillment.courier import reset_courier

    with fulfillment_bed.domain_context():
        yield

        from protean import current_domain

        # Clear all databases
        for _, provider in current_domain.providers.items():
            provider._data_reset()

        # Drain event stores
        current_domain.event_store.store._data_reset()

    reset_courier()


@pytest.fixture()
def fake_courier():
    """A fresh FakeCourier installed as the active courier."""
    from fulfillment.courier import set_courier
    from fulfillment.courier.fake_adapter import FakeCourier

    courier = FakeCourier()
    set_courier(courier)
    return courier


DEFAULT_ITEMS = [
    {"product_id": "prod-saree", "variant_id": "red", "title": "Jamdani Saree", "quantity": 2, "unit_price": 200.0},
    {"product_id": "prod-lungi", "title": "Cotton Lungi", "quantity": 1, "unit_price": 100.0},
]

DEFAULT_SHIPPING = {
    "name": "Rahim Uddin",
    "phone": "+8801712345678",
    "email": "rahim@example.com",
    "address": "House 12, Road 5",
    "city": "Dhaka",
    "country": "Bangladesh",
}


@pytest.fixture()
def stocked():
    """Stock rows for the default items: 10 of each product, 5 of the red variant."""
    from fulfillment.stock.stock import set_stock

    set_stock("prod-saree", 10)
    set_stock("prod-saree", 5, variant_id="red")
    set_stock("prod-lungi", 10)


@pytest.fixture()
def place(stocked):
    """Place an order through the checkout service."""
    from fulfillment.order.placement import place_order

    def _place(user_id="cust-001", items=None, shipping=None, **kwargs):
        kwargs.setdefault("shipping_charge", 80.0)
        return place_order(
            user_id=user_id,
            items=items or [dict(item) for item in DEFAULT_ITEMS],
            shipping=shipping or dict(DEFAULT_SHIPPING),
            **kwargs,
        )

    return _place


@pytest.fixture()
def delivered_order(place, fake_courier):
    """Place, dispatch and deliver an order. Accepts ``delivered_days_ago``."""
    from protean import current_domain

    from fulfillment.order.dispatch import dispatch_order
    from fulfillment.order.order import Order
    from fulfillment.order.reconciliation import refresh_courier_status

    def _deliver(user_id="cust-001", delivered_days_ago=0, **kwargs):
        order = place(user_id=user_id, **kwargs)
        order = dispatch_order(str(order.id))
        fake_courier.set_status(order.tracking_id, "delivered")
        order = refresh_courier_status(str(order.id))
        if delivered_days_ago:
            repo = current_domain.repository_for(Order)
            order = repo.get(str(order.id))
            order.delivered_at = datetime.now(UTC) - timedelta(days=delivered_days_ago)
            repo.add(order)
        return current_domain.repository_for(Order).get(str(order.id))

    return _deliver
