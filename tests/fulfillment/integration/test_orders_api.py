"""Integration tests for the customer-facing order, return and delivery endpoints via TestClient."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from fulfillment.api import delivery_router, orders_router, register_fulfillment_exception_handlers, returns_router
from fulfillment.order.order import Order
from protean import current_domain

CUSTOMER = {"X-Actor-Role": "customer", "X-Actor-Id": "cust-001"}
OTHER_CUSTOMER = {"X-Actor-Role": "customer", "X-Actor-Id": "cust-002"}
STAFF = {"X-Actor-Role": "staff", "X-Actor-Id": "staff-1"}

ORDER_BODY = {
    "items": [
        {"product_id": "prod-saree", "variant_id": "red", "title": "Jamdani Saree", "quantity": 2, "unit_price": 200.0},
        {"product_id": "prod-lungi", "title": "Cotton Lungi", "quantity": 1, "unit_price": 100.0},
    ],
    "shipping": {
        "name": "Rahim Uddin",
        "phone": "01712345678",
        "address": "House 12, Road 5",
        "city": "Dhaka",
    },
    "shipping_charge": 80.0,
}


@pytest.fixture()
def client(stocked, fake_courier):
    app = FastAPI()
    register_fulfillment_exception_handlers(app)
    app.include_router(orders_router)
    app.include_router(returns_router)
    app.include_router(delivery_router)
    return TestClient(app)


def _place(client, headers=CUSTOMER, **overrides):
    body = dict(ORDER_BODY)
    body.update(overrides)
    response = client.post("/orders", json=body, headers=headers)
    assert response.status_code == 201
    return response.json()


def _deliver(client, fake_courier):
    from fulfillment.order.reconciliation import refresh_courier_status

    order = _place(client)
    dispatched = client.post(f"/orders/{order['order_id']}/dispatch", json={}, headers=CUSTOMER).json()
    fake_courier.set_status(dispatched["courier"]["tracking_id"], "delivered")
    refresh_courier_status(order["order_id"])
    return order["order_id"]


class TestPlaceOrder:
    def test_place_order(self, client):
        data = _place(client)
        assert data["status"] == "pending"
        assert data["total"] == 500.0
        assert data["shipping_charge"] == 80.0
        assert data["user_id"] == "cust-001"
        assert len(data["items"]) == 2

    def test_staff_cannot_place_orders(self, client):
        response = client.post("/orders", json=ORDER_BODY, headers=STAFF)
        assert response.status_code == 401

    def test_unknown_role_is_rejected(self, client):
        response = client.get("/orders", headers={"X-Actor-Role": "intruder"})
        assert response.status_code == 401

    def test_invalid_quantity_is_422(self, client):
        body = dict(ORDER_BODY)
        body["items"] = [{"product_id": "prod-lungi", "quantity": 0, "unit_price": 100.0}]
        assert client.post("/orders", json=body, headers=CUSTOMER).status_code == 422

    def test_customer_sees_only_own_orders(self, client):
        _place(client)
        _place(client, headers=OTHER_CUSTOMER)
        mine = client.get("/orders", headers=CUSTOMER).json()
        assert [o["user_id"] for o in mine] == ["cust-001"]
        assert len(client.get("/orders", headers=STAFF).json()) == 2

    def test_customer_cannot_read_someone_elses_order(self, client):
        order = _place(client)
        response = client.get(f"/orders/{order['order_id']}", headers=OTHER_CUSTOMER)
        assert response.status_code == 403

    def test_missing_order_is_404(self, client):
        assert client.get("/orders/does-not-exist", headers=STAFF).status_code == 404


class TestDispatch:
    def test_dispatch(self, client):
        order = _place(client)
        response = client.post(f"/orders/{order['order_id']}/dispatch", json={"expected_charge": 80.0}, headers=CUSTOMER)
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "confirmed"
        assert data["courier"]["status_friendly"] == "Pending"

    def test_second_dispatch_is_400(self, client):
        order = _place(client)
        client.post(f"/orders/{order['order_id']}/dispatch", json={}, headers=CUSTOMER)
        response = client.post(f"/orders/{order['order_id']}/dispatch", json={}, headers=CUSTOMER)
        assert response.status_code == 400

    def test_price_mismatch_is_400(self, client):
        order = _place(client)
        response = client.post(f"/orders/{order['order_id']}/dispatch", json={"expected_charge": 130.0}, headers=CUSTOMER)
        assert response.status_code == 400

    def test_courier_timeout_is_504_and_cancels(self, client, fake_courier):
        from fulfillment.shared.errors import NoResponse

        fake_courier.configure(should_succeed=False, failure=NoResponse, failure_reason="timeout")
        order = _place(client)
        response = client.post(f"/orders/{order['order_id']}/dispatch", json={}, headers=CUSTOMER)
        assert response.status_code == 504
        assert response.json()["error"] == "NoResponse"
        assert current_domain.repository_for(Order).get(order["order_id"]).status == "cancelled"

    def test_unconfigured_courier_is_503(self, client, fake_courier):
        fake_courier.configure(configured=False)
        order = _place(client)
        response = client.post(f"/orders/{order['order_id']}/dispatch", json={}, headers=CUSTOMER)
        assert response.status_code == 503

    def test_only_the_owner_can_dispatch(self, client):
        order = _place(client)
        response = client.post(f"/orders/{order['order_id']}/dispatch", json={}, headers=OTHER_CUSTOMER)
        assert response.status_code == 403


class TestCancelAndHide:
    def test_cancel(self, client):
        order = _place(client)
        response = client.post(f"/orders/{order['order_id']}/cancel", json={}, headers=CUSTOMER)
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        assert response.json()["notes"][-1]["message"] == "Cancelled by customer"

    def test_pending_order_cannot_be_hidden(self, client):
        order = _place(client)
        assert client.delete(f"/orders/{order['order_id']}", headers=CUSTOMER).status_code == 400

    def test_hidden_order_is_404_for_that_party_only(self, client):
        order = _place(client)
        client.post(f"/orders/{order['order_id']}/cancel", json={}, headers=CUSTOMER)
        assert client.delete(f"/orders/{order['order_id']}", headers=CUSTOMER).status_code == 200

        assert client.get(f"/orders/{order['order_id']}", headers=CUSTOMER).status_code == 404
        assert client.get(f"/orders/{order['order_id']}", headers=STAFF).status_code == 200


class TestReturnsApi:
    def test_file_and_read_return(self, client, fake_courier):
        order_id = _deliver(client, fake_courier)
        response = client.post("/returns", json={"order_id": order_id, "reason": "defective"}, headers=CUSTOMER)
        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "pending"
        assert data["refund_type"] == "pending"
        assert len(data["items"]) == 2

        fetched = client.get(f"/returns/{data['return_id']}", headers=CUSTOMER)
        assert fetched.json()["order_id"] == order_id
        assert client.get(f"/returns/{data['return_id']}", headers=OTHER_CUSTOMER).status_code == 403

    def test_return_for_someone_elses_order_is_400(self, client, fake_courier):
        order_id = _deliver(client, fake_courier)
        response = client.post("/returns", json={"order_id": order_id, "reason": "defective"}, headers=OTHER_CUSTOMER)
        assert response.status_code == 400

    def test_return_for_undelivered_order_is_400(self, client):
        order = _place(client)
        response = client.post("/returns", json={"order_id": order["order_id"], "reason": "defective"}, headers=CUSTOMER)
        assert response.status_code == 400


class TestDeliveryApi:
    def test_charge_quote(self, client):
        response = client.post("/delivery/charge", json={"city": "Dhaka", "cart_total": 1000})
        assert response.json() == {
            "available": True,
            "courier": "steadfast",
            "delivery_charge": 130.0,
            "message": None,
        }

    def test_charge_outside_bangladesh(self, client):
        response = client.post("/delivery/charge", json={"country": "Nepal", "city": "Kathmandu", "cart_total": 1000})
        assert response.json()["available"] is False

    def test_destinations(self, client):
        data = client.get("/delivery/destinations").json()
        assert data["from_cache"] is False
        assert len(data["destinations"]) == 3

    def test_status_lookup(self, client, fake_courier):
        fake_courier.set_status("FAKE-123", "cancelled_approval_pending")
        data = client.get("/delivery/status/FAKE-123").json()
        assert data == {"tracking_code": "FAKE-123", "status_raw": "cancelled_approval_pending", "status_friendly": "Cancelled"}
