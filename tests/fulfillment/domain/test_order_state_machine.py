"""Tests for the Order aggregate — creation, state machine and dispatch guards."""

import pytest
from fulfillment.courier.status import FriendlyStatus
from fulfillment.order.events import OrderCancelled, OrderDispatched, OrderPlaced, OrderStatusChanged
from fulfillment.order.order import DispatchState, Order, OrderStatus, PaymentStatus
from fulfillment.shared.errors import AlreadyDispatched, InvalidTransition, PriceMismatch
from protean.exceptions import ValidationError


def _make_order(**overrides):
    defaults = {
        "user_id": "cust-001",
        "items_data": [
            {"product_id": "prod-1", "title": "Saree", "quantity": 2, "unit_price": 200.0},
            {"product_id": "prod-2", "title": "Lungi", "quantity": 1, "unit_price": 100.0},
        ],
        "shipping": {"name": "Rahim", "phone": "01712345678", "address": "Road 5", "city": "Dhaka"},
        "shipping_charge": 80.0,
    }
    defaults.update(overrides)
    return Order.create(**defaults)


def _dispatch(order, tracking_id="SF-001"):
    order.claim_dispatch()
    order.record_dispatch("steadfast", tracking_id, "c-1", "in_review", FriendlyStatus.PENDING)
    return order


def _deliver(order):
    _dispatch(order)
    order.apply_courier_status("delivered", FriendlyStatus.DELIVERED)
    return order


class TestOrderCreation:
    def test_starts_pending(self):
        order = _make_order()
        assert order.status == OrderStatus.PENDING.value
        assert order.dispatch_state == DispatchState.NONE.value
        assert order.payment_status == PaymentStatus.PENDING.value

    def test_total_is_sum_of_lines_minus_discount(self):
        order = _make_order(discount=50.0)
        assert order.total == 450.0

    def test_total_floors_at_zero(self):
        order = _make_order(discount=10_000.0)
        assert order.total == 0.0

    def test_order_number_format(self):
        order = _make_order()
        prefix, date, suffix = order.order_number.split("-")
        assert prefix == "ORD"
        assert len(date) == 8
        assert len(suffix) == 6 and suffix == suffix.upper()

    def test_cod_amount_includes_shipping(self):
        assert _make_order().cod_amount == 580.0

    def test_raises_order_placed(self):
        order = _make_order()
        assert len(order._events) == 1
        event = order._events[0]
        assert isinstance(event, OrderPlaced)
        assert event.total == 500.0
        assert event.item_count == 2

    def test_requires_items(self):
        with pytest.raises(ValidationError):
            _make_order(items_data=[])


class TestDispatchGuards:
    def test_claim_then_record_confirms_order(self):
        order = _dispatch(_make_order())
        assert order.status == OrderStatus.CONFIRMED.value
        assert order.dispatch_state == DispatchState.DISPATCHED.value
        assert order.tracking_id == "SF-001"
        assert order.courier.status_friendly == "Pending"
        assert order.courier.last_synced_at is not None
        assert any(isinstance(e, OrderDispatched) for e in order._events)

    def test_second_claim_while_in_flight_is_rejected(self):
        order = _make_order()
        order.claim_dispatch()
        with pytest.raises(AlreadyDispatched):
            order.claim_dispatch()

    def test_dispatched_order_cannot_be_claimed_again(self):
        order = _dispatch(_make_order())
        with pytest.raises(AlreadyDispatched):
            order.claim_dispatch()

    def test_checkout_dispatch_requires_cod(self):
        order = _make_order(payment_method="online")
        with pytest.raises(InvalidTransition):
            order.claim_dispatch(require_cod=True)

    def test_admin_dispatch_skips_cod_check(self):
        order = _make_order(payment_method="online")
        order.claim_dispatch()
        assert order.dispatch_state == DispatchState.CLAIMED.value

    def test_expected_charge_must_match(self):
        order = _make_order()
        with pytest.raises(PriceMismatch):
            order.claim_dispatch(require_cod=True, expected_charge=130.0)

    def test_matching_expected_charge_is_accepted(self):
        order = _make_order()
        order.claim_dispatch(require_cod=True, expected_charge=80)
        assert order.dispatch_state == DispatchState.CLAIMED.value

    def test_failure_releases_claim_and_keeps_status(self):
        order = _make_order()
        order.claim_dispatch()
        order.record_dispatch_failure("steadfast", "No response from Steadfast API", "NoResponse")
        assert order.status == OrderStatus.PENDING.value
        assert order.dispatch_state == DispatchState.NONE.value
        assert order.tracking_id is None
        assert order.courier.error == "No response from Steadfast API"

    def test_cancelled_order_cannot_be_dispatched(self):
        order = _make_order()
        order.cancel("Changed my mind")
        with pytest.raises(InvalidTransition):
            order.claim_dispatch()

    def test_record_without_claim_is_rejected(self):
        order = _make_order()
        with pytest.raises(InvalidTransition):
            order.record_dispatch("steadfast", "SF-9", None, "pending", FriendlyStatus.PENDING)


class TestCourierMerge:
    def test_delivered_forces_delivered_and_paid(self):
        order = _deliver(_make_order())
        assert order.status == OrderStatus.DELIVERED.value
        assert order.payment_status == PaymentStatus.PAID.value
        assert order.delivered_at is not None

    def test_cancelled_forces_cancelled(self):
        order = _dispatch(_make_order())
        changed = order.apply_courier_status("cancelled", FriendlyStatus.CANCELLED)
        assert changed == OrderStatus.CANCELLED
        assert order.status == OrderStatus.CANCELLED.value
        assert any(isinstance(e, OrderCancelled) for e in order._events)

    def test_shipped_order_can_be_cancelled_by_courier(self):
        order = _dispatch(_make_order())
        order.update_status("shipped")
        order.apply_courier_status("cancelled", FriendlyStatus.CANCELLED)
        assert order.status == OrderStatus.CANCELLED.value

    @pytest.mark.parametrize("friendly", [FriendlyStatus.PENDING, FriendlyStatus.PICKED, FriendlyStatus.IN_TRANSIT])
    def test_other_statuses_only_touch_courier_fields(self, friendly):
        order = _dispatch(_make_order())
        changed = order.apply_courier_status("whatever", friendly)
        assert changed is None
        assert order.status == OrderStatus.CONFIRMED.value
        assert order.courier.status_friendly == friendly.value
        assert order.courier.status_raw == "whatever"

    def test_delivered_is_terminal_for_reconciliation(self):
        order = _deliver(_make_order())
        assert order.apply_courier_status("cancelled", FriendlyStatus.CANCELLED) is None
        assert order.status == OrderStatus.DELIVERED.value

    def test_cancelled_is_terminal_for_reconciliation(self):
        order = _dispatch(_make_order())
        order.apply_courier_status("cancelled", FriendlyStatus.CANCELLED)
        assert order.apply_courier_status("delivered", FriendlyStatus.DELIVERED) is None
        assert order.status == OrderStatus.CANCELLED.value

    def test_sync_error_is_kept_on_courier_record(self):
        order = _dispatch(_make_order())
        order.record_sync_error("Steadfast API error")
        assert order.courier.error == "Steadfast API error"
        assert order.tracking_id == "SF-001"


class TestCancellation:
    def test_cancel_pending(self):
        order = _make_order()
        assert order.cancel("Customer request") is True
        assert order.status == OrderStatus.CANCELLED.value
        assert order.notes[-1].message == "Customer request"

    def test_cancel_twice_is_a_noop(self):
        order = _make_order()
        order.cancel("First")
        events_before = len(order._events)
        assert order.cancel("Second") is False
        assert len(order._events) == events_before
        assert len(order.notes) == 1

    def test_shipped_order_cannot_be_cancelled_manually(self):
        order = _dispatch(_make_order())
        order.update_status("shipped")
        with pytest.raises(InvalidTransition):
            order.cancel("Too late")


class TestStatusUpdates:
    def test_confirmed_to_shipped_to_delivered(self):
        order = _dispatch(_make_order())
        order.update_status("shipped")
        order.update_status("delivered", payment_status="paid", note="Handed over")
        assert order.status == OrderStatus.DELIVERED.value
        assert order.payment_status == PaymentStatus.PAID.value
        assert order.notes[-1].message == "Handed over"
        assert sum(isinstance(e, OrderStatusChanged) for e in order._events) == 3

    def test_cannot_reach_delivered_from_cancelled(self):
        order = _make_order()
        order.cancel("Nope")
        with pytest.raises(InvalidTransition):
            order.update_status("delivered")

    def test_cancel_and_return_have_dedicated_workflows(self):
        order = _make_order()
        with pytest.raises(InvalidTransition):
            order.update_status("cancelled")
        with pytest.raises(InvalidTransition):
            order.update_status("returned")

    def test_unknown_status_is_rejected(self):
        with pytest.raises(ValidationError):
            _make_order().update_status("teleported")

    def test_returned_order_goes_back_to_delivered(self):
        order = _deliver(_make_order())
        delivered_at = order.delivered_at
        order.mark_returned("Return request submitted by customer")
        assert order.status == OrderStatus.RETURNED.value
        order.restore_delivered("Return request rejected: worn")
        assert order.status == OrderStatus.DELIVERED.value
        assert order.delivered_at == delivered_at

    def test_mark_refunded(self):
        order = _deliver(_make_order())
        order.mark_refunded("Refund pending")
        assert order.payment_status == PaymentStatus.REFUNDED.value
