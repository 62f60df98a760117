"""Application tests for courier dispatch — checkout and admin approval paths."""

import threading

import httpx
import pytest
from fulfillment.audit.activity_log import find_activity
from fulfillment.coupon.coupon import Coupon, find_coupon
from fulfillment.courier import set_courier
from fulfillment.courier.steadfast_adapter import SteadfastCourier
from fulfillment.domain import fulfillment
from fulfillment.order.dispatch import AUTO_CANCEL_NOTE, dispatch_order
from fulfillment.order.order import DispatchState, Order, OrderStatus
from fulfillment.shared.errors import (
    AlreadyDispatched,
    InvalidTransition,
    NoResponse,
    PartnerRejected,
    PriceMismatch,
    ServiceUnavailable,
)
from fulfillment.stock.stock import stock_on_hand
from protean import current_domain


def _create_calls(courier):
    return [call for call in courier.calls if call[0] == "create_order"]


def _reload(order_id):
    return current_domain.repository_for(Order).get(order_id)


class TestCheckoutDispatch:
    def test_success_confirms_and_stores_tracking(self, place, fake_courier):
        order = dispatch_order(str(place().id))
        assert order.status == OrderStatus.CONFIRMED.value
        assert order.tracking_id.startswith("FAKE-")
        assert order.courier.partner_name == "steadfast"
        assert order.courier.status_raw == "in_review"
        assert order.courier.status_friendly == "Pending"
        assert order.courier.delivery_charge == 80.0

    def test_sends_cod_amount_and_invoice(self, place, fake_courier):
        order = place()
        dispatch_order(str(order.id))
        _, payload = _create_calls(fake_courier)[0]
        assert payload == {"invoice": str(order.id), "cod_amount": 580.0}

    def test_success_is_audited(self, place, fake_courier):
        order = dispatch_order(str(place().id))
        entries = find_activity(action="courier_create_success", entity=str(order.id))
        assert len(entries) == 1
        assert entries[0].meta_data["tracking_id"] == order.tracking_id
        assert find_activity(action="steadfast_request")

    def test_second_dispatch_is_rejected(self, place, fake_courier):
        order = dispatch_order(str(place().id))
        with pytest.raises(AlreadyDispatched):
            dispatch_order(str(order.id))
        assert len(_create_calls(fake_courier)) == 1

    def test_price_mismatch_is_rejected_before_courier_call(self, place, fake_courier):
        order = place()
        with pytest.raises(PriceMismatch):
            dispatch_order(str(order.id), expected_charge=130.0)
        assert _create_calls(fake_courier) == []
        assert _reload(str(order.id)).dispatch_state == DispatchState.NONE.value

    def test_non_cod_orders_are_rejected(self, place, fake_courier):
        order = place(payment_method="online")
        with pytest.raises(InvalidTransition):
            dispatch_order(str(order.id))
        assert _create_calls(fake_courier) == []

    def test_matching_expected_charge(self, place, fake_courier):
        order = dispatch_order(str(place().id), expected_charge=80.0)
        assert order.tracking_id is not None


class TestCheckoutDispatchFailure:
    @pytest.mark.parametrize("failure", [NoResponse, PartnerRejected, ServiceUnavailable])
    def test_failure_auto_cancels_pending_order(self, place, fake_courier, failure):
        fake_courier.configure(should_succeed=False, failure=failure, failure_reason="Courier down")
        order = place()
        with pytest.raises(failure):
            dispatch_order(str(order.id))

        stored = _reload(str(order.id))
        assert stored.status == OrderStatus.CANCELLED.value
        assert stored.tracking_id is None
        assert stored.dispatch_state == DispatchState.NONE.value
        assert stored.courier.error == "Courier down"
        assert any(note.message == AUTO_CANCEL_NOTE for note in stored.notes)

    def test_unconfigured_courier_fails_fast(self, place, fake_courier):
        fake_courier.configure(configured=False)
        order = place()
        with pytest.raises(ServiceUnavailable):
            dispatch_order(str(order.id))
        assert find_activity(action="steadfast_error")
        assert find_activity(action="steadfast_request") == []

    def test_failure_is_audited_and_restores_stock(self, place, fake_courier):
        fake_courier.configure(should_succeed=False, failure=NoResponse, failure_reason="timeout")
        order = place()
        with pytest.raises(NoResponse):
            dispatch_order(str(order.id))

        failed = find_activity(action="courier_create_failed", entity=str(order.id))
        assert len(failed) == 1
        assert failed[0].meta_data["error"] == "NoResponse"
        assert stock_on_hand("prod-saree") == 10
        assert stock_on_hand("prod-lungi") == 10

    def test_end_to_end_no_response_releases_coupon(self, place, fake_courier):
        current_domain.repository_for(Coupon).add(Coupon(code="X", value=10.0))
        order = place(coupon_code="X")
        assert order.total == 500.0
        assert order.shipping_charge == 80.0
        assert find_coupon("X").has_been_used_by("cust-001")

        fake_courier.configure(should_succeed=False, failure=NoResponse)
        with pytest.raises(NoResponse):
            dispatch_order(str(order.id))

        stored = _reload(str(order.id))
        assert stored.status == OrderStatus.CANCELLED.value
        assert stored.tracking_id is None
        assert len(find_activity(action="courier_create_failed", entity=str(order.id))) == 1
        assert not find_coupon("X").has_been_used_by("cust-001")


class TestAdminApproval:
    def test_approval_confirms_order(self, place, fake_courier):
        order = dispatch_order(str(place().id), actor_id="admin-1", via_admin=True)
        assert order.status == OrderStatus.CONFIRMED.value
        assert find_activity(action="courier_approve_success", entity=str(order.id))

    def test_approval_skips_cod_check(self, place, fake_courier):
        order = dispatch_order(str(place(payment_method="online").id), actor_id="admin-1", via_admin=True)
        assert order.tracking_id is not None

    def test_failed_approval_keeps_order_for_retry(self, place, fake_courier):
        fake_courier.configure(should_succeed=False, failure=PartnerRejected, failure_reason="Invalid address")
        order = place()
        with pytest.raises(PartnerRejected):
            dispatch_order(str(order.id), actor_id="admin-1", via_admin=True)

        stored = _reload(str(order.id))
        assert stored.status == OrderStatus.PENDING.value
        assert stored.courier.error == "Invalid address"
        assert find_activity(action="courier_approve_failed", entity=str(order.id))

        fake_courier.configure()
        retried = dispatch_order(str(order.id), actor_id="admin-1", via_admin=True)
        assert retried.status == OrderStatus.CONFIRMED.value
        assert retried.courier.error is None


class TestConcurrentDispatch:
    def test_exactly_one_concurrent_dispatch_wins(self, place, fake_courier):
        order_id = str(place().id)
        attempts = 8
        barrier = threading.Barrier(attempts)
        outcomes = []

        def attempt():
            with fulfillment.domain_context():
                barrier.wait()
                try:
                    dispatch_order(order_id)
                    outcomes.append("ok")
                except AlreadyDispatched:
                    outcomes.append("already")

        threads = [threading.Thread(target=attempt) for _ in range(attempts)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert outcomes.count("ok") == 1
        assert outcomes.count("already") == attempts - 1
        assert len(_create_calls(fake_courier)) == 1
        assert _reload(order_id).tracking_id is not None


def _steadfast(handler):
    courier = SteadfastCourier(
        api_key="key-123",
        secret_key="secret-456",
        base_url="https://courier.test/api/v1",
        transport=httpx.MockTransport(handler),
    )
    set_courier(courier)
    return courier


class TestMalformedPartnerResponse:
    def test_non_object_consignment_is_rejected_and_order_released(self, place):
        _steadfast(lambda request: httpx.Response(200, json={"status": 200, "consignment": "queued"}))
        order = place()
        with pytest.raises(PartnerRejected):
            dispatch_order(str(order.id))

        stored = _reload(str(order.id))
        assert stored.dispatch_state == DispatchState.NONE.value
        assert stored.status == OrderStatus.CANCELLED.value
        assert stored.tracking_id is None

    def test_admin_approval_can_retry_after_malformed_response(self, place, fake_courier):
        order = place()
        _steadfast(lambda request: httpx.Response(200, json={"status": 200, "consignment": "queued"}))
        with pytest.raises(PartnerRejected):
            dispatch_order(str(order.id), actor_id="admin-1", via_admin=True)
        assert _reload(str(order.id)).dispatch_state == DispatchState.NONE.value

        set_courier(fake_courier)
        retried = dispatch_order(str(order.id), actor_id="admin-1", via_admin=True)
        assert retried.status == OrderStatus.CONFIRMED.value
        assert retried.tracking_id.startswith("FAKE-")


class TestUnexpectedDispatchError:
    def test_claim_is_released_and_dispatch_can_be_retried(self, place, fake_courier, monkeypatch):
        order = place()

        def broken_dispatch(request):
            raise RuntimeError("adapter exploded")

        monkeypatch.setattr(fake_courier, "dispatch", broken_dispatch)
        with pytest.raises(RuntimeError):
            dispatch_order(str(order.id))

        stored = _reload(str(order.id))
        assert stored.status == OrderStatus.PENDING.value
        assert stored.dispatch_state == DispatchState.NONE.value
        assert stored.courier.error == "adapter exploded"
        failed = find_activity(action="courier_create_failed", entity=str(order.id))
        assert failed[0].meta_data["error"] == "RuntimeError"

        monkeypatch.undo()
        retried = dispatch_order(str(order.id))
        assert retried.status == OrderStatus.CONFIRMED.value
        assert len(_create_calls(fake_courier)) == 1

    def test_stale_claim_write_is_reported_as_already_dispatched(self, place, fake_courier, monkeypatch):
        order = place()
        claim = Order.claim_dispatch

        def claimed_by_another_worker(self, *args, **kwargs):
            repo = current_domain.repository_for(Order)
            fresh = repo.get(str(self.id))
            fresh.add_note("Picked up by another worker")
            repo.add(fresh)
            claim(self, *args, **kwargs)

        monkeypatch.setattr(Order, "claim_dispatch", claimed_by_another_worker)
        with pytest.raises(AlreadyDispatched):
            dispatch_order(str(order.id))
        assert _create_calls(fake_courier) == []
