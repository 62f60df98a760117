"""Tests for the courier status mapper — partner vocabulary to FriendlyStatus."""

import pytest
from fulfillment.courier.status import FriendlyStatus, map_status


class TestBuckets:
    @pytest.mark.parametrize("raw", ["pending", "in_review", "unknown", "hold"])
    def test_pending_bucket(self, raw):
        assert map_status(raw) == FriendlyStatus.PENDING

    @pytest.mark.parametrize("raw", ["delivered_approval_pending", "partial_delivered_approval_pending"])
    def test_in_transit_bucket(self, raw):
        assert map_status(raw) == FriendlyStatus.IN_TRANSIT

    def test_partial_delivery_is_picked(self):
        assert map_status("partial_delivered") == FriendlyStatus.PICKED

    def test_delivered(self):
        assert map_status("delivered") == FriendlyStatus.DELIVERED

    @pytest.mark.parametrize("raw", ["cancelled", "cancelled_approval_pending"])
    def test_cancelled_bucket(self, raw):
        assert map_status(raw) == FriendlyStatus.CANCELLED


class TestFailSafeDefault:
    @pytest.mark.parametrize("raw", [None, "", "lost_in_space", "returned_to_sender"])
    def test_unknown_values_map_to_pending(self, raw):
        assert map_status(raw) == FriendlyStatus.PENDING

    def test_input_is_case_insensitive(self):
        assert map_status("Delivered") == FriendlyStatus.DELIVERED
        assert map_status("  CANCELLED ") == FriendlyStatus.CANCELLED

    def test_mapping_is_deterministic(self):
        assert {map_status("hold") for _ in range(10)} == {FriendlyStatus.PENDING}

    def test_friendly_values_are_display_labels(self):
        assert FriendlyStatus.IN_TRANSIT.value == "In Transit"
