"""Tests for delivery-charge resolution — tariff rows, area defaults, free shipping."""

from types import SimpleNamespace

from fulfillment.shipping.resolver import ChargePolicy, quote_delivery, resolve_charge


def _policy(**overrides):
    values = {
        "local_charge": 50.0,
        "outside_charge": 130.0,
        "free_shipping_enabled": True,
        "free_shipping_threshold": 5000.0,
        "origin_district": "Rajshahi",
    }
    values.update(overrides)
    return ChargePolicy(**values)


def _tariffs(*rows):
    """Lookup over (origin, destination, price) tuples."""

    def lookup(origin, destination):
        for row_origin, row_destination, price in rows:
            if row_origin.lower() == origin.lower() and row_destination.lower() == destination.lower():
                return SimpleNamespace(price=price)
        return None

    return lookup


class TestResolveCharge:
    def test_free_shipping_overrides_tariff(self):
        charge = resolve_charge("Rajshahi", "Dhaka", 6000, policy=_policy(), lookup=_tariffs(("Rajshahi", "Dhaka", 80)))
        assert charge == 0.0

    def test_tariff_price_without_free_shipping(self):
        charge = resolve_charge(
            "Rajshahi",
            "Dhaka",
            6000,
            policy=_policy(free_shipping_enabled=False),
            lookup=_tariffs(("Rajshahi", "Dhaka", 80)),
        )
        assert charge == 80.0

    def test_no_tariff_falls_back_to_outside_default(self):
        charge = resolve_charge("Rajshahi", "Sylhet", 1000, policy=_policy(), lookup=_tariffs(("Rajshahi", "Dhaka", 80)))
        assert charge == 130.0

    def test_local_default_matches_by_substring(self):
        charge = resolve_charge("Rajshahi", "Rajshahi Sadar", 1000, policy=_policy(), lookup=_tariffs())
        assert charge == 50.0

    def test_blank_origin_district_is_never_local(self):
        for blank in ("", "   "):
            charge = resolve_charge(None, "Sylhet", 1000, policy=_policy(origin_district=blank), lookup=_tariffs())
            assert charge == 130.0

    def test_threshold_is_inclusive(self):
        assert resolve_charge("Rajshahi", "Sylhet", 5000, policy=_policy(), lookup=_tariffs()) == 0.0
        assert resolve_charge("Rajshahi", "Sylhet", 4999.99, policy=_policy(), lookup=_tariffs()) == 130.0

    def test_amounts_come_from_policy(self):
        policy = _policy(outside_charge=150.0, free_shipping_enabled=False)
        assert resolve_charge("Rajshahi", "Khulna", 100, policy=policy, lookup=_tariffs()) == 150.0

    def test_origin_defaults_to_policy_origin(self):
        seen = []

        def lookup(origin, destination):
            seen.append((origin, destination))
            return None

        resolve_charge(None, "Dhaka", 100, policy=_policy(), lookup=lookup)
        assert seen == [("Rajshahi", "Dhaka")]


class TestQuoteDelivery:
    def test_outside_bangladesh_is_unavailable(self):
        quote = quote_delivery("India", "Kolkata", 1000, policy=_policy())
        assert quote["available"] is False
        assert "Bangladesh" in quote["message"]
