"""Courier adapter abstraction — pluggable courier partner integration."""

import os

_courier_instance = None


def get_courier():
    """Return the configured courier adapter (singleton).

    Uses the Steadfast adapter by default. Set COURIER_ADAPTER=fake for
    development and tests.
    """
    global _courier_instance
    if _courier_instance is None:
        adapter = os.environ.get("COURIER_ADAPTER", "steadfast")
        if adapter == "fake":
            from fulfillment.courier.fake_adapter import FakeCourier

            _courier_instance = FakeCourier()
        elif adapter == "steadfast":
            from fulfillment.courier.steadfast_adapter import DEFAULT_BASE_URL, DEFAULT_TIMEOUT, SteadfastCourier

            _courier_instance = SteadfastCourier(
                api_key=os.environ.get("STEADFAST_API_KEY"),
                secret_key=os.environ.get("STEADFAST_SECRET_KEY"),
                base_url=os.environ.get("STEADFAST_BASE_URL", DEFAULT_BASE_URL),
                timeout=float(os.environ.get("STEADFAST_TIMEOUT", DEFAULT_TIMEOUT)),
            )
        else:
            raise ValueError(f"Unknown courier adapter: {adapter}")
    return _courier_instance


def set_courier(courier) -> None:
    """Install a specific adapter instance (tests, scripts)."""
    global _courier_instance
    _courier_instance = courier


def reset_courier():
    """Reset the courier singleton (useful for testing)."""
    global _courier_instance
    _courier_instance = None
