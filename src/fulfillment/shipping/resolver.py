"""Tariff resolver — delivery charge for a destination and cart value.

Resolution order: an active CourierTariff for the route, then the local or
outside-area default, then the free-shipping override. Amounts come from the
injected ``ChargePolicy`` and tariff lookup; by default both are read from
persisted ShippingSettings and CourierTariff rows.
"""

from dataclasses import dataclass
from typing import Callable

import structlog

from fulfillment.shipping.settings import get_shipping_settings
from fulfillment.shipping.tariff import find_active_tariff

logger = structlog.get_logger(__name__)

SERVICEABLE_COUNTRY = "bangladesh"


@dataclass(frozen=True)
class ChargePolicy:
    local_charge: float
    outside_charge: float
    free_shipping_enabled: bool
    free_shipping_threshold: float
    origin_district: str

    @classmethod
    def from_settings(cls, settings) -> "ChargePolicy":
        return cls(
            local_charge=settings.default_local_charge,
            outside_charge=settings.default_outside_charge,
            free_shipping_enabled=bool(settings.free_shipping_enabled),
            free_shipping_threshold=settings.free_shipping_threshold,
            origin_district=settings.origin_district,
        )


TariffLookup = Callable[[str, str], object | None]


def _default_policy() -> ChargePolicy:
    return ChargePolicy.from_settings(get_shipping_settings())


def resolve_charge(
    origin: str | None,
    destination: str,
    cart_total: float,
    policy: ChargePolicy | None = None,
    lookup: TariffLookup | None = None,
) -> float:
    policy = policy or _default_policy()
    lookup = lookup or find_active_tariff
    origin = origin or policy.origin_district

    home = (policy.origin_district or "").strip().lower()
    tariff = lookup(origin, destination)
    if tariff is not None:
        charge = tariff.price
    elif home and home in (destination or "").lower():
        charge = policy.local_charge
    else:
        charge = policy.outside_charge

    if policy.free_shipping_enabled and cart_total >= policy.free_shipping_threshold:
        charge = 0.0

    logger.debug(
        "Delivery charge resolved",
        origin=origin,
        destination=destination,
        cart_total=cart_total,
        charge=charge,
        from_tariff=tariff is not None,
    )
    return float(charge)


def quote_delivery(country: str, city: str, cart_total: float, policy: ChargePolicy | None = None) -> dict:
    """Checkout quote. Only Bangladesh is serviceable."""
    if (country or "").strip().lower() != SERVICEABLE_COUNTRY:
        return {
            "available": False,
            "message": "Delivery is available only within Bangladesh.",
        }
    policy = policy or _default_policy()
    return {
        "available": True,
        "courier": "steadfast",
        "delivery_charge": resolve_charge(policy.origin_district, city, cart_total, policy=policy),
    }
