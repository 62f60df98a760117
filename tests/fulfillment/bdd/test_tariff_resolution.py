"""BDD tests for delivery charge resolution."""

from fulfillment.shipping.resolver import resolve_charge
from fulfillment.shipping.settings import UpdateShippingSettings
from fulfillment.shipping.tariff import CreateTariff
from protean import current_domain
from pytest_bdd import given, parsers, scenarios, then, when

scenarios("features/tariff_resolution.feature")


@given(parsers.cfparse('the store ships from "{district}"'))
def store_origin(district):
    current_domain.process(UpdateShippingSettings(origin_district=district), asynchronous=False)


@given(parsers.cfparse('a tariff of {price:g} from "{origin}" to "{destination}"'))
def route_tariff(price, origin, destination):
    current_domain.process(
        CreateTariff(origin_district=origin, destination_district=destination, price=price),
        asynchronous=False,
    )


@when(
    parsers.cfparse('a charge is quoted for "{city}" with a cart of {cart_total:g}'),
    target_fixture="charge",
)
def quote(city, cart_total):
    return resolve_charge(None, city, cart_total)


@then(parsers.cfparse("the delivery charge is {expected:g}"))
def charge_is(charge, expected):
    assert charge == expected
