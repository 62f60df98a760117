"""Shipping settings — the single persisted record of delivery-charge policy."""

from datetime import UTC, datetime

from protean import handle
from protean.fields import Boolean, DateTime, Float, Identifier, String
from protean.utils.globals import current_domain

from fulfillment.audit.activity_log import record_activity
from fulfillment.domain import fulfillment

SETTINGS_KEY = "shipping"


@fulfillment.aggregate
class ShippingSettings:
    key = String(max_length=50, default=SETTINGS_KEY)
    default_local_charge = Float(default=50.0, min_value=0.0)
    default_outside_charge = Float(default=130.0, min_value=0.0)
    free_shipping_enabled = Boolean(default=True)
    free_shipping_threshold = Float(default=5000.0, min_value=0.0)
    origin_district = String(max_length=100, default="Rajshahi")
    courier_enabled = Boolean(default=True)
    updated_at = DateTime()

    def to_dict(self) -> dict:
        return {
            "default_local_charge": self.default_local_charge,
            "default_outside_charge": self.default_outside_charge,
            "free_shipping_enabled": self.free_shipping_enabled,
            "free_shipping_threshold": self.free_shipping_threshold,
            "origin_district": self.origin_district,
            "courier_enabled": self.courier_enabled,
        }


def get_shipping_settings() -> ShippingSettings:
    """Return the stored settings, creating the defaults on first use."""
    repo = current_domain.repository_for(ShippingSettings)
    results = repo._dao.query.filter(key=SETTINGS_KEY).all().items
    if results:
        return results[0]
    settings = ShippingSettings(key=SETTINGS_KEY, updated_at=datetime.now(UTC))
    repo.add(settings)
    return settings


@fulfillment.command(part_of="ShippingSettings")
class UpdateShippingSettings:
    """Change one or more delivery-charge policy values."""

    actor_id = Identifier()
    default_local_charge = Float(min_value=0.0)
    default_outside_charge = Float(min_value=0.0)
    free_shipping_enabled = Boolean()
    free_shipping_threshold = Float(min_value=0.0)
    origin_district = String(max_length=100)
    courier_enabled = Boolean()


_UPDATABLE = (
    "default_local_charge",
    "default_outside_charge",
    "free_shipping_enabled",
    "free_shipping_threshold",
    "origin_district",
    "courier_enabled",
)


@fulfillment.command_handler(part_of=ShippingSettings)
class ShippingSettingsHandler:
    @handle(UpdateShippingSettings)
    def update_settings(self, command):
        settings = get_shipping_settings()
        changes = {}
        for name in _UPDATABLE:
            value = getattr(command, name)
            if value is not None:
                setattr(settings, name, value)
                changes[name] = value
        settings.updated_at = datetime.now(UTC)
        current_domain.repository_for(ShippingSettings).add(settings)
        record_activity(command.actor_id, "settings:shipping:update", "ShippingSettings", changes)
        return settings.to_dict()
