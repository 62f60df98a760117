"""CourierTariff aggregate — admin-editable delivery prices per route — with its CRUD commands."""

from datetime import UTC, datetime

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Identifier, String
from protean.utils.globals import current_domain

from fulfillment.audit.activity_log import record_activity
from fulfillment.domain import fulfillment

MAX_TARIFFS = 1000


@fulfillment.aggregate
class CourierTariff:
    courier = String(max_length=50, default="steadfast")
    origin_district = String(required=True, max_length=100)
    destination_district = String(required=True, max_length=100)
    service_type = String(max_length=50, default="regular")
    category = String(max_length=50, default="regular")
    base_weight_kg = Float(default=0.5, min_value=0.0)
    max_weight_kg = Float(default=1.0, min_value=0.0)
    price = Float(required=True, min_value=0.0)
    active = Boolean(default=True)
    created_at = DateTime()
    updated_at = DateTime()

    def matches(self, courier: str, origin: str, destination: str) -> bool:
        return (
            bool(self.active)
            and (self.courier or "").lower() == courier.lower()
            and (self.origin_district or "").strip().lower() == origin.strip().lower()
            and (self.destination_district or "").strip().lower() == destination.strip().lower()
        )

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "courier": self.courier,
            "origin_district": self.origin_district,
            "destination_district": self.destination_district,
            "service_type": self.service_type,
            "category": self.category,
            "base_weight_kg": self.base_weight_kg,
            "max_weight_kg": self.max_weight_kg,
            "price": self.price,
            "active": self.active,
        }


def list_tariffs() -> list[CourierTariff]:
    """All tariffs ordered by origin, then destination."""
    repo = current_domain.repository_for(CourierTariff)
    tariffs = repo._dao.query.limit(MAX_TARIFFS).all().items
    return sorted(tariffs, key=lambda t: ((t.origin_district or "").lower(), (t.destination_district or "").lower()))


def find_active_tariff(origin: str, destination: str, courier: str = "steadfast") -> CourierTariff | None:
    """First active tariff for the route, or None."""
    repo = current_domain.repository_for(CourierTariff)
    candidates = repo._dao.query.filter(active=True).limit(MAX_TARIFFS).all().items
    return next((t for t in candidates if t.matches(courier, origin, destination)), None)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
@fulfillment.command(part_of="CourierTariff")
class CreateTariff:
    actor_id = Identifier()
    courier = String(max_length=50, default="steadfast")
    origin_district = String(required=True, max_length=100)
    destination_district = String(required=True, max_length=100)
    service_type = String(max_length=50, default="regular")
    category = String(max_length=50, default="regular")
    base_weight_kg = Float(default=0.5)
    max_weight_kg = Float(default=1.0)
    price = Float(required=True, min_value=0.0)
    active = Boolean(default=True)


@fulfillment.command(part_of="CourierTariff")
class UpdateTariff:
    actor_id = Identifier()
    tariff_id = Identifier(required=True)
    courier = String(max_length=50)
    origin_district = String(max_length=100)
    destination_district = String(max_length=100)
    service_type = String(max_length=50)
    category = String(max_length=50)
    base_weight_kg = Float()
    max_weight_kg = Float()
    price = Float(min_value=0.0)
    active = Boolean()


@fulfillment.command(part_of="CourierTariff")
class DeleteTariff:
    actor_id = Identifier()
    tariff_id = Identifier(required=True)


_TARIFF_FIELDS = (
    "courier",
    "origin_district",
    "destination_district",
    "service_type",
    "category",
    "base_weight_kg",
    "max_weight_kg",
    "price",
    "active",
)


@fulfillment.command_handler(part_of=CourierTariff)
class CourierTariffHandler:
    @handle(CreateTariff)
    def create_tariff(self, command):
        if not command.origin_district.strip() or not command.destination_district.strip():
            raise ValidationError({"district": ["Origin and destination districts are required"]})
        now = datetime.now(UTC)
        tariff = CourierTariff(
            **{name: getattr(command, name) for name in _TARIFF_FIELDS},
            created_at=now,
            updated_at=now,
        )
        current_domain.repository_for(CourierTariff).add(tariff)
        record_activity(command.actor_id, "courier_tariff:create", str(tariff.id), tariff.to_dict())
        return str(tariff.id)

    @handle(UpdateTariff)
    def update_tariff(self, command):
        repo = current_domain.repository_for(CourierTariff)
        tariff = repo.get(command.tariff_id)
        changes = {}
        for name in _TARIFF_FIELDS:
            value = getattr(command, name)
            if value is not None:
                setattr(tariff, name, value)
                changes[name] = value
        tariff.updated_at = datetime.now(UTC)
        repo.add(tariff)
        record_activity(command.actor_id, "courier_tariff:update", str(tariff.id), changes)
        return tariff.to_dict()

    @handle(DeleteTariff)
    def delete_tariff(self, command):
        repo = current_domain.repository_for(CourierTariff)
        tariff = repo.get(command.tariff_id)
        repo._dao.delete(tariff)
        record_activity(command.actor_id, "courier_tariff:delete", str(command.tariff_id), {})
