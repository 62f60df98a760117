"""Courier destinations (police stations) with a persisted fallback cache.

When the courier is enabled the live list is fetched and, if non-empty,
cached. When the courier is disabled or the call fails, the last cached list
is served instead so checkout keeps working.
"""

import json
from datetime import UTC, datetime

import structlog
from protean.fields import DateTime, String, Text
from protean.utils.globals import current_domain

from fulfillment.courier import get_courier
from fulfillment.domain import fulfillment
from fulfillment.shared.errors import CourierError
from fulfillment.shipping.settings import get_shipping_settings

logger = structlog.get_logger(__name__)

CACHE_KEY = "steadfast_destinations"


@fulfillment.aggregate
class DestinationCache:
    key = String(required=True, max_length=100)
    payload = Text(default="[]")  # JSON list of {id, name, district, raw}
    fetched_at = DateTime()

    @property
    def destinations(self) -> list[dict]:
        return json.loads(self.payload) if self.payload else []


def _cached() -> DestinationCache | None:
    results = current_domain.repository_for(DestinationCache)._dao.query.filter(key=CACHE_KEY).all().items
    return results[0] if results else None


def _store(destinations: list[dict]) -> None:
    entry = _cached() or DestinationCache(key=CACHE_KEY)
    entry.payload = json.dumps(destinations, default=str)
    entry.fetched_at = datetime.now(UTC)
    current_domain.repository_for(DestinationCache).add(entry)


def _from_cache(reason: str) -> dict:
    entry = _cached()
    return {
        "destinations": entry.destinations if entry else [],
        "from_cache": True,
        "cached_at": entry.fetched_at.isoformat() if entry and entry.fetched_at else None,
        "reason": reason,
    }


def get_destinations() -> dict:
    if not get_shipping_settings().courier_enabled:
        return _from_cache("courier_disabled")

    try:
        destinations = [d.to_dict() for d in get_courier().list_destinations()]
    except CourierError as exc:
        logger.warning("Serving cached destinations after courier failure", error=exc.message)
        return _from_cache("courier_error")

    if destinations:
        _store(destinations)
    return {"destinations": destinations, "from_cache": False, "cached_at": None, "reason": None}
