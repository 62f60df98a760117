"""Courier port — abstract interface for courier partner integrations.

Domain code programs against this port; adapters are swapped via
configuration. Every adapter records each outbound request and each failure
to the ActivityLog before the caller sees the outcome. An audit write that
itself fails is logged and dropped so it can never replace the courier error.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable

import structlog

from fulfillment.shared.errors import CourierError

logger = structlog.get_logger(__name__)

AuditSink = Callable[..., object]


@dataclass(frozen=True)
class ShipmentRequest:
    """A COD parcel to hand to the courier."""

    invoice: str
    recipient_name: str
    recipient_phone: str
    recipient_address: str
    cod_amount: float
    alternative_phone: str | None = None
    recipient_email: str | None = None
    note: str | None = None
    item_description: str | None = None
    total_lot: int = 1
    delivery_type: int = 0  # 0 = home delivery


@dataclass(frozen=True)
class ShipmentResult:
    consignment_id: str | None
    tracking_code: str
    status: str
    raw: dict = field(default_factory=dict)


@dataclass(frozen=True)
class PickupResult:
    consignment_id: str | None
    tracking_code: str | None
    status: str | None
    raw: dict = field(default_factory=dict)

    @property
    def scheduled(self) -> bool:
        return bool(self.consignment_id) or self.raw.get("status") == 200


@dataclass(frozen=True)
class Destination:
    id: str
    name: str
    district: str
    raw: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "district": self.district, "raw": self.raw}


class CourierPort(ABC):
    """Abstract interface for courier adapters."""

    partner_name = "courier"

    def __init__(self, audit: AuditSink | None = None) -> None:
        self._audit = audit

    # -------------------------------------------------------------------
    # Audit helpers
    # -------------------------------------------------------------------
    def _sink(self) -> AuditSink:
        if self._audit is None:
            from fulfillment.audit.activity_log import record_activity

            self._audit = record_activity
        return self._audit

    def _record(self, action: str, entity: str, meta: dict) -> None:
        try:
            self._sink()(actor_id=None, action=action, entity=entity, meta=meta)
        except Exception:
            logger.exception("Courier audit write failed", action=action, entity=entity)

    def _record_request(self, method: str, path: str, payload: dict | None = None) -> None:
        preview = None
        if payload is not None:
            preview = str(payload)[:500]
        self._record(
            f"{self.partner_name}_request",
            path,
            {"method": method, "url": path, "courier": self.partner_name, "payloadPreview": preview},
        )

    def _record_failure(self, error: CourierError, entity: str, context: dict | None = None) -> CourierError:
        self._record(
            f"{self.partner_name}_error",
            entity,
            {
                "courier": self.partner_name,
                "error": type(error).__name__,
                "message": error.message,
                "status": error.status_code,
                "context": context or {},
                "response": error.body,
            },
        )
        logger.warning(
            "Courier call failed",
            courier=self.partner_name,
            entity=entity,
            error=type(error).__name__,
            message=error.message,
            status_code=error.status_code,
        )
        return error

    # -------------------------------------------------------------------
    # Contract
    # -------------------------------------------------------------------
    @property
    @abstractmethod
    def configured(self) -> bool:
        """True when partner credentials are present."""
        ...

    @abstractmethod
    def dispatch(self, request: ShipmentRequest) -> ShipmentResult:
        """Create a consignment for a COD parcel."""
        ...

    @abstractmethod
    def query_status(self, tracking_code: str) -> str | None:
        """Return the partner's raw delivery status for a tracking code."""
        ...

    @abstractmethod
    def list_destinations(self) -> list[Destination]:
        """Return the partner's serviceable destinations (police stations)."""
        ...

    @abstractmethod
    def get_balance(self) -> dict:
        ...

    @abstractmethod
    def request_return_pickup(
        self,
        reason: str,
        invoice: str | None = None,
        consignment_id: str | None = None,
    ) -> PickupResult:
        """Ask the partner to pick a parcel up from the customer."""
        ...

    @abstractmethod
    def list_return_requests(self) -> dict:
        ...

    @abstractmethod
    def get_return_request(self, return_request_id: str) -> dict:
        ...

    @abstractmethod
    def list_payments(self) -> dict:
        ...

    @abstractmethod
    def get_payment(self, payment_id: str) -> dict:
        ...
