"""Fake courier adapter — deterministic courier for testing and development.

Generates ``FAKE-`` tracking codes and answers status queries from an
in-memory table. Failure behaviour is configurable per error class so tests
can exercise every branch of the dispatch and reconciliation paths. Calls are
audited exactly like the real adapter.
"""

from uuid import uuid4

from fulfillment.courier.port import (
    AuditSink,
    CourierPort,
    Destination,
    PickupResult,
    ShipmentRequest,
    ShipmentResult,
)
from fulfillment.shared.errors import CourierError, PartnerRejected, ServiceUnavailable


class FakeCourier(CourierPort):
    """Fake courier that always succeeds by default."""

    partner_name = "steadfast"

    def __init__(self, audit: AuditSink | None = None):
        super().__init__(audit=audit)
        self.calls: list[tuple[str, dict]] = []
        self.statuses: dict[str, str] = {}
        self.destinations: list[Destination] = [
            Destination(id="1", name="Boalia", district="Rajshahi"),
            Destination(id="2", name="Dhanmondi", district="Dhaka"),
            Destination(id="3", name="Kotwali", district="Chattogram"),
        ]
        self.configure()

    def configure(
        self,
        should_succeed: bool = True,
        failure: type[CourierError] = PartnerRejected,
        failure_reason: str = "Courier unavailable",
        configured: bool = True,
        pickup_scheduled: bool = True,
    ):
        """Configure the fake courier behavior for testing."""
        self.should_succeed = should_succeed
        self.failure = failure
        self.failure_reason = failure_reason
        self._configured = configured
        self.pickup_scheduled = pickup_scheduled

    def set_status(self, tracking_code: str, raw_status: str) -> None:
        self.statuses[tracking_code] = raw_status

    @property
    def configured(self) -> bool:
        return self._configured

    def _call(self, name: str, entity: str, payload: dict | None = None) -> None:
        self.calls.append((name, payload or {}))
        if not self._configured:
            raise self._record_failure(ServiceUnavailable("Courier service not configured", status_code=503), entity)
        self._record_request("POST" if payload else "GET", f"/{name}", payload)
        if not self.should_succeed:
            raise self._record_failure(self.failure(self.failure_reason), entity, payload)

    def dispatch(self, request: ShipmentRequest) -> ShipmentResult:
        self._call("create_order", "steadfast_create_order", {"invoice": request.invoice, "cod_amount": request.cod_amount})
        tracking_code = f"FAKE-{uuid4().hex[:12].upper()}"
        self.statuses.setdefault(tracking_code, "in_review")
        return ShipmentResult(
            consignment_id=str(uuid4().int % 10**8),
            tracking_code=tracking_code,
            status="in_review",
            raw={"invoice": request.invoice},
        )

    def query_status(self, tracking_code: str) -> str | None:
        self._call("status_by_trackingcode", "steadfast_status_by_tracking", {"tracking_code": tracking_code})
        return self.statuses.get(tracking_code)

    def list_destinations(self) -> list[Destination]:
        self._call("police_stations", "steadfast_police_stations")
        return list(self.destinations)

    def get_balance(self) -> dict:
        self._call("get_balance", "steadfast_get_balance")
        return {"status": 200, "current_balance": 0}

    def request_return_pickup(
        self,
        reason: str,
        invoice: str | None = None,
        consignment_id: str | None = None,
    ) -> PickupResult:
        self._call(
            "create_return_request",
            "steadfast_create_return",
            {"reason": reason, "invoice": invoice, "consignment_id": consignment_id},
        )
        if not self.pickup_scheduled:
            return PickupResult(consignment_id=None, tracking_code=None, status="pending", raw={})
        return PickupResult(
            consignment_id=consignment_id or f"ret-{uuid4().hex[:8]}",
            tracking_code=f"FAKE-R-{uuid4().hex[:10].upper()}",
            status="pending",
            raw={"reason": reason},
        )

    def list_return_requests(self) -> dict:
        self._call("get_return_requests", "steadfast_get_returns")
        return {"data": []}

    def get_return_request(self, return_request_id: str) -> dict:
        self._call("get_return_request", "steadfast_get_return_details", {"id": return_request_id})
        return {"id": return_request_id, "status": "pending"}

    def list_payments(self) -> dict:
        self._call("payments", "steadfast_get_payments")
        return {"data": []}

    def get_payment(self, payment_id: str) -> dict:
        self._call("payment", "steadfast_get_payment_details", {"payment_id": payment_id})
        return {"id": payment_id, "consignments": []}
