"""Steadfast courier adapter — the production courier partner over HTTP.

All Steadfast traffic goes through this class. Requests carry the
``Api-Key``/``Secret-Key`` header pair; without credentials every method
fails fast with ServiceUnavailable so the rest of the system can treat the
courier as optional. Transport failures and timeouts become NoResponse,
non-2xx answers become PartnerRejected with the partner's status and body.
"""

from urllib.parse import quote

import httpx

from fulfillment.courier.port import (
    AuditSink,
    CourierPort,
    Destination,
    PickupResult,
    ShipmentRequest,
    ShipmentResult,
)
from fulfillment.shared.errors import NoResponse, PartnerRejected, ServiceUnavailable

DEFAULT_BASE_URL = "https://portal.packzy.com/api/v1"
DEFAULT_TIMEOUT = 15.0


def _json_or_text(response: httpx.Response):
    try:
        return response.json()
    except ValueError:
        return response.text


class SteadfastCourier(CourierPort):
    partner_name = "steadfast"

    def __init__(
        self,
        api_key: str | None,
        secret_key: str | None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
        audit: AuditSink | None = None,
    ) -> None:
        super().__init__(audit=audit)
        self.api_key = api_key
        self.secret_key = secret_key
        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.secret_key)

    def close(self) -> None:
        self._client.close()

    # -------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------
    def _request(self, method: str, path: str, entity: str, payload: dict | None = None, context: dict | None = None):
        if not self.configured:
            raise self._record_failure(
                ServiceUnavailable("Courier service not configured", status_code=503),
                entity,
                context,
            )

        self._record_request(method, path, payload)
        try:
            response = self._client.request(
                method,
                path,
                json=payload,
                headers={"Api-Key": self.api_key, "Secret-Key": self.secret_key},
            )
        except httpx.RequestError as exc:
            raise self._record_failure(
                NoResponse("No response from Steadfast API", body=str(exc)),
                entity,
                context,
            ) from exc

        body = _json_or_text(response)
        if not response.is_success:
            message = "Steadfast API error"
            if isinstance(body, dict):
                message = body.get("message") or body.get("error") or message
            raise self._record_failure(
                PartnerRejected(message, status_code=response.status_code, body=body),
                entity,
                context,
            )
        return body

    # -------------------------------------------------------------------
    # Consignments
    # -------------------------------------------------------------------
    def dispatch(self, request: ShipmentRequest) -> ShipmentResult:
        payload = {
            "invoice": request.invoice,
            "recipient_name": request.recipient_name,
            "recipient_phone": request.recipient_phone,
            "recipient_address": request.recipient_address,
            "cod_amount": request.cod_amount,
            "alternative_phone": request.alternative_phone,
            "recipient_email": request.recipient_email,
            "note": request.note,
            "item_description": request.item_description,
            "total_lot": request.total_lot or 1,
            "delivery_type": request.delivery_type or 0,
        }
        context = {"invoice": request.invoice}
        data = self._request("POST", "/create_order", "steadfast_create_order", payload, context)

        consignment = data.get("consignment") if isinstance(data, dict) else None
        if not isinstance(consignment, dict) or not consignment.get("tracking_code"):
            message = "Failed to create courier order"
            if isinstance(data, dict) and data.get("message"):
                message = data["message"]
            raise self._record_failure(
                PartnerRejected(message, status_code=200, body=data),
                "steadfast_create_order",
                context,
            )

        return ShipmentResult(
            consignment_id=str(consignment["consignment_id"]) if consignment.get("consignment_id") else None,
            tracking_code=str(consignment["tracking_code"]),
            status=consignment.get("status") or "pending",
            raw=data,
        )

    def query_status(self, tracking_code: str) -> str | None:
        data = self._request(
            "GET",
            f"/status_by_trackingcode/{quote(str(tracking_code), safe='')}",
            "steadfast_status_by_tracking",
            context={"trackingCode": tracking_code},
        )
        if isinstance(data, dict):
            return data.get("delivery_status")
        return None

    # -------------------------------------------------------------------
    # Reference data and account
    # -------------------------------------------------------------------
    def list_destinations(self) -> list[Destination]:
        data = self._request("GET", "/police_stations", "steadfast_police_stations")
        if isinstance(data, list):
            items = data
        elif isinstance(data, dict) and isinstance(data.get("data"), list):
            items = data["data"]
        else:
            items = []

        return [
            Destination(
                id=str(item.get("id") or item.get("_id") or item.get("code") or item.get("station_id") or ""),
                name=item.get("name") or item.get("thana") or item.get("police_station") or "",
                district=item.get("district") or item.get("district_name") or "",
                raw=item,
            )
            for item in items
            if isinstance(item, dict)
        ]

    def get_balance(self) -> dict:
        return self._request("GET", "/get_balance", "steadfast_get_balance")

    # -------------------------------------------------------------------
    # Returns
    # -------------------------------------------------------------------
    def request_return_pickup(
        self,
        reason: str,
        invoice: str | None = None,
        consignment_id: str | None = None,
    ) -> PickupResult:
        payload = {"reason": reason}
        if invoice:
            payload["invoice"] = invoice
        if consignment_id:
            payload["consignment_id"] = consignment_id

        data = self._request(
            "POST",
            "/create_return_request",
            "steadfast_create_return",
            payload,
            {"invoice": invoice, "consignment_id": consignment_id},
        )
        data = data if isinstance(data, dict) else {}
        consignment = data.get("consignment") or {}
        return PickupResult(
            consignment_id=str(consignment.get("consignment_id") or data.get("id") or "") or None,
            tracking_code=consignment.get("tracking_code"),
            status=consignment.get("status") or data.get("status"),
            raw=data,
        )

    def list_return_requests(self) -> dict:
        return self._request("GET", "/get_return_requests", "steadfast_get_returns")

    def get_return_request(self, return_request_id: str) -> dict:
        return self._request(
            "GET",
            f"/get_return_request/{quote(str(return_request_id), safe='')}",
            "steadfast_get_return_details",
            context={"id": return_request_id},
        )

    # -------------------------------------------------------------------
    # Payments
    # -------------------------------------------------------------------
    def list_payments(self) -> dict:
        return self._request("GET", "/payments", "steadfast_get_payments")

    def get_payment(self, payment_id: str) -> dict:
        return self._request(
            "GET",
            f"/payments/{quote(str(payment_id), safe='')}",
            "steadfast_get_payment_details",
            context={"payment_id": payment_id},
        )
