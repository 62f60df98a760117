"""Error taxonomy for the fulfillment domain.

Guard violations extend Protean's ``ValidationError`` so they carry a
field -> messages mapping and surface as HTTP 400 through Protean's FastAPI
exception handlers. Courier failures share the ``CourierError`` base so
callers need a single ``except`` clause for anything the partner did.
"""

from protean.exceptions import ValidationError


class InvalidTransition(ValidationError):
    """A state-machine guard rejected the requested transition."""


class AlreadyDispatched(ValidationError):
    """The order already has (or is acquiring) a courier consignment."""


class OutOfWindow(ValidationError):
    """A return was filed for an undelivered order or after the return window."""


class PriceMismatch(ValidationError):
    """The client's expected delivery charge differs from the stored charge."""


class NotEligibleForDeletion(ValidationError):
    """A soft or permanent delete precondition failed."""


class CourierError(Exception):
    """Any failure talking to the courier partner."""

    http_status = 502

    def __init__(self, message: str, status_code: int | None = None, body=None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.body = body

    def to_dict(self) -> dict:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "status_code": self.status_code,
        }


class ServiceUnavailable(CourierError):
    """Courier credentials are not configured."""

    http_status = 503


class NoResponse(CourierError):
    """Network failure or timeout before the partner answered."""

    http_status = 504


class PartnerRejected(CourierError):
    """The partner answered with a non-2xx status or an unusable payload."""

    http_status = 502
