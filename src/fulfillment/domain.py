"""Fulfillment bounded context — Order, Return and Courier lifecycle.

Owns the order state machine, courier dispatch and reconciliation against the
courier partner, the return-request workflow with its stock and refund side
effects, and the dual-consent soft-delete rule shared by orders and returns.
Orders and returns use CQRS (not event sourcing) because records must be
physically purged once both parties have hidden them.
"""

import structlog
from protean.domain import Domain

from fulfillment.utils.logging import configure_logging

configure_logging()

fulfillment = Domain(name="fulfillment")

logger = structlog.get_logger(__name__)
