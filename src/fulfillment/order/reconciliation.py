"""Courier status reconciliation — manual refresh and the periodic sweep.

Designed to be triggered periodically by an external scheduler (cron, K8s
CronJob) via the maintenance API endpoint or ``manage.py sync-couriers``.
Each tick re-reads the courier status for a bounded batch of dispatched,
non-terminal orders and applies the one-way merge rule. A failure on one
order is recorded on that order and the sweep moves on.
"""

import structlog
from protean.exceptions import InvalidOperationError, ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from fulfillment.audit.activity_log import record_activity, record_activity_safely
from fulfillment.courier import get_courier
from fulfillment.courier.status import map_status
from fulfillment.order.cancellation import release_order_resources
from fulfillment.order.order import DispatchState, Order, OrderStatus
from fulfillment.shared.errors import CourierError
from fulfillment.shared.locks import keyed_lock

logger = structlog.get_logger(__name__)

SYNC_BATCH_SIZE = 200

_OUTSTANDING_STATUSES = [
    OrderStatus.PENDING.value,
    OrderStatus.CONFIRMED.value,
    OrderStatus.SHIPPED.value,
]


def _record_sync_failure(order_id: str, error: CourierError, actor_id: str | None, manual: bool) -> None:
    repo = current_domain.repository_for(Order)
    with keyed_lock("order", order_id):
        order = repo.get(order_id)
        order.record_sync_error(error.message)
        repo.add(order)
    record_activity_safely(
        actor_id,
        "courier_status_sync_error",
        str(order_id),
        {"error": type(error).__name__, "message": error.message, "status": error.status_code, "manual": manual},
    )


def refresh_courier_status(order_id: str, actor_id: str | None = None, manual: bool = False) -> Order:
    """Re-read the courier status for one order and merge it in."""
    repo = current_domain.repository_for(Order)
    order = repo.get(order_id)
    if not order.tracking_id:
        raise ValidationError({"courier": ["Order has no courier tracking id"]})

    try:
        status_raw = get_courier().query_status(order.tracking_id)
    except CourierError as exc:
        _record_sync_failure(order_id, exc, actor_id, manual)
        raise

    friendly = map_status(status_raw)
    with keyed_lock("order", order_id):
        order = repo.get(order_id)
        previous_status = order.status
        new_status = order.apply_courier_status(status_raw, friendly)
        repo.add(order)

    if new_status == OrderStatus.CANCELLED:
        release_order_resources(order, actor_id, f"Cancelled by courier (status: {status_raw})")

    record_activity(
        actor_id,
        "courier_status_manual_refresh" if manual else "courier_status_sync_success",
        str(order_id),
        {
            "tracking_id": order.tracking_id,
            "status_raw": status_raw,
            "status_friendly": friendly.value,
            "previous_status": previous_status,
            "order_status": order.status,
        },
    )
    return order


def outstanding_orders(batch_size: int = SYNC_BATCH_SIZE) -> list[Order]:
    """Dispatched orders the courier may still move, least recently touched first."""
    return (
        current_domain.repository_for(Order)
        ._dao.query.filter(dispatch_state=DispatchState.DISPATCHED.value, status__in=_OUTSTANDING_STATUSES)
        .order_by("updated_at")
        .limit(batch_size)
        .all()
        .items
    )


def sync_courier_statuses(batch_size: int = SYNC_BATCH_SIZE) -> dict:
    """Run one reconciliation tick. Returns counts for the batch."""
    orders = outstanding_orders(batch_size)
    if not orders:
        logger.info("No outstanding courier shipments")
        return {"checked": 0, "updated": 0, "failed": 0}

    logger.info("Syncing courier statuses", batch=len(orders))

    updated = 0
    failed = 0
    for order in orders:
        previous = order.status
        try:
            refreshed = refresh_courier_status(str(order.id))
            if refreshed.status != previous:
                updated += 1
        except CourierError as exc:
            failed += 1
            logger.warning("Courier sync failed", order_id=str(order.id), error=type(exc).__name__, message=exc.message)
        except (ValidationError, InvalidOperationError, ObjectNotFoundError) as exc:
            failed += 1
            logger.warning("Courier sync skipped", order_id=str(order.id), error=str(exc))

    logger.info("Courier sync finished", checked=len(orders), updated=updated, failed=failed)
    return {"checked": len(orders), "updated": updated, "failed": failed}
