"""Stock ledger — on-hand quantities per product and per variant.

Catalogue management is external; this aggregate only tracks the counts the
order and return lifecycles move. A product-level row has an empty
``variant_id``. Withdrawals floor at zero so stock never goes negative.
"""

from datetime import UTC, datetime

import structlog
from protean.fields import DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain

from fulfillment.domain import fulfillment
from fulfillment.shared.locks import keyed_lock

logger = structlog.get_logger(__name__)


@fulfillment.aggregate
class StockLevel:
    product_id = Identifier(required=True)
    variant_id = String(max_length=100, default="")
    on_hand = Integer(default=0, min_value=0)
    updated_at = DateTime()

    def withdraw(self, quantity: int) -> None:
        self.on_hand = max(0, (self.on_hand or 0) - quantity)
        self.updated_at = datetime.now(UTC)

    def receive(self, quantity: int) -> None:
        self.on_hand = (self.on_hand or 0) + quantity
        self.updated_at = datetime.now(UTC)


def _find(product_id: str, variant_id: str | None = None) -> StockLevel | None:
    results = (
        current_domain.repository_for(StockLevel)
        ._dao.query.filter(product_id=str(product_id), variant_id=variant_id or "")
        .all()
        .items
    )
    return results[0] if results else None


def set_stock(product_id: str, on_hand: int, variant_id: str | None = None) -> StockLevel:
    """Create or overwrite a stock row."""
    with keyed_lock("stock", product_id):
        level = _find(product_id, variant_id)
        if level is None:
            level = StockLevel(product_id=str(product_id), variant_id=variant_id or "")
        level.on_hand = on_hand
        level.updated_at = datetime.now(UTC)
        current_domain.repository_for(StockLevel).add(level)
    return level


def stock_on_hand(product_id: str, variant_id: str | None = None) -> int | None:
    level = _find(product_id, variant_id)
    return level.on_hand if level else None


def adjust_stock(product_id: str, delta: int, variant_id: str | None = None) -> None:
    """Apply ``delta`` to the product row and, when given, the variant row.

    The read-modify-write runs under a per-product lock. Unknown rows are
    skipped with a warning.
    """
    repo = current_domain.repository_for(StockLevel)
    with keyed_lock("stock", product_id):
        keys = [None, variant_id] if variant_id else [None]
        for key in keys:
            level = _find(product_id, key)
            if level is None:
                logger.warning("Stock row not found", product_id=str(product_id), variant_id=key)
                continue
            if delta < 0:
                level.withdraw(-delta)
            else:
                level.receive(delta)
            repo.add(level)


def withdraw_items(items) -> None:
    """Decrement stock for order lines (anything with product_id, variant_id, quantity)."""
    for item in items:
        adjust_stock(item.product_id, -int(item.quantity), item.variant_id or None)


def restore_items(items) -> None:
    """Inverse of ``withdraw_items``."""
    for item in items:
        adjust_stock(item.product_id, int(item.quantity), item.variant_id or None)
