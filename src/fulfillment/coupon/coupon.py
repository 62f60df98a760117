"""Coupon aggregate — usage bookkeeping and store-credit minting.

Discount math lives outside this service; here a coupon only tracks who has
used it, so a cancelled order can hand the usage back, and issues fixed-value
store credit when a return is settled by coupon.
"""

import json
import secrets
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Callable

import structlog
from protean.fields import Boolean, DateTime, Float, String, Text
from protean.utils.globals import current_domain

from fulfillment.domain import fulfillment
from fulfillment.shared.locks import keyed_lock

logger = structlog.get_logger(__name__)

STORE_CREDIT_VALIDITY_DAYS = 90
MAX_CODE_ATTEMPTS = 10


class CouponType(Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


@fulfillment.aggregate
class Coupon:
    code = String(required=True, max_length=50)
    coupon_type = String(max_length=20, choices=CouponType, default=CouponType.PERCENTAGE.value)
    value = Float(required=True, min_value=0.0)
    active = Boolean(default=True)
    expires_at = DateTime()
    min_purchase = Float(default=0.0)
    used_by = Text(default="[]")  # JSON list of user ids
    created_at = DateTime()

    @property
    def users(self) -> list[str]:
        return json.loads(self.used_by) if self.used_by else []

    def has_been_used_by(self, user_id: str) -> bool:
        return str(user_id) in self.users

    def record_usage(self, user_id: str) -> None:
        users = self.users
        if str(user_id) not in users:
            users.append(str(user_id))
            self.used_by = json.dumps(users)

    def release_usage(self, user_id: str) -> None:
        self.used_by = json.dumps([u for u in self.users if u != str(user_id)])


def generate_store_credit_code() -> str:
    return f"RETURN-{secrets.token_hex(4).upper()}"


def find_coupon(code: str) -> Coupon | None:
    results = current_domain.repository_for(Coupon)._dao.query.filter(code=code).all().items
    return results[0] if results else None


def record_coupon_usage(code: str | None, user_id: str | None) -> bool:
    """Mark ``code`` as used by ``user_id``. Returns False when there is nothing to record."""
    if not code or not user_id:
        return False
    with keyed_lock("coupon", code):
        coupon = find_coupon(code)
        if coupon is None:
            logger.warning("Coupon not found while recording usage", code=code)
            return False
        coupon.record_usage(user_id)
        current_domain.repository_for(Coupon).add(coupon)
    return True


def release_coupon_usage(code: str | None, user_id: str | None) -> bool:
    """Hand a coupon usage back after the order that consumed it was cancelled."""
    if not code or not user_id:
        return False
    with keyed_lock("coupon", code):
        coupon = find_coupon(code)
        if coupon is None:
            logger.warning("Coupon not found while releasing usage", code=code)
            return False
        coupon.release_usage(user_id)
        current_domain.repository_for(Coupon).add(coupon)
    logger.info("Coupon usage released", code=code, user_id=str(user_id))
    return True


def mint_store_credit(
    amount: float,
    validity_days: int = STORE_CREDIT_VALIDITY_DAYS,
    code_factory: Callable[[], str] = generate_store_credit_code,
) -> Coupon:
    """Issue a single fixed-value coupon, retrying when a generated code is taken."""
    for _ in range(MAX_CODE_ATTEMPTS):
        code = code_factory()
        with keyed_lock("coupon", code):
            if find_coupon(code) is not None:
                logger.info("Store credit code collision, retrying", code=code)
                continue
            now = datetime.now(UTC)
            coupon = Coupon(
                code=code,
                coupon_type=CouponType.FIXED.value,
                value=float(amount),
                active=True,
                expires_at=now + timedelta(days=validity_days),
                min_purchase=0.0,
                used_by="[]",
                created_at=now,
            )
            current_domain.repository_for(Coupon).add(coupon)
        logger.info("Store credit issued", code=code, amount=amount)
        return coupon

    raise RuntimeError(f"Could not generate a unique coupon code after {MAX_CODE_ATTEMPTS} attempts")


def deactivate_coupon(code: str) -> bool:
    """Switch a coupon off so it can no longer be redeemed. Returns False when the code is unknown."""
    repo = current_domain.repository_for(Coupon)
    with keyed_lock("coupon", code):
        coupon = find_coupon(code)
        if coupon is None:
            return False
        coupon.active = False
        repo.add(coupon)
    logger.info("Coupon deactivated", code=code)
    return True
