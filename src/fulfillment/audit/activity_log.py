"""ActivityLog aggregate — append-only audit trail of courier traffic and admin actions.

Entries are written directly through the repository, outside any command
handler, so a rolled-back unit of work never takes its audit trail with it.
"""

import json
from datetime import UTC, datetime

import structlog
from protean.fields import DateTime, Identifier, String, Text
from protean.utils.globals import current_domain

from fulfillment.domain import fulfillment

logger = structlog.get_logger(__name__)


@fulfillment.aggregate
class ActivityLog:
    actor_id = Identifier()
    action = String(required=True, max_length=100)
    entity = String(max_length=255)
    meta = Text()  # JSON object
    created_at = DateTime()

    @property
    def meta_data(self) -> dict:
        return json.loads(self.meta) if self.meta else {}


def record_activity(actor_id: str | None, action: str, entity: str | None = None, meta: dict | None = None):
    """Append one audit entry and return it."""
    entry = ActivityLog(
        actor_id=actor_id,
        action=action,
        entity=entity or "",
        meta=json.dumps(meta or {}, default=str),
        created_at=datetime.now(UTC),
    )
    current_domain.repository_for(ActivityLog).add(entry)
    logger.debug("Activity recorded", action=action, entity=entity, actor_id=actor_id)
    return entry


def find_activity(action: str | None = None, entity: str | None = None, limit: int = 100) -> list[ActivityLog]:
    """Return audit entries matching the given action and/or entity, newest first."""
    criteria = {}
    if action:
        criteria["action"] = action
    if entity:
        criteria["entity"] = entity
    repo = current_domain.repository_for(ActivityLog)
    query = repo._dao.query.filter(**criteria) if criteria else repo._dao.query
    return query.order_by("-created_at").limit(limit).all().items


def record_activity_safely(actor_id: str | None, action: str, entity: str | None = None, meta: dict | None = None):
    """Like ``record_activity`` but never raises, for failure paths where the original error must win."""
    try:
        return record_activity(actor_id, action, entity, meta)
    except Exception:
        logger.exception("Activity log write failed", action=action, entity=entity)
        return None
