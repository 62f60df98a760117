"""Soft-delete arbiter — dual-consent visibility and purge rules.

Orders and return requests carry two independent flags, ``hidden_from_user``
and ``hidden_from_admin``. Each party only ever sets its own flag. A record
is removed for good only once both flags are set.
"""

from enum import Enum

import structlog
from protean.utils.globals import current_domain

from fulfillment.shared.errors import NotEligibleForDeletion

logger = structlog.get_logger(__name__)

PURGE_BATCH_SIZE = 200


class Party(Enum):
    USER = "user"
    ADMIN = "admin"


_FLAGS = {
    Party.USER: "hidden_from_user",
    Party.ADMIN: "hidden_from_admin",
}


def flag_for(party: Party) -> str:
    return _FLAGS[Party(party)]


def soft_delete(record, party: Party, deletable_statuses: set[str]) -> None:
    """Hide ``record`` from ``party``. Touches only that party's flag."""
    if record.status not in deletable_statuses:
        allowed = ", ".join(sorted(deletable_statuses))
        raise NotEligibleForDeletion({"status": [f"Only records in status {allowed} can be deleted"]})
    setattr(record, flag_for(party), True)


def is_visible_to(record, party: Party) -> bool:
    return not getattr(record, flag_for(party))


def is_purgeable(record) -> bool:
    return bool(record.hidden_from_user and record.hidden_from_admin)


def purge(aggregate_cls, record_id: str) -> None:
    """Permanently remove one record. Both parties must have hidden it."""
    repo = current_domain.repository_for(aggregate_cls)
    record = repo.get(record_id)
    if not is_purgeable(record):
        raise NotEligibleForDeletion(
            {"hidden": ["Record can be permanently deleted only after both customer and admin have deleted it"]}
        )
    repo._dao.delete(record)
    logger.info("Record purged", aggregate=aggregate_cls.__name__, record_id=str(record_id))


def purge_all(aggregate_cls, batch_size: int = PURGE_BATCH_SIZE) -> int:
    """Remove every record hidden by both parties. Safe to repeat; returns the count."""
    repo = current_domain.repository_for(aggregate_cls)
    purged = 0
    while True:
        batch = repo._dao.query.filter(hidden_from_user=True, hidden_from_admin=True).limit(batch_size).all().items
        if not batch:
            break
        for record in batch:
            repo._dao.delete(record)
            purged += 1

    logger.info("Bulk purge finished", aggregate=aggregate_cls.__name__, purged=purged)
    return purged
