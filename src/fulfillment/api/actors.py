"""Caller identity for the Fulfillment API.

Authentication happens upstream; the gateway forwards the caller's role and
id as ``X-Actor-Role`` / ``X-Actor-Id`` headers.
"""

from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException

from fulfillment.shared.deletion import Party
from fulfillment.utils.logging import add_context

CUSTOMER = "customer"
STAFF = "staff"
MANAGER = "manager"
ADMIN = "admin"

ROLES = {CUSTOMER, STAFF, MANAGER, ADMIN}
BACK_OFFICE_ROLES = {STAFF, MANAGER, ADMIN}
SETTINGS_ROLES = {MANAGER, ADMIN}


@dataclass(frozen=True)
class Actor:
    role: str
    actor_id: str | None = None

    @property
    def party(self) -> Party:
        return Party.USER if self.role == CUSTOMER else Party.ADMIN


async def current_actor(
    x_actor_role: str = Header(default=CUSTOMER),
    x_actor_id: str | None = Header(default=None),
) -> Actor:
    """Resolve the caller and bind it to the request's log context."""
    role = x_actor_role.strip().lower()
    if role not in ROLES:
        raise HTTPException(status_code=401, detail=f"Unknown actor role: {x_actor_role}")
    actor = Actor(role=role, actor_id=x_actor_id or None)
    add_context(actor_role=actor.role, actor_id=actor.actor_id)
    return actor


def require_customer(actor: Actor = Depends(current_actor)) -> Actor:
    """A signed-in customer."""
    if actor.role != CUSTOMER or not actor.actor_id:
        raise HTTPException(status_code=401, detail="Customer sign-in required")
    return actor


def require_back_office(actor: Actor = Depends(current_actor)) -> Actor:
    if actor.role not in BACK_OFFICE_ROLES:
        raise HTTPException(status_code=403, detail="Back-office role required")
    return actor


def require_settings_role(actor: Actor = Depends(current_actor)) -> Actor:
    """Managers and admins only: tariffs, shipping settings and purges."""
    if actor.role not in SETTINGS_ROLES:
        raise HTTPException(status_code=403, detail="Manager or admin role required")
    return actor


def ensure_owner(record, actor: Actor) -> None:
    if str(record.user_id) != str(actor.actor_id):
        raise HTTPException(status_code=403, detail="Not your record")
