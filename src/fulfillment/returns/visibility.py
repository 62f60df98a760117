"""Return request visibility — per-party soft delete, permanent purge and listings."""

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from fulfillment.audit.activity_log import record_activity
from fulfillment.domain import fulfillment
from fulfillment.returns.return_request import ReturnRequest
from fulfillment.shared.deletion import Party, flag_for, purge, purge_all

DEFAULT_PAGE_SIZE = 100


@fulfillment.command(part_of="ReturnRequest")
class HideReturn:
    return_id = Identifier(required=True)
    party = String(required=True, choices=Party)
    actor_id = Identifier()


@fulfillment.command_handler(part_of=ReturnRequest)
class HideReturnHandler:
    @handle(HideReturn)
    def hide_return(self, command):
        repo = current_domain.repository_for(ReturnRequest)
        rr = repo.get(command.return_id)
        party = Party(command.party)
        if party == Party.USER and str(rr.user_id) != str(command.actor_id):
            raise ValidationError({"return": ["Return request does not belong to this user"]})
        rr.hide_for(party)
        repo.add(rr)


def hide_return(return_id: str, party: Party, actor_id: str | None = None) -> ReturnRequest:
    party = Party(party)
    current_domain.process(
        HideReturn(return_id=return_id, party=party.value, actor_id=actor_id),
        asynchronous=False,
    )
    record_activity(actor_id, f"return_delete:{party.value}", str(return_id), {})
    return current_domain.repository_for(ReturnRequest).get(return_id)


def purge_return(return_id: str, actor_id: str | None = None) -> None:
    purge(ReturnRequest, return_id)
    record_activity(actor_id, "return_purge", str(return_id), {})


def purge_hidden_returns(actor_id: str | None = None) -> int:
    purged = purge_all(ReturnRequest)
    record_activity(actor_id, "return_bulk_purge", "ReturnRequest", {"purged": purged})
    return purged


def returns_visible_to(party: Party, user_id: str | None = None, limit: int = DEFAULT_PAGE_SIZE) -> list[ReturnRequest]:
    party = Party(party)
    criteria = {flag_for(party): False}
    if party == Party.USER:
        criteria["user_id"] = str(user_id)
    repo = current_domain.repository_for(ReturnRequest)
    return repo._dao.query.filter(**criteria).order_by("-created_at").limit(limit).all().items
