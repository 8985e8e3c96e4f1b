"""Ticket create / edit / delete, and the content and review records guards read."""

import logging
from datetime import datetime
from typing import Callable, Optional

from bson import ObjectId

from ..models import Actor, ReviewHistoryEntry, Role, Stage, Ticket, TicketContent, TicketUpdate
from ..models.ticket import utcnow
from .errors import AuthorizationRejected, InvalidInput, TicketNotFound
from .timeline import initialize_timeline

logger = logging.getLogger("agency.workflow.tickets")

PRIVILEGED = (Role.MANAGER, Role.CEO)


def _require_privileged(actor: Actor, what: str):
    if actor.role not in PRIVILEGED:
        raise AuthorizationRejected(f"Only managers and the CEO can {what}.")


def _check_distinct(assigned_to: Optional[str], reviewed_by: Optional[str]):
    if assigned_to and reviewed_by and assigned_to.strip() == reviewed_by.strip():
        raise InvalidInput(
            "The reviewer must be someone other than the assignee.",
            {"assigned_to": assigned_to, "reviewed_by": reviewed_by},
        )


class TicketService:
    def __init__(self, store, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    def get(self, ticket_id: str) -> Ticket:
        ticket = self.store.get_ticket(ticket_id)
        if ticket is None:
            raise TicketNotFound(ticket_id)
        return ticket

    def create(self, ticket: Ticket, actor: Actor) -> Ticket:
        _require_privileged(actor, "create tickets")
        if ticket.status is not Stage.BACKLOG:
            raise InvalidInput("New tickets start in Backlog.", {"status": ticket.status.value})
        _check_distinct(ticket.assigned_to, ticket.reviewed_by)

        now = self.clock()
        ticket = ticket.model_copy(update={"id": str(ObjectId()), "created_at": now, "updated_at": now})
        timeline = initialize_timeline(ticket.id, ticket.status, now, created_by=actor.display_name)
        ticket_id = self.store.insert_ticket(ticket, timeline)
        logger.info("Ticket %s created by %s", ticket_id, actor.display_name,
                    extra={"ticket_id": ticket_id, "action": "created"})
        return self.get(ticket_id)

    def update(self, ticket_id: str, changes: TicketUpdate, actor: Actor) -> Ticket:
        """Edit ticket fields. Last write wins; the stage is never edited here."""
        current = self.get(ticket_id)
        fields = changes.model_dump(mode="json", by_alias=True, exclude_unset=True)
        if not fields:
            return current
        if changes.model_fields_set & {"assigned_to", "reviewed_by"}:
            _require_privileged(actor, "reassign tickets")

        assigned_to = changes.assigned_to if "assigned_to" in changes.model_fields_set else current.assigned_to
        reviewed_by = changes.reviewed_by if "reviewed_by" in changes.model_fields_set else current.reviewed_by
        _check_distinct(assigned_to, reviewed_by)

        fields["updatedAt"] = self.clock().isoformat()
        if not self.store.update_ticket_fields(ticket_id, fields):
            raise TicketNotFound(ticket_id)
        logger.info("Ticket %s edited by %s: %s", ticket_id, actor.display_name, sorted(fields),
                    extra={"ticket_id": ticket_id, "action": "edited"})
        return self.get(ticket_id)

    def delete(self, ticket_id: str, actor: Actor) -> None:
        _require_privileged(actor, "delete tickets")
        if not self.store.delete_ticket(ticket_id):
            raise TicketNotFound(ticket_id)

    def submit_content(self, ticket_id: str, html: str) -> TicketContent:
        self.get(ticket_id)
        content = self.store.get_content(ticket_id) or TicketContent()
        content = content.model_copy(update={"content": html})
        self.store.save_content(ticket_id, content)
        return content

    def record_review(self, ticket_id: str, score: float, actor: Actor, feedback: Optional[str] = None) -> TicketContent:
        _require_privileged(actor, "score reviews")
        self.get(ticket_id)
        content = self.store.get_content(ticket_id) or TicketContent()
        entry = ReviewHistoryEntry(
            cycle_number=len(content.review_history) + 1,
            manager_score=score,
            feedback=feedback,
            reviewed_at=self.clock(),
            reviewed_by=actor.display_name,
        )
        content = content.model_copy(update={"review_history": content.review_history + [entry]})
        self.store.save_content(ticket_id, content)
        return content
