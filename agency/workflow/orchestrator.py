"""
Workflow orchestrator: one stage-transition attempt from request to commit.

    Requested -> Authorizing -> Guarding -> (Clear | Rejected)
              -> (AwaitingInput | ReadyToCommit) -> Committed | Abandoned

Rejections are raised (``AuthorizationRejected``, ``GuardRejected``) and
leave the ticket untouched.  When money cannot be resolved automatically
the attempt is parked under a token and ``AwaitingInput`` is returned;
``supply_pricing`` / ``supply_hours`` resume it and ``cancel`` abandons it.
Nothing is written while an attempt is parked.

Usage:
    flow = WorkflowOrchestrator(store, notifier)
    outcome = flow.request_transition(ticket_id, Stage.DONE, actor)
    if isinstance(outcome, AwaitingInput):
        outcome = flow.supply_hours(outcome.token, assignee_hours=3)
"""

import logging
import math
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Optional, Union

from ..models import (
    MONETIZATION_STAGES,
    Actor,
    CostBreakdown,
    Role,
    Stage,
    StatusChange,
    TeamMember,
    Ticket,
    TicketFinancials,
    TransitionNotice,
)
from ..models.ticket import utcnow
from .costs import HoursRequirement, completion_cost, hours_required, monetization_revenue
from .errors import (
    CommitFailed,
    GuardRejected,
    InvalidInput,
    PendingTransitionNotFound,
    StoreError,
    TicketNotFound,
)
from .guards import check_guards
from .notifier import dispatch_in_thread
from .permissions import authorize_transition, board_column
from .timeline import initialize_timeline, record_transition

logger = logging.getLogger("agency.workflow.orchestrator")

PRICING = "pricing"
HOURS = "hours"


@dataclass(frozen=True)
class Committed:
    ticket_id: str
    from_status: Stage
    to_status: Stage
    change: StatusChange
    financials: Optional[TicketFinancials] = None
    status: str = "committed"


@dataclass(frozen=True)
class Unchanged:
    ticket_id: str
    to_status: Stage
    status: str = "unchanged"


@dataclass(frozen=True)
class AwaitingInput:
    token: str
    ticket_id: str
    from_status: Stage
    to_status: Stage
    kind: str
    hours: HoursRequirement = field(default_factory=HoursRequirement)
    # only filled in for the CEO; managers enter hours without seeing money
    cost_preview: Optional[CostBreakdown] = None
    status: str = "awaiting_input"


Outcome = Union[Committed, Unchanged, AwaitingInput]


def _finite(value) -> bool:
    return value is not None and math.isfinite(value)


@dataclass
class PendingTransition:
    token: str
    ticket: Ticket
    to_status: Stage
    actor: Actor
    kind: str
    assignee: Optional[TeamMember] = None
    reviewer: Optional[TeamMember] = None
    hours: HoursRequirement = field(default_factory=HoursRequirement)
    requested_at: Optional[datetime] = None


class WorkflowOrchestrator:
    def __init__(
        self,
        store,
        notifier=None,
        dispatch: Callable[[Callable[[], None]], None] = dispatch_in_thread,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.notifier = notifier
        self.dispatch = dispatch
        self.clock = clock
        self._pending: Dict[str, PendingTransition] = {}
        self._lock = threading.Lock()

    # ── entry points ────────────────────────────────────────

    def request_transition(self, ticket_id: str, target: Stage, actor: Actor) -> Outcome:
        ticket = self._load(ticket_id)
        source = ticket.status
        logger.info("Transition requested %s: %s -> %s by %s", ticket_id, source.value, target.value,
                    actor.display_name, extra={"ticket_id": ticket_id, "action": "requested"})

        # authorization comes first so a forbidden actor never sees content-based reasons
        authorize_transition(actor.role, source, target, ticket_id=ticket_id)

        if board_column(actor.role, source) == board_column(actor.role, target):
            return Unchanged(ticket_id=ticket_id, to_status=source)

        check_guards(ticket, target, self.store)
        return self._resolve(ticket, target, actor)

    def supply_pricing(self, token: str, actual_revenue: float) -> Committed:
        pending = self.get_pending(token)
        if pending.kind != PRICING:
            raise PendingTransitionNotFound(token)
        if not _finite(actual_revenue) or actual_revenue < 0:
            raise InvalidInput("Please enter a valid revenue amount", {"actual_revenue": actual_revenue})

        pending = self._take(token, PRICING)
        financials = TicketFinancials(actual_revenue=actual_revenue)
        return self._resume(pending, financials, notes=f"Manual pricing set: ${actual_revenue:,.2f}")

    def supply_hours(
        self, token: str, assignee_hours: Optional[float] = None, reviewer_hours: Optional[float] = None
    ) -> Committed:
        pending = self.get_pending(token)
        if pending.kind != HOURS:
            raise PendingTransitionNotFound(token)
        if pending.hours.assignee and not (_finite(assignee_hours) and assignee_hours > 0):
            raise InvalidInput("Please enter valid hours for the assignee", {"assignee_hours": assignee_hours})
        if pending.hours.reviewer and not (_finite(reviewer_hours) and reviewer_hours > 0):
            raise InvalidInput("Please enter valid hours for the reviewer", {"reviewer_hours": reviewer_hours})

        pending = self._take(token, HOURS)
        ticket = pending.ticket
        breakdown = completion_cost(
            ticket.type,
            pending.assignee,
            pending.reviewer,
            assignee_hours if pending.hours.assignee else None,
            reviewer_hours if pending.hours.reviewer else None,
        )
        financials = TicketFinancials(
            assignee_hours=assignee_hours if pending.hours.assignee else None,
            reviewer_hours=reviewer_hours if pending.hours.reviewer else None,
            total_cost=breakdown.total_cost,
            cost_breakdown=breakdown,
        )
        return self._resume(pending, financials, notes="Ticket completed with cost calculation")

    def cancel(self, token: str) -> None:
        with self._lock:
            pending = self._pending.pop(token, None)
        if pending is None:
            raise PendingTransitionNotFound(token)
        logger.info("Transition abandoned %s -> %s", pending.ticket.id, pending.to_status.value,
                    extra={"ticket_id": pending.ticket.id, "action": "abandoned", "token": token})

    def get_pending(self, token: str) -> PendingTransition:
        with self._lock:
            pending = self._pending.get(token)
        if pending is None:
            raise PendingTransitionNotFound(token)
        return pending

    # ── steps ───────────────────────────────────────────────

    def _load(self, ticket_id: str) -> Ticket:
        ticket = self.store.get_ticket(ticket_id)
        if ticket is None:
            raise TicketNotFound(ticket_id)
        return ticket

    def _parties(self, ticket: Ticket):
        assignee = self.store.get_team_member(ticket.assigned_to) if ticket.is_assigned else None
        reviewer = self.store.get_team_member(ticket.reviewed_by) if ticket.reviewed_by else None
        return assignee, reviewer

    def _resolve(self, ticket: Ticket, target: Stage, actor: Actor) -> Outcome:
        if target in MONETIZATION_STAGES:
            revenue = monetization_revenue(self.store.get_client(ticket.client_name), ticket.type)
            if revenue is None:
                return self._park(ticket, target, actor, PRICING)
            financials = TicketFinancials(actual_revenue=revenue)
            return self._commit(ticket, target, actor, financials, notes="Auto-pricing applied")

        if target is Stage.DONE:
            assignee, reviewer = self._parties(ticket)
            needs = hours_required(assignee, reviewer)
            if needs.any:
                return self._park(ticket, target, actor, HOURS, assignee, reviewer, needs)
            breakdown = completion_cost(ticket.type, assignee, reviewer)
            financials = TicketFinancials(total_cost=breakdown.total_cost, cost_breakdown=breakdown)
            return self._commit(ticket, target, actor, financials, notes="Ticket completed with cost calculation")

        return self._commit(ticket, target, actor, None, notes="Status updated")

    def _park(self, ticket, target, actor, kind, assignee=None, reviewer=None, hours=None) -> AwaitingInput:
        token = uuid.uuid4().hex
        pending = PendingTransition(
            token=token,
            ticket=ticket,
            to_status=target,
            actor=actor,
            kind=kind,
            assignee=assignee,
            reviewer=reviewer,
            hours=hours or HoursRequirement(),
            requested_at=self.clock(),
        )
        with self._lock:
            self._pending[token] = pending

        preview = None
        if kind == HOURS and actor.role is Role.CEO:
            preview = completion_cost(ticket.type, assignee, reviewer)
        logger.info("Transition awaiting %s input %s -> %s", kind, ticket.id, target.value,
                    extra={"ticket_id": ticket.id, "action": "awaiting_input", "token": token})
        return AwaitingInput(
            token=token,
            ticket_id=ticket.id,
            from_status=ticket.status,
            to_status=target,
            kind=kind,
            hours=pending.hours,
            cost_preview=preview,
        )

    def _take(self, token: str, kind: str) -> PendingTransition:
        with self._lock:
            pending = self._pending.get(token)
            if pending is None or pending.kind != kind:
                raise PendingTransitionNotFound(token)
            return self._pending.pop(token)

    def _resume(self, pending: PendingTransition, financials: TicketFinancials, notes: str) -> Committed:
        """Re-check the ticket after the wait, then commit or drop the attempt.

        A store failure puts the attempt back so the same input can be resubmitted.
        """
        try:
            current = self._load(pending.ticket.id)
        except StoreError:
            self._restore(pending)
            raise
        parked = pending.ticket
        if (
            current.status != parked.status
            or current.assigned_to != parked.assigned_to
            or current.reviewed_by != parked.reviewed_by
        ):
            logger.info("Pending transition %s is stale, dropping", pending.token,
                        extra={"ticket_id": parked.id, "action": "stale", "token": pending.token})
            raise GuardRejected(
                "stale",
                "Ticket was changed while waiting for input. Please move it again.",
                ticket_id=parked.id,
            )
        try:
            check_guards(current, pending.to_status, self.store)
            return self._commit(current, pending.to_status, pending.actor, financials, notes)
        except (CommitFailed, StoreError):
            self._restore(pending)
            raise

    def _restore(self, pending: PendingTransition) -> None:
        with self._lock:
            self._pending[pending.token] = pending

    def _commit(
        self, ticket: Ticket, target: Stage, actor: Actor, financials: Optional[TicketFinancials], notes: str
    ) -> Committed:
        now = self.clock()
        source = ticket.status
        timeline = self.store.get_timeline(ticket.id)
        unsaved = []
        if timeline is None:
            # tickets imported without a timeline get their creation record on the first move
            timeline = initialize_timeline(ticket.id, source, ticket.created_at)
            unsaved = list(timeline.status_changes)
        timeline, change = record_transition(
            timeline, target, actor.display_name, now, notes=notes, from_stage=source
        )
        unsaved.append(change)

        ticket_fields = {"status": target.value, "updatedAt": now.isoformat()}
        money = None
        if financials is not None:
            financials = financials.model_copy(update={"updated_at": now})
            money = financials.model_dump(mode="json", by_alias=True, exclude_none=True)

        try:
            applied = self.store.commit_transition(ticket.id, source, ticket_fields, money, timeline, unsaved)
        except StoreError as e:
            logger.error("Commit failed for %s: %s", ticket.id, e,
                         extra={"ticket_id": ticket.id, "action": "commit_failed"})
            raise CommitFailed(ticket.id, str(e)) from e
        if not applied:
            logger.warning("Commit for %s matched nothing; ticket moved or was deleted", ticket.id,
                           extra={"ticket_id": ticket.id, "action": "commit_failed"})
            raise CommitFailed(ticket.id, "ticket changed concurrently")

        logger.info("Transition committed %s: %s -> %s by %s", ticket.id, source.value, target.value,
                    actor.display_name, extra={"ticket_id": ticket.id, "action": "committed",
                                               "from_status": source.value, "to_status": target.value})
        self._notify(ticket, source, target, actor)
        return Committed(ticket_id=ticket.id, from_status=source, to_status=target,
                         change=change, financials=financials)

    def _notify(self, ticket: Ticket, source: Stage, target: Stage, actor: Actor) -> None:
        if self.notifier is None:
            return
        notice = TransitionNotice(
            ticketId=ticket.id,
            title=ticket.title,
            client=ticket.client_name,
            assignee=ticket.assigned_to,
            fromStatus=source,
            toStatus=target,
            actor=actor.display_name,
        )

        def send():
            try:
                self.notifier.notify(notice)
            except Exception:
                logger.exception("Notification for %s failed", ticket.id, extra={"ticket_id": ticket.id})

        try:
            self.dispatch(send)
        except Exception:
            logger.exception("Could not dispatch notification for %s", ticket.id, extra={"ticket_id": ticket.id})
