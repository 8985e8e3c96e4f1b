"""
Transition guards.

Guards run in a fixed order and the first failure wins.  Content and
timeline reads are lazy: a guard that does not apply to the requested
move never touches the store.
"""

from typing import Callable, Optional, Tuple

from ..models import Stage, Ticket, TicketContent, Timeline
from .errors import GuardRejected
from .timeline import current_session_start

UNASSIGNED = "Ticket cannot be moved from Backlog without being assigned to someone first."


class GuardContext:
    """The ticket under evaluation plus cached, on-demand reads."""

    def __init__(self, ticket: Ticket, target: Stage, store):
        self.ticket = ticket
        self.target = target
        self._store = store
        self._content: Optional[TicketContent] = None
        self._timeline: Optional[Timeline] = None
        self._content_loaded = False
        self._timeline_loaded = False

    @property
    def source(self) -> Stage:
        return self.ticket.status

    @property
    def content(self) -> TicketContent:
        if not self._content_loaded:
            self._content = self._store.get_content(self.ticket.id)
            self._content_loaded = True
        return self._content or TicketContent()

    @property
    def timeline(self) -> Optional[Timeline]:
        if not self._timeline_loaded:
            self._timeline = self._store.get_timeline(self.ticket.id)
            self._timeline_loaded = True
        return self._timeline


def assignment_guard(ctx: GuardContext) -> Optional[str]:
    if ctx.target is not Stage.BACKLOG and not ctx.ticket.is_assigned:
        return UNASSIGNED
    return None


def content_guard(ctx: GuardContext) -> Optional[str]:
    if ctx.source is not Stage.INTERNAL_REVIEW:
        return None
    if ctx.target not in (Stage.CLIENT_REVIEW, Stage.DONE):
        return None
    if ctx.content.has_submission:
        return None
    return (
        f"Ticket cannot be moved from Internal Review to {ctx.target.label} "
        "without content submission. Please submit content first."
    )


def fresh_review_guard(ctx: GuardContext) -> Optional[str]:
    if ctx.source is not Stage.INTERNAL_REVIEW:
        return None
    if ctx.target not in (Stage.IN_PROGRESS, Stage.CLIENT_REVIEW):
        return None
    session_start = current_session_start(ctx.timeline, Stage.INTERNAL_REVIEW)
    if session_start is not None:
        if any(entry.reviewed_at > session_start for entry in ctx.content.review_history):
            return None
    return (
        f"Ticket cannot be moved from Internal Review to {ctx.target.label} "
        "without a NEW manager review score for this review session. "
        "Please assign a fresh score before moving."
    )


GUARDS: Tuple[Tuple[str, Callable[[GuardContext], Optional[str]]], ...] = (
    ("assignment", assignment_guard),
    ("content", content_guard),
    ("fresh_review", fresh_review_guard),
)


def check_guards(ticket: Ticket, target: Stage, store) -> None:
    """Raise GuardRejected for the first failing guard, else return."""
    ctx = GuardContext(ticket, target, store)
    for name, guard in GUARDS:
        message = guard(ctx)
        if message is not None:
            raise GuardRejected(name, message, ticket_id=ticket.id)
