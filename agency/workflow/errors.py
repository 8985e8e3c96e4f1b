"""
Workflow exception hierarchy.

Every rejection a user can see carries the exact precondition that failed,
so the API layer can surface ``str(exc)`` verbatim.

    WorkflowError
    +-- TicketNotFound
    +-- PendingTransitionNotFound
    +-- TransitionRejected
    |   +-- AuthorizationRejected
    |   +-- GuardRejected
    +-- InvalidInput
    +-- StoreError
    +-- CommitFailed
"""

from typing import Optional


class WorkflowError(Exception):
    """Base class for everything the workflow layer raises on purpose."""


class TicketNotFound(WorkflowError):
    def __init__(self, ticket_id: str):
        self.ticket_id = ticket_id
        super().__init__(f"Ticket {ticket_id} not found")


class PendingTransitionNotFound(WorkflowError):
    def __init__(self, token: str):
        self.token = token
        super().__init__(f"No pending transition for token {token}")


class TransitionRejected(WorkflowError):
    """A transition was refused. Nothing was written."""

    def __init__(self, message: str, ticket_id: Optional[str] = None):
        self.ticket_id = ticket_id
        super().__init__(message)


class AuthorizationRejected(TransitionRejected):
    """The actor's role may not initiate this transition."""


class GuardRejected(TransitionRejected):
    """A named precondition on the ticket failed.

    Args:
        guard: Name of the failing guard (``assignment``, ``content``,
               ``fresh_review``, ``stale``).
        message: User-facing explanation naming the target stage.
    """

    def __init__(self, guard: str, message: str, ticket_id: Optional[str] = None):
        self.guard = guard
        super().__init__(message, ticket_id=ticket_id)


class InvalidInput(WorkflowError):
    """Submitted data violates a business rule (bad hours, same assignee and reviewer)."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.details = details or {}
        super().__init__(message)


class StoreError(WorkflowError):
    """The backing store failed or is unreachable."""


class CommitFailed(WorkflowError):
    """The atomic write did not go through. Safe to retry."""

    def __init__(self, ticket_id: str, reason: str = ""):
        self.ticket_id = ticket_id
        self.reason = reason
        super().__init__("Could not save the ticket move. Please try again.")
