"""Who may move a ticket where, and how each role sees the board."""

from typing import Optional

from ..models import DONE_GROUP, MONETIZATION_STAGES, Role, Stage
from .errors import AuthorizationRejected

WRITER_READ_ONLY = "Writers cannot move tickets between stages."
MANAGER_MONETIZATION = (
    "Managers cannot move tickets to Invoiced or Paid columns. "
    "These tickets appear in the Done column."
)

BASE_COLUMNS = (
    Stage.BACKLOG,
    Stage.IN_PROGRESS,
    Stage.INTERNAL_REVIEW,
    Stage.CLIENT_REVIEW,
    Stage.DONE,
)
CEO_COLUMNS = (Stage.INVOICED, Stage.PAID)


def _denial(role: Role, from_stage: Stage, to_stage: Stage) -> Optional[str]:
    if role is Role.WRITER:
        return WRITER_READ_ONLY
    if to_stage in MONETIZATION_STAGES:
        if role is not Role.CEO:
            return MANAGER_MONETIZATION
        if from_stage not in DONE_GROUP:
            return f"Only tickets in Done can be moved to {to_stage.label}."
    return None


def can_initiate_transition(role: Role, from_stage: Stage, to_stage: Stage) -> bool:
    return _denial(role, from_stage, to_stage) is None


def authorize_transition(role: Role, from_stage: Stage, to_stage: Stage, ticket_id: Optional[str] = None):
    message = _denial(role, from_stage, to_stage)
    if message is not None:
        raise AuthorizationRejected(message, ticket_id=ticket_id)


def visible_columns(role: Role) -> tuple:
    if role is Role.CEO:
        return BASE_COLUMNS + CEO_COLUMNS
    return BASE_COLUMNS


def board_column(role: Role, stage: Stage) -> Stage:
    """Column a ticket is shown under. Managers and writers see one merged Done."""
    if role is not Role.CEO and stage in DONE_GROUP:
        return Stage.DONE
    return stage
