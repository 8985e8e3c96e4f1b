from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Union

from pydantic import Field, computed_field, model_validator

from .user import ContentType, Document, PyObjectId, UtcDatetime


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Stage(str, Enum):
    BACKLOG = "backlog"
    IN_PROGRESS = "in_progress"
    INTERNAL_REVIEW = "internal_review"
    CLIENT_REVIEW = "client_review"
    DONE = "done"
    INVOICED = "invoiced"
    PAID = "paid"

    @classmethod
    def _missing_(cls, value):
        # older boards stored the first column as "todo"
        if value == "todo":
            return cls.BACKLOG
        return None

    @property
    def label(self) -> str:
        return STAGE_TITLES[self]


STAGE_TITLES = {
    Stage.BACKLOG: "Backlog",
    Stage.IN_PROGRESS: "In Progress",
    Stage.INTERNAL_REVIEW: "Internal Review",
    Stage.CLIENT_REVIEW: "Client Review",
    Stage.DONE: "Done",
    Stage.INVOICED: "Invoiced",
    Stage.PAID: "Paid",
}

MONETIZATION_STAGES = frozenset({Stage.INVOICED, Stage.PAID})
DONE_GROUP = frozenset({Stage.DONE, Stage.INVOICED, Stage.PAID})


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Ticket(Document):
    id: Optional[PyObjectId] = Field(default=None, alias="_id")
    title: str
    description: str = ""
    type: ContentType = ContentType.BLOG
    priority: Priority = Priority.MEDIUM
    client_name: str
    assigned_to: Optional[str] = None
    reviewed_by: Optional[str] = None
    status: Stage = Stage.BACKLOG
    due_date: Optional[str] = None
    estimated_revenue: Optional[float] = None
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: UtcDatetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _distinct_assignee_and_reviewer(self):
        if self.assigned_to and self.reviewed_by and self.assigned_to.strip() == self.reviewed_by.strip():
            raise ValueError("assignee and reviewer must be different people")
        return self

    @property
    def is_assigned(self) -> bool:
        return bool(self.assigned_to and self.assigned_to.strip())


class TicketUpdate(Document):
    """Editable ticket fields. Stage changes go through the workflow."""

    title: Optional[str] = None
    description: Optional[str] = None
    type: Optional[ContentType] = None
    priority: Optional[Priority] = None
    client_name: Optional[str] = None
    assigned_to: Optional[str] = None
    reviewed_by: Optional[str] = None
    due_date: Optional[str] = None
    estimated_revenue: Optional[float] = None


class ReviewHistoryEntry(Document):
    cycle_number: int = 1
    manager_score: float
    feedback: Optional[str] = None
    reviewed_at: UtcDatetime
    reviewed_by: str


class TicketContent(Document):
    content: str = ""
    review_history: List[ReviewHistoryEntry] = []

    @property
    def has_submission(self) -> bool:
        return bool(self.content and self.content.strip())


class CostBreakdown(Document):
    assignee_cost: float = 0.0
    reviewer_cost: float = 0.0
    assignee_rate: Union[float, str] = 0.0
    reviewer_rate: Union[float, str] = 0.0

    @computed_field(alias="totalCost")
    @property
    def total_cost(self) -> float:
        return round(self.assignee_cost + self.reviewer_cost, 2)


class TicketFinancials(Document):
    estimated_revenue: Optional[float] = None
    actual_revenue: Optional[float] = None
    assignee_hours: Optional[float] = None
    reviewer_hours: Optional[float] = None
    total_cost: Optional[float] = None
    cost_breakdown: Optional[CostBreakdown] = None
    updated_at: Optional[UtcDatetime] = None
