from .user import Actor, CompensationStructure, ContentType, PyObjectId, RateCard, Role, TeamMember
from .ticket import (
    DONE_GROUP,
    MONETIZATION_STAGES,
    CostBreakdown,
    Priority,
    ReviewHistoryEntry,
    Stage,
    Ticket,
    TicketContent,
    TicketFinancials,
    TicketUpdate,
)
from .timeline import StageVisit, StatusChange, Timeline
from .client import Client
from .notification import Notification, TransitionNotice
