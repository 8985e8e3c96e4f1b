from typing import Optional

from pydantic import BaseModel, Field

from .ticket import Stage, utcnow
from .user import Document, PyObjectId, UtcDatetime


class Notification(Document):
    id: Optional[PyObjectId] = Field(default=None, alias="_id")
    user_id: str
    message: str
    ticket_id: Optional[str] = None
    read: bool = False
    ts: UtcDatetime = Field(default_factory=utcnow)


class TransitionNotice(BaseModel):
    """Outbound payload describing a committed stage change."""

    ticketId: str
    title: str
    client: str
    assignee: Optional[str] = None
    fromStatus: Optional[Stage] = None
    toStatus: Stage
    actor: str
