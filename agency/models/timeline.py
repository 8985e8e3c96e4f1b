from typing import Dict, List, Optional

from pydantic import ConfigDict

from .ticket import Stage
from .user import Document, UtcDatetime


class StatusChange(Document):
    """One audit record. Written once, never edited."""

    model_config = ConfigDict(frozen=True)

    id: str
    from_status: Optional[Stage] = None
    to_status: Stage
    changed_by: str
    changed_at: UtcDatetime
    notes: Optional[str] = None
    automatic_change: bool = False


class StageVisit(Document):
    model_config = ConfigDict(frozen=True)

    stage: Stage
    entered_at: UtcDatetime
    exited_at: Optional[UtcDatetime] = None

    def days(self, now=None) -> float:
        end = self.exited_at or now
        if end is None:
            return 0.0
        return max((end - self.entered_at).total_seconds(), 0.0) / 86400


class Timeline(Document):
    ticket_id: str
    state_history: Dict[Stage, UtcDatetime] = {}
    state_durations: Dict[Stage, float] = {}
    visits: List[StageVisit] = []
    status_changes: List[StatusChange] = []

    @property
    def current_visit(self) -> Optional[StageVisit]:
        if self.visits and self.visits[-1].exited_at is None:
            return self.visits[-1]
        return None

    @property
    def current_stage(self) -> Optional[Stage]:
        visit = self.current_visit
        if visit is not None:
            return visit.stage
        if self.status_changes:
            return self.status_changes[-1].to_status
        return None
