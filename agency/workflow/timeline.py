"""
Ticket timeline: the append-only stage log and per-stage durations.

Each stay in a stage is kept as an immutable ``StageVisit``.  Cumulative
``state_durations`` are maintained incrementally when a visit closes and
always equal the fold over closed visits (see ``durations_from_visits``).
Every function takes the instant explicitly; nothing here reads the clock.
"""

import uuid
from datetime import datetime
from typing import Optional, Tuple

from ..models import Stage, StageVisit, StatusChange, Timeline


def _change_id(ticket_id: str) -> str:
    return f"{ticket_id}-{uuid.uuid4().hex[:12]}"


def initialize_timeline(ticket_id: str, stage: Stage, now: datetime, created_by: Optional[str] = None) -> Timeline:
    """Timeline for a freshly created ticket. No creator means a system import."""
    return Timeline(
        ticket_id=ticket_id,
        state_history={stage: now},
        state_durations={stage: 0.0},
        visits=[StageVisit(stage=stage, entered_at=now)],
        status_changes=[
            StatusChange(
                id=_change_id(ticket_id),
                from_status=None,
                to_status=stage,
                changed_by=created_by or "system",
                changed_at=now,
                notes="Ticket created",
                automatic_change=created_by is None,
            )
        ],
    )


def recompute_durations(timeline: Timeline, previous_stage: Stage, entered_at: datetime, exited_at: datetime) -> dict:
    """Add one finished visit of ``previous_stage`` to the cumulative days."""
    durations = dict(timeline.state_durations)
    spent = StageVisit(stage=previous_stage, entered_at=entered_at, exited_at=exited_at).days()
    durations[previous_stage] = durations.get(previous_stage, 0.0) + spent
    return durations


def record_transition(
    timeline: Timeline,
    to_stage: Stage,
    changed_by: str,
    now: datetime,
    notes: Optional[str] = None,
    automatic: bool = False,
    from_stage: Optional[Stage] = None,
) -> Tuple[Timeline, StatusChange]:
    """Close the open visit, open one for ``to_stage`` and log the change.

    Returns the new timeline (the input is left untouched) and the
    StatusChange that was appended to it.  ``from_stage`` defaults to the
    stage of the open visit.
    """
    from_stage = from_stage or timeline.current_stage
    if from_stage == to_stage:
        raise ValueError(f"ticket {timeline.ticket_id} is already in {to_stage.value}")

    visits = list(timeline.visits)
    durations = dict(timeline.state_durations)
    exited_at = now

    if from_stage is not None:
        open_visit = timeline.current_visit
        if open_visit is not None and open_visit.stage == from_stage:
            entered_at = open_visit.entered_at
        else:
            entered_at = timeline.state_history.get(from_stage)
        if entered_at is not None:
            # wall clocks can step back; a visit never ends before it began
            exited_at = max(now, entered_at)
            durations = recompute_durations(timeline, from_stage, entered_at, exited_at)
        if open_visit is not None:
            visits[-1] = open_visit.model_copy(update={"exited_at": exited_at})

    visits.append(StageVisit(stage=to_stage, entered_at=exited_at))
    durations.setdefault(to_stage, 0.0)

    history = dict(timeline.state_history)
    previous_entry = history.get(to_stage)
    history[to_stage] = exited_at if previous_entry is None else max(previous_entry, exited_at)

    change = StatusChange(
        id=_change_id(timeline.ticket_id),
        from_status=from_stage,
        to_status=to_stage,
        changed_by=changed_by,
        changed_at=exited_at,
        notes=notes,
        automatic_change=automatic,
    )
    updated = timeline.model_copy(
        update={
            "state_history": history,
            "state_durations": durations,
            "visits": visits,
            "status_changes": list(timeline.status_changes) + [change],
        }
    )
    return updated, change


def durations_from_visits(visits, now: Optional[datetime] = None) -> dict:
    """Fold visits into days per stage. Open visits count up to ``now`` when given."""
    totals: dict = {}
    for visit in visits:
        totals[visit.stage] = totals.get(visit.stage, 0.0) + visit.days(now)
    return totals


def current_durations(timeline: Timeline, now: datetime) -> dict:
    """Cumulative days per stage including time in the still-open stage."""
    durations = dict(timeline.state_durations)
    open_visit = timeline.current_visit
    if open_visit is not None:
        durations[open_visit.stage] = durations.get(open_visit.stage, 0.0) + open_visit.days(now)
    return durations


def current_session_start(timeline: Optional[Timeline], stage: Stage) -> Optional[datetime]:
    """When the ticket most recently entered ``stage``."""
    if timeline is None:
        return None
    return timeline.state_history.get(stage)
