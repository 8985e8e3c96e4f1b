from typing import List, Optional

from fastapi import Body, Depends, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import config
from .logging_config import setup_logging
from .models import Actor, Notification, Role, Stage, Ticket, TicketContent, TicketFinancials, TicketUpdate
from .store import MongoTicketStore, TicketStore
from .workflow import (
    AuthorizationRejected,
    CommitFailed,
    GuardRejected,
    InvalidInput,
    PendingTransitionNotFound,
    StoreError,
    TicketNotFound,
    TicketService,
    WorkflowError,
    WorkflowOrchestrator,
    board_column,
    visible_columns,
)
from .workflow.notifier import FanoutNotifier, InboxNotifier, WebhookNotifier
from .workflow.timeline import current_durations

setup_logging()

app = FastAPI(title="Agency Workflow API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_STATUS_CODES = (
    (TicketNotFound, 404),
    (PendingTransitionNotFound, 404),
    (AuthorizationRejected, 403),
    (GuardRejected, 409),
    (InvalidInput, 422),
    (CommitFailed, 503),
    (StoreError, 503),
)


@app.exception_handler(WorkflowError)
def workflow_error_handler(request, exc: WorkflowError):
    status = next((code for kind, code in _STATUS_CODES if isinstance(exc, kind)), 400)
    body = {"detail": str(exc)}
    if isinstance(exc, GuardRejected):
        body["guard"] = exc.guard
    if isinstance(exc, InvalidInput) and exc.details:
        body["fields"] = exc.details
    return JSONResponse(status_code=status, content=body)


# Dependencies

_workflow: Optional[WorkflowOrchestrator] = None


def get_store() -> TicketStore:
    from .db import db
    return MongoTicketStore(db)


def build_notifier(store: TicketStore):
    notifiers = [InboxNotifier(store)]
    if config.NOTIFY_WEBHOOK_URL:
        notifiers.append(WebhookNotifier(config.NOTIFY_WEBHOOK_URL, timeout=config.NOTIFY_TIMEOUT_SECONDS))
    return FanoutNotifier(notifiers)


def get_workflow(store: TicketStore = Depends(get_store)) -> WorkflowOrchestrator:
    # one orchestrator per process: it holds the transitions parked for input
    global _workflow
    if _workflow is None:
        _workflow = WorkflowOrchestrator(store, build_notifier(store))
    return _workflow


def get_tickets(store: TicketStore = Depends(get_store)) -> TicketService:
    return TicketService(store)


def get_actor(x_user_name: str = Header(...), x_user_role: Role = Header(...)) -> Actor:
    return Actor(display_name=x_user_name, role=x_user_role)


# Tickets

@app.post("/tickets", response_model=Ticket, status_code=201)
def create_ticket(ticket: Ticket, actor: Actor = Depends(get_actor), tickets: TicketService = Depends(get_tickets)):
    return tickets.create(ticket, actor)


@app.get("/tickets", response_model=List[Ticket])
def list_tickets(store: TicketStore = Depends(get_store)):
    return store.list_tickets()


@app.get("/tickets/{ticket_id}", response_model=Ticket)
def get_ticket(ticket_id: str, tickets: TicketService = Depends(get_tickets)):
    return tickets.get(ticket_id)


@app.patch("/tickets/{ticket_id}", response_model=Ticket)
def update_ticket(
    ticket_id: str,
    changes: TicketUpdate,
    actor: Actor = Depends(get_actor),
    tickets: TicketService = Depends(get_tickets),
):
    return tickets.update(ticket_id, changes, actor)


@app.delete("/tickets/{ticket_id}", status_code=204)
def delete_ticket(ticket_id: str, actor: Actor = Depends(get_actor), tickets: TicketService = Depends(get_tickets)):
    tickets.delete(ticket_id, actor)


@app.put("/tickets/{ticket_id}/content", response_model=TicketContent)
def submit_content(ticket_id: str, content: str = Body(..., embed=True), tickets: TicketService = Depends(get_tickets)):
    return tickets.submit_content(ticket_id, content)


@app.post("/tickets/{ticket_id}/reviews", response_model=TicketContent)
def record_review(
    ticket_id: str,
    score: float = Body(...),
    feedback: Optional[str] = Body(None),
    actor: Actor = Depends(get_actor),
    tickets: TicketService = Depends(get_tickets),
):
    return tickets.record_review(ticket_id, score, actor, feedback)


@app.get("/tickets/{ticket_id}/timeline")
def get_timeline(
    ticket_id: str,
    store: TicketStore = Depends(get_store),
    workflow: WorkflowOrchestrator = Depends(get_workflow),
):
    timeline = store.get_timeline(ticket_id)
    if timeline is None:
        raise HTTPException(status_code=404, detail=f"No timeline for ticket {ticket_id}")
    durations = current_durations(timeline, workflow.clock())
    return {
        "timeline": timeline.model_dump(mode="json", by_alias=True),
        "currentDurations": {stage.value: round(days, 4) for stage, days in durations.items()},
    }


@app.get("/tickets/{ticket_id}/financials", response_model=TicketFinancials)
def get_financials(ticket_id: str, actor: Actor = Depends(get_actor), store: TicketStore = Depends(get_store)):
    if actor.role is not Role.CEO:
        raise HTTPException(status_code=403, detail="Only the CEO can view ticket financials.")
    return store.get_financials(ticket_id) or TicketFinancials()


# Workflow

@app.post("/tickets/{ticket_id}/transition")
def request_transition(
    ticket_id: str,
    target: Stage = Body(..., embed=True),
    actor: Actor = Depends(get_actor),
    workflow: WorkflowOrchestrator = Depends(get_workflow),
):
    return workflow.request_transition(ticket_id, target, actor)


@app.get("/transitions/{token}")
def get_pending_transition(token: str, workflow: WorkflowOrchestrator = Depends(get_workflow)):
    pending = workflow.get_pending(token)
    return {
        "token": pending.token,
        "ticketId": pending.ticket.id,
        "fromStatus": pending.ticket.status,
        "toStatus": pending.to_status,
        "kind": pending.kind,
        "hours": {"assignee": pending.hours.assignee, "reviewer": pending.hours.reviewer},
    }


@app.post("/transitions/{token}/pricing")
def supply_pricing(
    token: str,
    actual_revenue: float = Body(..., embed=True),
    workflow: WorkflowOrchestrator = Depends(get_workflow),
):
    return workflow.supply_pricing(token, actual_revenue)


@app.post("/transitions/{token}/hours")
def supply_hours(
    token: str,
    assignee_hours: Optional[float] = Body(None),
    reviewer_hours: Optional[float] = Body(None),
    workflow: WorkflowOrchestrator = Depends(get_workflow),
):
    return workflow.supply_hours(token, assignee_hours, reviewer_hours)


@app.delete("/transitions/{token}", status_code=204)
def cancel_transition(token: str, workflow: WorkflowOrchestrator = Depends(get_workflow)):
    workflow.cancel(token)


# Board

@app.get("/board")
def get_board(actor: Actor = Depends(get_actor), store: TicketStore = Depends(get_store)):
    columns = {stage: [] for stage in visible_columns(actor.role)}
    for ticket in store.list_tickets():
        columns[board_column(actor.role, ticket.status)].append(ticket.model_dump(mode="json", by_alias=True))
    return [
        {"stage": stage.value, "title": stage.label, "count": len(items), "tickets": items}
        for stage, items in columns.items()
    ]


# Notifications

@app.get("/notifications", response_model=List[Notification])
def list_notifications(user_id: str, store: TicketStore = Depends(get_store)):
    return store.list_notifications(user_id)
