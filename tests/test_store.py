from unittest.mock import MagicMock

import mongomock
import pytest
from bson import ObjectId
from pymongo.errors import PyMongoError

from agency.models import ContentType, Notification, ReviewHistoryEntry, Stage, Ticket, TicketContent
from agency.store import MongoTicketStore
from agency.workflow import TicketService, WorkflowOrchestrator
from agency.workflow.errors import StoreError
from agency.workflow.timeline import initialize_timeline, record_transition

from conftest import T0, dispatch_inline


@pytest.fixture
def db():
    return mongomock.MongoClient().agency


@pytest.fixture
def mongo_store(db):
    return MongoTicketStore(db)


def insert(mongo_store, **fields):
    fields.setdefault("title", "Launch post")
    fields.setdefault("client_name", "Acme")
    ticket = Ticket(id=str(ObjectId()), created_at=T0, updated_at=T0, **fields)
    mongo_store.insert_ticket(ticket, initialize_timeline(ticket.id, Stage.BACKLOG, T0, created_by="Maya"))
    return ticket.id


def test_ticket_and_timeline_round_trip(mongo_store, db):
    ticket_id = insert(mongo_store, assigned_to="Wes")

    ticket = mongo_store.get_ticket(ticket_id)
    assert ticket.assigned_to == "Wes"
    assert ticket.created_at == T0
    assert [t.id for t in mongo_store.list_tickets()] == [ticket_id]

    timeline = mongo_store.get_timeline(ticket_id)
    assert timeline.ticket_id == ticket_id
    assert timeline.state_history == {Stage.BACKLOG: T0}

    raw = db.tickets.find_one({"_id": ObjectId(ticket_id)})
    assert raw["clientName"] == "Acme"
    assert list(raw["timeline"]["stateHistory"]) == ["backlog"]


def test_unknown_or_malformed_ids(mongo_store):
    assert mongo_store.get_ticket("not-an-object-id") is None
    assert mongo_store.get_ticket(str(ObjectId())) is None
    assert mongo_store.get_timeline(str(ObjectId())) is None
    assert mongo_store.get_financials(str(ObjectId())) is None


def test_commit_transition_writes_everything_at_once(mongo_store):
    ticket_id = insert(mongo_store, assigned_to="Wes")
    timeline, change = record_transition(
        mongo_store.get_timeline(ticket_id), Stage.DONE, "Maya", T0.replace(day=3)
    )

    applied = mongo_store.commit_transition(
        ticket_id,
        Stage.BACKLOG,
        {"status": "done", "updatedAt": T0.replace(day=3).isoformat()},
        {"totalCost": 250.0, "costBreakdown": {"assigneeCost": 150.0, "reviewerCost": 100.0}},
        timeline,
        [change],
    )

    assert applied
    assert mongo_store.get_ticket(ticket_id).status is Stage.DONE
    assert mongo_store.get_financials(ticket_id).total_cost == 250
    stored = mongo_store.get_timeline(ticket_id)
    assert [c.to_status for c in stored.status_changes] == [Stage.BACKLOG, Stage.DONE]
    assert stored.state_durations[Stage.BACKLOG] == pytest.approx(2.0)


def test_commit_transition_refuses_moved_ticket(mongo_store):
    ticket_id = insert(mongo_store)
    timeline, change = record_transition(mongo_store.get_timeline(ticket_id), Stage.DONE, "Maya", T0)

    applied = mongo_store.commit_transition(
        ticket_id, Stage.IN_PROGRESS, {"status": "done"}, {"totalCost": 1.0}, timeline, [change]
    )

    assert not applied
    assert mongo_store.get_ticket(ticket_id).status is Stage.BACKLOG
    assert mongo_store.get_financials(ticket_id) is None
    assert len(mongo_store.get_timeline(ticket_id).status_changes) == 1


def test_legacy_todo_status_matches_backlog(mongo_store, db):
    oid = ObjectId()
    db.tickets.insert_one({"_id": oid, "title": "Old one", "clientName": "Acme", "status": "todo"})
    ticket_id = str(oid)

    assert mongo_store.get_ticket(ticket_id).status is Stage.BACKLOG
    assert mongo_store.get_timeline(ticket_id) is None

    timeline = initialize_timeline(ticket_id, Stage.BACKLOG, T0)
    timeline, change = record_transition(timeline, Stage.IN_PROGRESS, "Maya", T0)
    assert mongo_store.commit_transition(
        ticket_id, Stage.BACKLOG, {"status": "in_progress"}, None, timeline, timeline.status_changes
    )
    assert mongo_store.get_ticket(ticket_id).status is Stage.IN_PROGRESS
    assert mongo_store.get_timeline(ticket_id).status_changes == timeline.status_changes


def test_team_member_lookup_by_id_or_name(mongo_store, db):
    oid = db.users.insert_one(
        {"displayName": "Wes", "role": "Writer", "compensation": {"type": "hourly", "hourlyRate": 45}}
    ).inserted_id

    by_name = mongo_store.get_team_member("Wes")
    by_id = mongo_store.get_team_member(str(oid))
    assert by_name.compensation.hourly_rate == 45
    assert by_id.display_name == "Wes"
    assert mongo_store.get_team_member("Nobody") is None


def test_client_lookup(mongo_store, db):
    db.clients.insert_one({"name": "Acme", "compensation": {"blogRate": 450}})
    assert mongo_store.get_client("Acme").rate_for(ContentType.BLOG) == 450
    assert mongo_store.get_client("Globex") is None


def test_content_save_and_delete(mongo_store):
    ticket_id = insert(mongo_store)
    review = ReviewHistoryEntry(manager_score=7, reviewed_at=T0, reviewed_by="Maya")
    mongo_store.save_content(ticket_id, TicketContent(content="<p>hi</p>", review_history=[review]))

    content = mongo_store.get_content(ticket_id)
    assert content.has_submission
    assert content.review_history[0].reviewed_at == T0

    assert mongo_store.delete_ticket(ticket_id)
    assert mongo_store.get_ticket(ticket_id) is None
    assert mongo_store.get_content(ticket_id) is None
    assert not mongo_store.delete_ticket(ticket_id)


def test_notifications_per_user(mongo_store):
    mongo_store.add_notification(Notification(user_id="Wes", message="first", ts=T0))
    mongo_store.add_notification(Notification(user_id="Wes", message="second", ts=T0.replace(hour=10)))
    mongo_store.add_notification(Notification(user_id="Rae", message="other"))

    assert [n.message for n in mongo_store.list_notifications("Wes")] == ["second", "first"]


def test_driver_errors_become_store_errors():
    db = MagicMock()
    db.tickets.update_one.side_effect = PyMongoError("connection reset")
    timeline, change = record_transition(initialize_timeline("x", Stage.BACKLOG, T0), Stage.IN_PROGRESS, "Maya", T0)

    with pytest.raises(StoreError):
        MongoTicketStore(db).commit_transition(str(ObjectId()), Stage.BACKLOG, {}, None, timeline, [change])


@pytest.mark.parametrize(
    "method, args",
    [
        ("get_ticket", (str(ObjectId()),)),
        ("get_content", (str(ObjectId()),)),
        ("get_timeline", (str(ObjectId()),)),
        ("get_team_member", ("Wes",)),
        ("get_client", ("Acme",)),
    ],
)
def test_driver_read_errors_become_store_errors(method, args):
    db = MagicMock()
    for collection in (db.tickets, db.ticket_content, db.users, db.clients):
        collection.find_one.side_effect = PyMongoError("primary stepped down")

    with pytest.raises(StoreError):
        getattr(MongoTicketStore(db), method)(*args)


def test_first_move_without_timeline_keeps_creation_record(mongo_store, db, clock, manager):
    oid = db.tickets.insert_one(
        {"title": "Old one", "clientName": "Acme", "status": "todo", "assignedTo": "Wes", "createdAt": T0.isoformat()}
    ).inserted_id
    workflow = WorkflowOrchestrator(mongo_store, dispatch=dispatch_inline, clock=clock)
    clock.advance(days=2)

    workflow.request_transition(str(oid), Stage.IN_PROGRESS, manager)

    changes = mongo_store.get_timeline(str(oid)).status_changes
    assert [(c.from_status, c.to_status) for c in changes] == [
        (None, Stage.BACKLOG),
        (Stage.BACKLOG, Stage.IN_PROGRESS),
    ]
    assert changes[0].automatic_change
    assert mongo_store.get_timeline(str(oid)).state_durations[Stage.BACKLOG] == pytest.approx(2.0)


def test_workflow_against_mongo(mongo_store, clock, manager, db):
    tickets = TicketService(mongo_store, clock=clock)
    workflow = WorkflowOrchestrator(mongo_store, dispatch=dispatch_inline, clock=clock)
    db.users.insert_one({"displayName": "Wes", "role": "Writer", "compensation": {"type": "hourly", "hourlyRate": 50}})

    ticket = tickets.create(Ticket(title="Case study", client_name="Acme", assigned_to="Wes"), manager)
    for stage in (Stage.IN_PROGRESS, Stage.INTERNAL_REVIEW):
        clock.advance(days=1)
        workflow.request_transition(ticket.id, stage, manager)
    tickets.submit_content(ticket.id, "<p>done</p>")
    clock.advance(hours=1)
    tickets.record_review(ticket.id, 8, manager)

    outcome = workflow.request_transition(ticket.id, Stage.DONE, manager)
    committed = workflow.supply_hours(outcome.token, assignee_hours=4)

    assert committed.financials.total_cost == 200
    assert mongo_store.get_ticket(ticket.id).status is Stage.DONE
    assert mongo_store.get_financials(ticket.id).assignee_hours == 4
    changes = mongo_store.get_timeline(ticket.id).status_changes
    assert [c.to_status for c in changes] == [Stage.BACKLOG, Stage.IN_PROGRESS, Stage.INTERNAL_REVIEW, Stage.DONE]
