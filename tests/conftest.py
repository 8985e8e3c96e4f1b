"""
Shared pytest fixtures: a fixed clock, an in-memory TicketStore and a
workflow wired to them with notifications delivered inline.
"""

from datetime import datetime, timedelta, timezone

import pytest
from bson import ObjectId

from agency.models import (
    Actor,
    CompensationStructure,
    Role,
    Stage,
    TeamMember,
    Ticket,
    TicketContent,
    TicketFinancials,
)
from agency.workflow import TicketService, WorkflowOrchestrator
from agency.workflow.errors import StoreError
from agency.workflow.timeline import initialize_timeline, record_transition

T0 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


class FixedClock:
    def __init__(self, start=T0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


class MemoryTicketStore:
    """Dict-backed TicketStore. Counts guard-side reads."""

    def __init__(self):
        self.tickets = {}
        self.timelines = {}
        self.financials = {}
        self.contents = {}
        self.members = {}
        self.clients = {}
        self.notifications = []
        self.content_reads = 0
        self.timeline_reads = 0
        self.fail_commit = False
        self.fail_reads = False

    def get_ticket(self, ticket_id):
        if self.fail_reads:
            raise StoreError("primary stepped down")
        return self.tickets.get(ticket_id)

    def list_tickets(self):
        return list(self.tickets.values())

    def get_content(self, ticket_id):
        self.content_reads += 1
        return self.contents.get(ticket_id)

    def save_content(self, ticket_id, content):
        self.contents[ticket_id] = content

    def get_timeline(self, ticket_id):
        self.timeline_reads += 1
        return self.timelines.get(ticket_id)

    def get_financials(self, ticket_id):
        data = self.financials.get(ticket_id)
        return TicketFinancials(**data) if data else None

    def get_team_member(self, member_id):
        return self.members.get(member_id)

    def get_client(self, name):
        return self.clients.get(name)

    def insert_ticket(self, ticket, timeline):
        self.tickets[ticket.id] = ticket
        self.timelines[ticket.id] = timeline
        return ticket.id

    def update_ticket_fields(self, ticket_id, fields):
        ticket = self.tickets.get(ticket_id)
        if ticket is None:
            return False
        data = ticket.model_dump(by_alias=True)
        data.update(fields)
        self.tickets[ticket_id] = Ticket(**data)
        return True

    def commit_transition(self, ticket_id, expected_status, ticket_fields, financials, timeline, changes):
        """Same semantics as the Mongo update: maps are replaced, changes are appended."""
        ticket = self.tickets.get(ticket_id)
        if ticket is None or ticket.status != expected_status:
            return False
        if self.fail_commit:
            raise StoreError("connection reset")
        data = ticket.model_dump(by_alias=True)
        data.update(ticket_fields)
        self.tickets[ticket_id] = Ticket(**data)
        if financials:
            self.financials[ticket_id] = {**self.financials.get(ticket_id, {}), **financials}
        stored = self.timelines.get(ticket_id)
        logged = list(stored.status_changes) if stored else []
        self.timelines[ticket_id] = timeline.model_copy(update={"status_changes": logged + list(changes)})
        return True

    def delete_ticket(self, ticket_id):
        if ticket_id not in self.tickets:
            return False
        del self.tickets[ticket_id]
        self.timelines.pop(ticket_id, None)
        self.financials.pop(ticket_id, None)
        self.contents.pop(ticket_id, None)
        return True

    def add_notification(self, notification):
        self.notifications.append(notification)
        return str(len(self.notifications))

    def list_notifications(self, user_id):
        return [n for n in self.notifications if n.user_id == user_id]

    # test helpers

    def add_member(self, name, compensation=None, role=Role.WRITER):
        comp = CompensationStructure(**compensation) if compensation else None
        member = TeamMember(display_name=name, role=role, compensation=comp)
        self.members[name] = member
        return member

    def seed(self, clock, path=(), **fields):
        """Insert a ticket created at ``clock()`` and walk it through ``path``, one day per stage."""
        ticket_id = str(ObjectId())
        fields.setdefault("title", "How we cut build times in half")
        fields.setdefault("client_name", "Acme")
        ticket = Ticket(id=ticket_id, created_at=clock(), updated_at=clock(), **fields)
        timeline = initialize_timeline(ticket_id, Stage.BACKLOG, clock(), created_by="Maya")
        for stage in path:
            clock.advance(days=1)
            timeline, _ = record_transition(timeline, stage, "Maya", clock())
        if path:
            ticket = ticket.model_copy(update={"status": path[-1]})
        self.insert_ticket(ticket, timeline)
        return ticket_id

    def set_content(self, ticket_id, text="", reviews=()):
        self.contents[ticket_id] = TicketContent(content=text, review_history=list(reviews))


def dispatch_inline(fn):
    fn()


class RecordingNotifier:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    def notify(self, notice):
        if self.fail:
            raise RuntimeError("webhook exploded")
        self.sent.append(notice)
        return True


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def store():
    return MemoryTicketStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def workflow(store, notifier, clock):
    return WorkflowOrchestrator(store, notifier, dispatch=dispatch_inline, clock=clock)


@pytest.fixture
def tickets(store, clock):
    return TicketService(store, clock=clock)


@pytest.fixture
def manager():
    return Actor(display_name="Maya", role=Role.MANAGER)


@pytest.fixture
def ceo():
    return Actor(display_name="Carl", role=Role.CEO)


@pytest.fixture
def writer():
    return Actor(display_name="Wes", role=Role.WRITER)
