"""
Ticket persistence.

``TicketStore`` is the interface the workflow depends on; ``MongoTicketStore``
implements it on MongoDB.  A ticket's timeline and financials are embedded
in the ticket document, so a stage transition (status, money fields,
timeline maps and the StatusChange append) is a single ``update_one`` and
is applied all-or-nothing by the server.

Collections:
    tickets         ticket fields + ``timeline`` + ``financials``
    ticket_content  submitted content and manager review history, keyed by ticket _id
    users           team members with their compensation
    clients         client rate cards, looked up by name
    notifications   in-app notifications
"""

import logging
from contextlib import contextmanager
from typing import List, Optional, Protocol

from bson import ObjectId
from bson.errors import InvalidId
from pymongo.database import Database
from pymongo.errors import PyMongoError

from .models import (
    Client,
    Notification,
    Stage,
    StatusChange,
    TeamMember,
    Ticket,
    TicketContent,
    TicketFinancials,
    Timeline,
)
from .workflow.errors import StoreError

logger = logging.getLogger("agency.store")


class TicketStore(Protocol):
    def get_ticket(self, ticket_id: str) -> Optional[Ticket]: ...

    def list_tickets(self) -> List[Ticket]: ...

    def get_content(self, ticket_id: str) -> Optional[TicketContent]: ...

    def save_content(self, ticket_id: str, content: TicketContent) -> None: ...

    def get_timeline(self, ticket_id: str) -> Optional[Timeline]: ...

    def get_financials(self, ticket_id: str) -> Optional[TicketFinancials]: ...

    def get_team_member(self, member_id: str) -> Optional[TeamMember]: ...

    def get_client(self, name: str) -> Optional[Client]: ...

    def insert_ticket(self, ticket: Ticket, timeline: Timeline) -> str: ...

    def update_ticket_fields(self, ticket_id: str, fields: dict) -> bool: ...

    def commit_transition(
        self,
        ticket_id: str,
        expected_status: Stage,
        ticket_fields: dict,
        financials: Optional[dict],
        timeline: Timeline,
        changes: List[StatusChange],
    ) -> bool: ...

    def delete_ticket(self, ticket_id: str) -> bool: ...

    def add_notification(self, notification: Notification) -> str: ...

    def list_notifications(self, user_id: str) -> List[Notification]: ...


def _oid(value: str) -> Optional[ObjectId]:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def _status_values(stage: Stage) -> List[str]:
    if stage is Stage.BACKLOG:
        return [stage.value, "todo"]
    return [stage.value]


def _dump(model, **kwargs) -> dict:
    return model.model_dump(mode="json", by_alias=True, **kwargs)


def _timeline_fields(timeline: Timeline) -> dict:
    dumped = _dump(timeline)
    return {f"timeline.{key}": dumped[key] for key in ("stateHistory", "stateDurations", "visits")}


@contextmanager
def _driver_errors(action: str):
    try:
        yield
    except PyMongoError as e:
        raise StoreError(f"{action} failed: {e}") from e


class MongoTicketStore:
    def __init__(self, db: Database):
        self.db = db

    def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        oid = _oid(ticket_id)
        if oid is None:
            return None
        with _driver_errors("ticket read"):
            data = self.db.tickets.find_one({"_id": oid}, {"timeline": 0, "financials": 0})
        return Ticket(**data) if data else None

    def list_tickets(self) -> List[Ticket]:
        with _driver_errors("ticket list"):
            docs = list(self.db.tickets.find({}, {"timeline": 0, "financials": 0}).sort("createdAt", -1))
        return [Ticket(**d) for d in docs]

    def get_content(self, ticket_id: str) -> Optional[TicketContent]:
        with _driver_errors("content read"):
            data = self.db.ticket_content.find_one({"_id": _oid(ticket_id)})
        return TicketContent(**data) if data else None

    def save_content(self, ticket_id: str, content: TicketContent) -> None:
        with _driver_errors("content write"):
            self.db.ticket_content.replace_one({"_id": _oid(ticket_id)}, _dump(content), upsert=True)

    def get_timeline(self, ticket_id: str) -> Optional[Timeline]:
        with _driver_errors("timeline read"):
            data = self.db.tickets.find_one({"_id": _oid(ticket_id)}, {"timeline": 1})
        if not data or not data.get("timeline"):
            return None
        return Timeline(**{**data["timeline"], "ticketId": ticket_id})

    def get_financials(self, ticket_id: str) -> Optional[TicketFinancials]:
        with _driver_errors("financials read"):
            data = self.db.tickets.find_one({"_id": _oid(ticket_id)}, {"financials": 1})
        if not data or not data.get("financials"):
            return None
        return TicketFinancials(**data["financials"])

    def get_team_member(self, member_id: str) -> Optional[TeamMember]:
        oid = _oid(member_id)
        query = {"_id": oid} if oid is not None else {"displayName": member_id}
        with _driver_errors("team member read"):
            data = self.db.users.find_one(query)
        return TeamMember(**data) if data else None

    def get_client(self, name: str) -> Optional[Client]:
        with _driver_errors("client read"):
            data = self.db.clients.find_one({"name": name})
        return Client(**data) if data else None

    def insert_ticket(self, ticket: Ticket, timeline: Timeline) -> str:
        oid = ObjectId(ticket.id) if ticket.id else ObjectId()
        doc = _dump(ticket, exclude={"id"})
        doc["_id"] = oid
        doc["timeline"] = _dump(timeline.model_copy(update={"ticket_id": str(oid)}))
        with _driver_errors("insert"):
            self.db.tickets.insert_one(doc)
        return str(oid)

    def update_ticket_fields(self, ticket_id: str, fields: dict) -> bool:
        with _driver_errors("update"):
            res = self.db.tickets.update_one({"_id": _oid(ticket_id)}, {"$set": fields})
        return res.matched_count == 1

    def commit_transition(
        self,
        ticket_id: str,
        expected_status: Stage,
        ticket_fields: dict,
        financials: Optional[dict],
        timeline: Timeline,
        changes: List[StatusChange],
    ) -> bool:
        """Apply one transition atomically. False if the ticket moved meanwhile.

        ``changes`` are the StatusChanges not yet stored: the new one, plus
        the creation record when the ticket had no timeline before.
        """
        update_set = dict(ticket_fields)
        for key, value in (financials or {}).items():
            update_set[f"financials.{key}"] = value
        update_set.update(_timeline_fields(timeline))
        push = {"timeline.statusChanges": {"$each": [_dump(c) for c in changes]}}
        with _driver_errors("transition write"):
            res = self.db.tickets.update_one(
                {"_id": _oid(ticket_id), "status": {"$in": _status_values(expected_status)}},
                {"$set": update_set, "$push": push},
            )
        return res.matched_count == 1

    def delete_ticket(self, ticket_id: str) -> bool:
        oid = _oid(ticket_id)
        with _driver_errors("delete"):
            res = self.db.tickets.delete_one({"_id": oid})
            self.db.ticket_content.delete_one({"_id": oid})
        if res.deleted_count:
            logger.info("Deleted ticket %s with its timeline and content", ticket_id, extra={"ticket_id": ticket_id})
        return res.deleted_count == 1

    def add_notification(self, notification: Notification) -> str:
        doc = _dump(notification, exclude={"id"})
        with _driver_errors("notification write"):
            res = self.db.notifications.insert_one(doc)
        return str(res.inserted_id)

    def list_notifications(self, user_id: str) -> List[Notification]:
        with _driver_errors("notification list"):
            docs = list(self.db.notifications.find({"userId": user_id}).sort("ts", -1))
        return [Notification(**d) for d in docs]
