"""
Best-effort notifications about committed stage changes.

Notifiers never raise: a failed webhook or inbox write is logged and the
already-committed transition stands.
"""

import logging
import threading
from typing import Callable, Iterable, Optional

import requests

from ..models import Notification, TransitionNotice

logger = logging.getLogger("agency.workflow.notifier")


class WebhookNotifier:
    """POSTs the notice as JSON to a chat/webhook endpoint."""

    def __init__(self, url: str, timeout: float = 5.0, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def notify(self, notice: TransitionNotice) -> bool:
        payload = notice.model_dump(mode="json")
        try:
            response = self.session.post(self.url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("Error sending status notification for %s: %s", notice.ticketId, e,
                         extra={"ticket_id": notice.ticketId})
            return False
        if not response.ok:
            logger.error(
                "Failed to send status notification for %s: %s %s %s",
                notice.ticketId, response.status_code, response.reason, response.text[:200],
                extra={"ticket_id": notice.ticketId},
            )
            return False
        return True


class InboxNotifier:
    """Drops an in-app notification for the ticket's assignee."""

    def __init__(self, store):
        self.store = store

    def notify(self, notice: TransitionNotice) -> bool:
        if not notice.assignee:
            return True
        from_label = notice.fromStatus.label if notice.fromStatus else "new"
        message = f"'{notice.title}' moved from {from_label} to {notice.toStatus.label} by {notice.actor}"
        try:
            self.store.add_notification(
                Notification(user_id=notice.assignee, message=message, ticket_id=notice.ticketId)
            )
        except Exception:
            logger.exception("Could not store in-app notification for %s", notice.ticketId,
                             extra={"ticket_id": notice.ticketId})
            return False
        return True


class FanoutNotifier:
    def __init__(self, notifiers: Iterable):
        self.notifiers = list(notifiers)

    def notify(self, notice: TransitionNotice) -> bool:
        results = [n.notify(notice) for n in self.notifiers]
        return all(results)


def dispatch_in_thread(fn: Callable[[], None]) -> None:
    """Run ``fn`` on a daemon thread without waiting for it."""
    threading.Thread(target=fn, name="transition-notify", daemon=True).start()
