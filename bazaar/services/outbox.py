# bazaar/services/outbox.py
from __future__ import annotations
import logging
from datetime import datetime
from typing import Any, Protocol

from ..extensions import db
from ..model import OutboxEvent, Notification
from ..utils.money import to_major

log = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(self, user_id: int, event_type: str, payload: dict[str, Any]) -> None: ...


def record_event(event_type: str, user_id: int | None, payload: dict[str, Any]) -> OutboxEvent:
    """Queue an event in the current transaction; it commits or rolls back with it."""
    event = OutboxEvent(event_type=event_type, user_id=user_id, payload=payload)
    db.session.add(event)
    return event


# event_type -> (title, message template)
TEMPLATES = {
    "order.created": ("Order Placed Successfully", "Your order #{order_number} has been placed."),
    "order.received": ("New Order Received", "You have received a new order #{order_number}."),
    "order.payment_confirmed": ("Payment Confirmed", "Payment for order #{order_number} has been confirmed."),
    "order.shipped": ("Order Shipped", "Your order #{order_number} is on its way."),
    "order.delivered": ("Order Delivered", "Your order #{order_number} has been delivered."),
    "order.cancelled": ("Order Cancelled", "Order #{order_number} was cancelled."),
    "order.payment_refunded": ("Payment Refunded", "Payment for cancelled order #{order_number} was returned to your wallet."),
    "escrow.released": ("Funds Released", "{amount} {currency} for order #{order_number} was released."),
    "escrow.refunded": ("Funds Refunded", "{amount} {currency} for order #{order_number} was refunded."),
}


class InAppNotifier:
    """Delivers events as Notification rows."""

    def notify(self, user_id: int, event_type: str, payload: dict[str, Any]) -> None:
        title, template = TEMPLATES.get(event_type, (event_type, "{event_type}"))
        fields = {"event_type": event_type, "order_number": "", "currency": "", **payload}
        if "amount" in payload:
            fields["amount"] = to_major(payload["amount"])
        db.session.add(Notification(
            user_id=user_id,
            event_type=event_type,
            title=title,
            message=template.format(**fields)[:255],
        ))
        db.session.flush()


class OutboxDispatcher:
    def __init__(self, notifier: Notifier, max_attempts: int = 5):
        self.notifier = notifier
        self.max_attempts = max_attempts

    def pending(self, limit: int = 100) -> list[OutboxEvent]:
        return (
            OutboxEvent.query
            .filter(OutboxEvent.dispatched_at.is_(None), OutboxEvent.attempts < self.max_attempts)
            .order_by(OutboxEvent.id.asc())
            .limit(limit)
            .all()
        )

    def drain(self, limit: int = 100) -> int:
        """Deliver pending events; each one commits on its own. Returns delivered count."""
        delivered = 0
        for event in self.pending(limit):
            try:
                if event.user_id is not None:
                    self.notifier.notify(event.user_id, event.event_type, dict(event.payload or {}))
                event.dispatched_at = datetime.utcnow()
                event.attempts += 1
                db.session.commit()
                delivered += 1
            except Exception as e:
                db.session.rollback()
                log.exception("outbox event %s (%s) failed to dispatch", event.id, event.event_type)
                failed = db.session.get(OutboxEvent, event.id)
                failed.attempts += 1
                failed.last_error = str(e)[:255]
                db.session.commit()
        return delivered
