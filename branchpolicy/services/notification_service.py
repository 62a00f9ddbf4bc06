"""
Branch Policy Engine
Notification Service — persist routed notifications and query them per recipient.

``publish`` is the one entry point the domain services use: route the event
through NotificationRouter, then write one row per RecipientAddress.  The
caller owns the transaction; rows are added to the session and committed
together with the change that caused them.
"""

import logging

from flask import current_app, has_app_context

from branchpolicy.core.exceptions import NotFoundError
from branchpolicy.models import db
from branchpolicy.models.base import utcnow
from branchpolicy.models.notification import Notification
from branchpolicy.services.notification_router import (
    NotificationEvent,
    RecipientAddress,
    NotificationRouter,
)

logger = logging.getLogger(__name__)


def get_notification_router() -> NotificationRouter:
    if has_app_context():
        router = current_app.extensions.get("notification_router")
        if router is not None:
            return router
    return NotificationRouter()


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Delivery ──────────────────────────────────────────────────────────

    @staticmethod
    def deliver(addresses: list[RecipientAddress], event: NotificationEvent) -> list[Notification]:
        """Add one Notification row per address to the session (not committed)."""
        notifications = []
        for address in addresses:
            notif = Notification(
                branch_id=address.branch_id,
                recipient_id=address.recipient_id,
                event_type=address.event_type.value,
                title=address.title,
                message=address.body,
                entity_type=event.source.kind.value,
                entity_id=event.source.id,
                actor_id=event.actor_id,
            )
            db.session.add(notif)
            notifications.append(notif)
        return notifications

    @staticmethod
    def publish(event: NotificationEvent, directory) -> list[Notification]:
        """Route ``event`` against ``directory`` and stage the resulting rows."""
        addresses = get_notification_router().route(event, directory)
        if not addresses:
            logger.debug(
                "Event %s on %s id=%s routed to nobody",
                event.type.value, event.source.kind.value, event.source.id,
                extra={"event_type": event.type.value, "branch_id": event.source.branch_id},
            )
            return []
        logger.info(
            "Event %s on %s id=%s routed to %d recipient(s)",
            event.type.value, event.source.kind.value, event.source.id, len(addresses),
            extra={"event_type": event.type.value, "branch_id": event.source.branch_id},
        )
        return NotificationService.deliver(addresses, event)

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def _own(principal):
        return Notification.query.filter_by(branch_id=principal.branch_id, recipient_id=principal.id)

    @staticmethod
    def list_for_recipient(principal, *, unread_only=False, event_type=None, limit=50, offset=0):
        """Retrieve the principal's own notifications, newest first."""
        q = NotificationService._own(principal)
        if unread_only:
            q = q.filter_by(is_read=False)
        if event_type:
            q = q.filter_by(event_type=event_type)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit).all()
        )
        return items, total

    @staticmethod
    def unread_count(principal) -> int:
        return NotificationService._own(principal).filter_by(is_read=False).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(principal, notification_id) -> Notification:
        """Mark one of the principal's notifications as read."""
        notif = NotificationService._own(principal).filter_by(id=notification_id).first()
        if notif is None:
            raise NotFoundError(resource="Notification", resource_id=notification_id)
        notif.mark_read()
        db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(principal) -> int:
        q = NotificationService._own(principal).filter_by(is_read=False)
        count = q.update({"is_read": True, "read_at": utcnow()}, synchronize_session="fetch")
        db.session.commit()
        return count

    @staticmethod
    def delete(principal, notification_id) -> None:
        notif = NotificationService._own(principal).filter_by(id=notification_id).first()
        if notif is None:
            raise NotFoundError(resource="Notification", resource_id=notification_id)
        db.session.delete(notif)
        db.session.commit()
