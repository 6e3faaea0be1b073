import json
import logging
from sqlmodel import Session

from ...db.models import Notification
from ...application.ports.directory import DirectoryService
from ...application.ports.notifier import NotificationDispatcher, NotificationEvent
from .templates import render

logger = logging.getLogger(__name__)


class SqlNotificationDispatcher(NotificationDispatcher):
    """Stores events in the notifications table for delivery by an external worker."""

    def __init__(self, session: Session, directory: DirectoryService) -> None:
        self.session = session
        self.directory = directory

    def dispatch(self, event: NotificationEvent) -> None:
        title, message = render(event.template_key, event.payload, self.directory)
        row = Notification(
            recipient_role=event.recipient.role,
            recipient_id=event.recipient.id,
            type=event.template_key,
            title=title,
            message=message,
            data=json.dumps(event.payload, default=str),
        )
        self.session.add(row)
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        logger.info(f"Notification {event.template_key} queued for {event.recipient}")
