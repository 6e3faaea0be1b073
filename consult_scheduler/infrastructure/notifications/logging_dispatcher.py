import json
import logging
from typing import Optional

from ...application.ports.directory import DirectoryService
from ...application.ports.notifier import NotificationDispatcher, NotificationEvent
from .templates import render

logger = logging.getLogger(__name__)


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Writes each event to the log; used when no persistent channel is configured."""

    def __init__(self, directory: Optional[DirectoryService] = None) -> None:
        self.directory = directory

    def dispatch(self, event: NotificationEvent) -> None:
        title, message = render(event.template_key, event.payload, self.directory)
        logger.info(f"NOTIFY {event.recipient} [{event.template_key}] {title}: {message} {json.dumps(event.payload, default=str)}")
