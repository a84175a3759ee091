"""Notification sinks and post-import hooks."""
import logging
from abc import ABC, abstractmethod
from typing import List

from processor.models import Event, Message, Severity

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}


class NotificationSink(ABC):
    """Receives progress and result messages of an import run."""

    @abstractmethod
    def emit(self, title: str, severity: Severity, message: str) -> None:
        pass


class LoggingNotificationSink(NotificationSink):
    """Sink writing every notification to the log."""

    def __init__(self, name: str = 'calendar_import'):
        self.logger = logging.getLogger(name)

    def emit(self, title: str, severity: Severity, message: str) -> None:
        self.logger.log(
            _LOG_LEVELS[severity],
            f"[{title}] {message}",
            extra={'notification_title': title, 'severity': severity.value}
        )


class CollectingNotificationSink(NotificationSink):
    """Sink keeping notifications in memory."""

    def __init__(self):
        self.messages: List[Message] = []

    def emit(self, title: str, severity: Severity, message: str) -> None:
        self.messages.append(Message(title=title, severity=severity, text=message))


class PostImportHook(ABC):
    """Extension point invoked for every event before it is persisted."""

    @abstractmethod
    def on_import(self, event: Event, container_id: int) -> bool:
        """
        Observe an event about to be imported.

        Args:
            event: Normalized event
            container_id: Target container

        Returns:
            True if the hook persisted the event itself and the default
            insert/update must be skipped
        """
