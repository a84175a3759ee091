"""Data models for calendar import and reconciliation."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

# Parser-level event: iCalendar property name -> text value
RawEvent = Dict[str, str]


class Severity(Enum):
    """Severity of a progress message."""
    INFO = 'Info'
    WARNING = 'Warning'
    ERROR = 'Error'


class ImportState(Enum):
    """States of a single import run."""
    VALIDATING = 'validating'
    PURGING = 'purging'
    FETCHING = 'fetching'
    PARSING = 'parsing'
    NORMALIZING = 'normalizing'
    RECONCILING = 'reconciling'
    APPLYING = 'applying'
    REINDEXING = 'reindexing'
    DONE = 'done'
    FAILED = 'failed'


@dataclass(frozen=True)
class Event:
    """Normalized event from the calendar feed."""
    external_uid: str
    start: datetime
    end: datetime
    title: str = ''
    description: str = ''
    location: str = ''


@dataclass
class StoredEvent:
    """Event persisted in the event store."""
    id: int
    external_uid: str
    container_id: int
    start: datetime
    end: datetime
    title: str = ''
    description: str = ''
    location: str = ''


@dataclass
class ReconcilePlan:
    """Insert/update decisions for one container."""
    container_id: int
    to_insert: List[Event] = field(default_factory=list)
    to_update: List[Tuple[StoredEvent, Event]] = field(default_factory=list)
    unchanged: List[StoredEvent] = field(default_factory=list)


@dataclass(frozen=True)
class PurgeResult:
    """Result of a pre-import purge."""
    removed: int
    kept: int


@dataclass(frozen=True)
class Message:
    """Human-readable progress message."""
    title: str
    severity: Severity
    text: str


@dataclass
class ImportReport:
    """Statistics and messages of one import run."""
    feed_uri: Optional[str] = None
    container_id: Optional[int] = None
    state: ImportState = ImportState.VALIDATING
    error: Optional[Exception] = None
    fetched: int = 0
    parsed: int = 0
    normalized: int = 0
    skipped: int = 0
    created: int = 0
    updated: int = 0
    deleted: int = 0
    kept: int = 0
    failed: int = 0
    handled: int = 0
    reindexed: int = 0
    messages: List[Message] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state is ImportState.DONE

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the report to a JSON-serializable dictionary.

        Returns:
            Dictionary with statistics, final state and messages
        """
        return {
            'feed_uri': self.feed_uri,
            'container_id': self.container_id,
            'state': self.state.value,
            'error': str(self.error) if self.error else None,
            'error_type': type(self.error).__name__ if self.error else None,
            'statistics': {
                'fetched': self.fetched,
                'parsed': self.parsed,
                'normalized': self.normalized,
                'skipped': self.skipped,
                'created': self.created,
                'updated': self.updated,
                'deleted': self.deleted,
                'kept': self.kept,
                'failed': self.failed,
                'handled': self.handled,
                'reindexed': self.reindexed,
            },
            'messages': [
                {
                    'title': message.title,
                    'severity': message.severity.value,
                    'text': message.text,
                }
                for message in self.messages
            ],
        }
