"""Event store interface used by the importer."""
from abc import ABC, abstractmethod
from typing import List

from processor.models import Event, PurgeResult, StoredEvent


class EventStore(ABC):
    """Persistent store of imported events."""

    @abstractmethod
    def find_by_container(self, container_id: int) -> List[StoredEvent]:
        """Return all events of a container ordered by ID."""

    @abstractmethod
    def insert(self, event: Event, container_id: int) -> StoredEvent:
        """Persist a new event and return it with its store-assigned ID."""

    @abstractmethod
    def update(self, stored: StoredEvent, event: Event) -> None:
        """Overwrite the time and text fields of a stored event."""

    @abstractmethod
    def delete_by_container(self, container_id: int) -> PurgeResult:
        """Delete all events of a container."""

    @abstractmethod
    def reindex(self) -> int:
        """Rebuild the event index and return the number of indexed events."""
