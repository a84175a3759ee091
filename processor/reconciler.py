"""Reconciliation of incoming events against stored events."""
import logging
from typing import Dict, Iterable, List

from processor.models import Event, ReconcilePlan, StoredEvent

logger = logging.getLogger(__name__)


def index_by_uid(container_id: int, existing: Iterable[StoredEvent]) -> Dict[str, StoredEvent]:
    """
    Index stored events of a container by external UID.

    When several stored events share a UID the one with the lowest store
    ID wins; the others stay unmatched.

    Args:
        container_id: Container whose events are indexed
        existing: Stored events (events of other containers are ignored)

    Returns:
        Dictionary mapping external UID to StoredEvent
    """
    index: Dict[str, StoredEvent] = {}

    for stored in sorted(existing, key=lambda s: s.id):
        if stored.container_id != container_id:
            continue
        if stored.external_uid in index:
            logger.warning(
                f"Duplicate UID '{stored.external_uid}' in container "
                f"{container_id}: stored event {stored.id} is not matched"
            )
            continue
        index[stored.external_uid] = stored

    return index


def reconcile(
    container_id: int,
    events: List[Event],
    existing: List[StoredEvent]
) -> ReconcilePlan:
    """
    Decide which incoming events to insert and which stored events to update.

    Every incoming event produces exactly one decision, duplicates included.
    Stored events that no incoming event refers to are left untouched;
    reconciliation never deletes.

    Args:
        container_id: Target container
        events: Normalized events from the feed
        existing: Stored events currently in the container

    Returns:
        ReconcilePlan with insert, update and unchanged lists
    """
    index = index_by_uid(container_id, existing)
    plan = ReconcilePlan(container_id=container_id)
    referenced = set()

    for event in events:
        stored = index.get(event.external_uid)
        if stored is None:
            plan.to_insert.append(event)
        else:
            plan.to_update.append((stored, event))
            referenced.add(stored.id)

    plan.unchanged = [
        stored for stored in sorted(existing, key=lambda s: s.id)
        if stored.container_id == container_id and stored.id not in referenced
    ]

    logger.info(
        f"Reconcile plan for container {container_id}: "
        f"{len(plan.to_insert)} to insert, {len(plan.to_update)} to update, "
        f"{len(plan.unchanged)} unchanged"
    )
    return plan
