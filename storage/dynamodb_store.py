"""DynamoDB implementation of the event store."""
import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import BotoCoreError, ClientError

from processor.errors import ReindexError, StoreError
from processor.models import Event, PurgeResult, StoredEvent
from storage.base import EventStore

logger = logging.getLogger(__name__)


class DynamoDBEventStore(EventStore):
    """Event store backed by a single DynamoDB table."""

    BATCH_SIZE = 25  # DynamoDB batch operation limit
    COUNTER_ID = 0  # Item holding the last assigned event_id

    def __init__(self, table_name: str, region_name: Optional[str] = None):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Name of the DynamoDB table
            region_name: AWS region, defaults to the boto3 session region
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb', region_name=region_name)
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBEventStore for table: {table_name}")

    def find_by_container(self, container_id: int) -> List[StoredEvent]:
        """
        Retrieve all events of a container using a filtered Scan.

        Args:
            container_id: Container to read

        Returns:
            StoredEvent objects ordered by event_id
        """
        logger.info(f"Scanning table {self.table_name} for container {container_id}")

        try:
            items = self._scan(FilterExpression=Attr('container_id').eq(container_id))
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Error scanning DynamoDB table: {e}")
            raise StoreError(f"Could not read events of container {container_id}: {e}") from e

        events = [
            stored for stored in map(self._item_to_stored_event, items)
            if stored is not None
        ]
        events.sort(key=lambda stored: stored.id)
        logger.info(f"Retrieved {len(events)} events of container {container_id}")
        return events

    def insert(self, event: Event, container_id: int) -> StoredEvent:
        """
        Store a new event under a freshly allocated event_id.

        Args:
            event: Normalized event
            container_id: Container the event belongs to

        Returns:
            The created StoredEvent
        """
        try:
            event_id = self._next_id()
            stored = StoredEvent(
                id=event_id,
                external_uid=event.external_uid,
                container_id=container_id,
                start=event.start,
                end=event.end,
                title=event.title,
                description=event.description,
                location=event.location,
            )
            self.table.put_item(Item=self._stored_event_to_item(stored))
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Error inserting event '{event.external_uid}': {e}")
            raise StoreError(f"Could not insert event '{event.external_uid}': {e}") from e

        logger.debug(f"Inserted event {event_id} ({event.external_uid})")
        return stored

    def update(self, stored: StoredEvent, event: Event) -> None:
        """
        Overwrite time and text fields of an existing item.

        Args:
            stored: Matched stored event
            event: Incoming event carrying the new values
        """
        try:
            self.table.update_item(
                Key={'event_id': stored.id},
                UpdateExpression=(
                    'SET #start = :start, #end = :end, #title = :title, '
                    '#description = :description, #location = :location, '
                    'last_updated = :now'
                ),
                ConditionExpression='attribute_exists(event_id)',
                ExpressionAttributeNames={
                    '#start': 'start',
                    '#end': 'end',
                    '#title': 'title',
                    '#description': 'description',
                    '#location': 'location',
                },
                ExpressionAttributeValues={
                    ':start': event.start.isoformat(),
                    ':end': event.end.isoformat(),
                    ':title': event.title,
                    ':description': event.description,
                    ':location': event.location,
                    ':now': int(time.time()),
                }
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Error updating event {stored.id}: {e}")
            raise StoreError(f"Could not update event {stored.id}: {e}") from e

        stored.start = event.start
        stored.end = event.end
        stored.title = event.title
        stored.description = event.description
        stored.location = event.location

    def delete_by_container(self, container_id: int) -> PurgeResult:
        """
        Delete all events of a container in batches of 25 items.

        Args:
            container_id: Container to purge

        Returns:
            PurgeResult with removed count and count of events kept in
            other containers
        """
        try:
            items = self._scan_events()
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Error scanning DynamoDB table: {e}")
            raise StoreError(f"Could not purge container {container_id}: {e}") from e

        event_ids = [
            int(item['event_id']) for item in items
            if int(item['container_id']) == container_id
        ]
        kept = len(items) - len(event_ids)

        logger.info(f"Deleting {len(event_ids)} events of container {container_id}")
        removed = 0

        for i in range(0, len(event_ids), self.BATCH_SIZE):
            batch = event_ids[i:i + self.BATCH_SIZE]

            try:
                with self.table.batch_writer() as writer:
                    for event_id in batch:
                        writer.delete_item(Key={'event_id': event_id})
            except (BotoCoreError, ClientError) as e:
                logger.error(
                    f"Error deleting batch {i // self.BATCH_SIZE + 1}: {e}"
                )
                raise StoreError(f"Could not purge container {container_id}: {e}") from e
            removed += len(batch)

        logger.info(f"Removed {removed} events, kept {kept} in other containers")
        return PurgeResult(removed=removed, kept=kept)

    def reindex(self) -> int:
        """
        Rebuild the date index attributes of every stored event.

        The table's date-index GSI is keyed on event_date and start_time;
        both are derived from the event start.

        Returns:
            Number of reindexed events
        """
        logger.info(f"Reindexing all events in table {self.table_name}")
        count = 0

        try:
            for item in self._scan_events():
                try:
                    start = datetime.fromisoformat(item['start'])
                except (KeyError, ValueError) as e:
                    logger.warning(f"Skipping item {item['event_id']} without a valid start: {e}")
                    continue
                self.table.update_item(
                    Key={'event_id': int(item['event_id'])},
                    UpdateExpression='SET event_date = :date, start_time = :time',
                    ExpressionAttributeValues={
                        ':date': start.strftime('%Y-%m-%d'),
                        ':time': start.strftime('%H:%M'),
                    }
                )
                count += 1
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Error reindexing DynamoDB table: {e}")
            raise ReindexError(f"Reindex failed after {count} events: {e}") from e

        logger.info(f"Reindexed {count} events")
        return count

    def _next_id(self) -> int:
        """Atomically increment the counter item and return the new value."""
        response = self.table.update_item(
            Key={'event_id': self.COUNTER_ID},
            UpdateExpression='ADD next_id :one',
            ExpressionAttributeValues={':one': 1},
            ReturnValues='UPDATED_NEW'
        )
        return int(response['Attributes']['next_id'])

    def _scan_events(self) -> List[Dict[str, Any]]:
        return self._scan(FilterExpression=Attr('container_id').exists())

    def _scan(self, **kwargs) -> List[Dict[str, Any]]:
        # Scan the table (paginated automatically by boto3)
        response = self.table.scan(**kwargs)
        items = response.get('Items', [])

        # Handle pagination
        while 'LastEvaluatedKey' in response:
            response = self.table.scan(
                ExclusiveStartKey=response['LastEvaluatedKey'],
                **kwargs
            )
            items.extend(response.get('Items', []))

        return items

    def _item_to_stored_event(self, item: dict) -> Optional[StoredEvent]:
        """
        Convert DynamoDB item to StoredEvent object.

        Args:
            item: DynamoDB item dictionary

        Returns:
            StoredEvent object or None if conversion fails
        """
        try:
            return StoredEvent(
                id=int(item['event_id']),
                external_uid=item['external_uid'],
                container_id=int(item['container_id']),
                start=datetime.fromisoformat(item['start']),
                end=datetime.fromisoformat(item['end']),
                title=item.get('title', ''),
                description=item.get('description', ''),
                location=item.get('location', ''),
            )
        except (KeyError, ValueError) as e:
            logger.warning(f"Failed to convert item {item.get('event_id')} to StoredEvent: {e}")
            return None

    def _stored_event_to_item(self, stored: StoredEvent) -> dict:
        """
        Convert StoredEvent object to DynamoDB item.

        Args:
            stored: StoredEvent object

        Returns:
            DynamoDB item dictionary
        """
        return {
            'event_id': stored.id,
            'external_uid': stored.external_uid,
            'container_id': stored.container_id,
            'start': stored.start.isoformat(),
            'end': stored.end.isoformat(),
            'title': stored.title,
            'description': stored.description,
            'location': stored.location,
            'last_updated': int(time.time()),
        }
