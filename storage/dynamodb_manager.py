"""DynamoDB manager for event storage operations."""
import logging
import uuid
from dataclasses import fields
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import ClientError

from processor.models import EventRecord

logger = logging.getLogger(__name__)

EVENT_FIELDS = tuple(f.name for f in fields(EventRecord))
READ_ONLY_FIELDS = ('event_id', 'created_at')


class StorageError(Exception):
    """Raised when the event table cannot be read or written."""


class EventNotFoundError(StorageError):
    """Raised when an update or delete targets a missing event."""

    def __init__(self, event_id: str):
        super().__init__('Event not found')
        self.event_id = event_id


def normalize_verified(value: Any) -> bool:
    """Collapse the "true"/"false" strings and booleans into a boolean."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == 'true'
    return False


def normalize_text(value: Any) -> Optional[str]:
    """
    Coerce a free-text attribute to a string.

    Scalars (numbers, booleans, DynamoDB Decimals) keep their text form;
    lists, maps and binary values have no text form and become None.
    """
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (list, tuple, set, dict, bytes, bytearray)):
        return None
    return str(value)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class DynamoDBManager:
    """Manager for DynamoDB operations on the events table."""

    BATCH_SIZE = 25  # DynamoDB batch operation limit

    def __init__(self, table_name: str, region_name: Optional[str] = None):
        """
        Configure the manager; call open() (or use it as a context manager)
        before issuing requests.

        Args:
            table_name: Name of the DynamoDB table
            region_name: AWS region, defaults to the boto3 configuration
        """
        self.table_name = table_name
        self.region_name = region_name
        self.dynamodb = None
        self.table = None

    def open(self) -> 'DynamoDBManager':
        """Create the DynamoDB resource and table reference."""
        if self.table is None:
            self.dynamodb = boto3.resource('dynamodb', region_name=self.region_name)
            self.table = self.dynamodb.Table(self.table_name)
            logger.info(f"Opened DynamoDBManager for table: {self.table_name}")
        return self

    def close(self) -> None:
        """Release the underlying HTTP connections."""
        if self.dynamodb is not None:
            self.dynamodb.meta.client.close()
            logger.info(f"Closed DynamoDBManager for table: {self.table_name}")
        self.dynamodb = None
        self.table = None

    def __enter__(self) -> 'DynamoDBManager':
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _require_table(self):
        if self.table is None:
            raise StorageError(f"DynamoDBManager for {self.table_name} is not open")
        return self.table

    def list_events(self) -> List[EventRecord]:
        """
        Retrieve all events using a paginated Scan, newest first.

        Returns:
            List of EventRecord objects ordered by created_at descending
        """
        table = self._require_table()
        logger.info("Scanning DynamoDB table for all events")

        try:
            response = table.scan()
            items = response.get('Items', [])

            while 'LastEvaluatedKey' in response:
                response = table.scan(
                    ExclusiveStartKey=response['LastEvaluatedKey']
                )
                items.extend(response.get('Items', []))
        except ClientError as e:
            logger.error(f"Error scanning DynamoDB table: {e}")
            raise StorageError(str(e)) from e

        events = [self._item_to_record(item) for item in items]
        events.sort(key=lambda event: event.created_at or '', reverse=True)

        logger.info(f"Retrieved {len(events)} events from DynamoDB")
        return events

    def insert_event(self, fields_in: Dict[str, Any]) -> EventRecord:
        """
        Store a new event under a freshly generated id.

        Args:
            fields_in: Event attributes; id and timestamps are ignored

        Returns:
            The stored EventRecord
        """
        table = self._require_table()
        timestamp = _utc_now_iso()

        attributes = self._clean_fields(fields_in)
        for key in READ_ONLY_FIELDS + ('updated_at',):
            attributes.pop(key, None)

        record = EventRecord(
            event_id=uuid.uuid4().hex,
            created_at=timestamp,
            updated_at=timestamp,
            **attributes
        )

        try:
            table.put_item(Item=self._record_to_item(record))
        except ClientError as e:
            logger.error(f"Error inserting event: {e}")
            raise StorageError(str(e)) from e

        logger.info(f"Inserted event {record.event_id}")
        return record

    def update_event(self, event_id: str, updates: Dict[str, Any]) -> EventRecord:
        """
        Apply a partial update to an existing event.

        Args:
            event_id: Id of the event to update
            updates: Attributes to overwrite

        Returns:
            The updated EventRecord

        Raises:
            EventNotFoundError: If no event has this id
            StorageError: On any other DynamoDB failure
        """
        table = self._require_table()

        attributes = self._clean_fields(updates)
        for key in READ_ONLY_FIELDS:
            attributes.pop(key, None)
        attributes['updated_at'] = _utc_now_iso()

        names = {}
        values = {}
        assignments = []
        for index, (key, value) in enumerate(sorted(attributes.items())):
            names[f'#f{index}'] = key
            values[f':v{index}'] = value
            assignments.append(f'#f{index} = :v{index}')

        try:
            response = table.update_item(
                Key={'event_id': event_id},
                UpdateExpression='SET ' + ', '.join(assignments),
                ConditionExpression='attribute_exists(event_id)',
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
                ReturnValues='ALL_NEW'
            )
        except ClientError as e:
            if self._is_missing(e):
                logger.info(f"Update skipped, event {event_id} not found")
                raise EventNotFoundError(event_id) from e
            logger.error(f"Error updating event {event_id}: {e}")
            raise StorageError(str(e)) from e

        logger.info(f"Updated event {event_id}")
        return self._item_to_record(response['Attributes'])

    def delete_event(self, event_id: str) -> None:
        """
        Delete a single event.

        Raises:
            EventNotFoundError: If no event has this id
            StorageError: On any other DynamoDB failure
        """
        table = self._require_table()

        try:
            table.delete_item(
                Key={'event_id': event_id},
                ConditionExpression='attribute_exists(event_id)'
            )
        except ClientError as e:
            if self._is_missing(e):
                logger.info(f"Delete skipped, event {event_id} not found")
                raise EventNotFoundError(event_id) from e
            logger.error(f"Error deleting event {event_id}: {e}")
            raise StorageError(str(e)) from e

        logger.info(f"Deleted event {event_id}")

    def batch_delete_events(self, event_ids: List[str]) -> int:
        """
        Delete events from DynamoDB in batches of 25 items.

        Args:
            event_ids: List of event IDs to delete

        Returns:
            Count of successfully deleted events
        """
        if not event_ids:
            return 0

        table = self._require_table()
        logger.info(f"Deleting {len(event_ids)} events from DynamoDB")
        success_count = 0
        failed_batches = []

        for i in range(0, len(event_ids), self.BATCH_SIZE):
            batch = event_ids[i:i + self.BATCH_SIZE]

            try:
                with table.batch_writer() as writer:
                    for event_id in batch:
                        writer.delete_item(Key={'event_id': event_id})
                success_count += len(batch)

            except ClientError as e:
                logger.error(
                    f"Error deleting batch {i // self.BATCH_SIZE + 1}: {e}"
                )
                failed_batches.append(str(e))
                continue

        logger.info(f"Successfully deleted {success_count} events")
        if failed_batches and not success_count:
            raise StorageError(failed_batches[0])
        return success_count

    def _is_missing(self, error: ClientError) -> bool:
        code = error.response.get('Error', {}).get('Code')
        return code == 'ConditionalCheckFailedException'

    def _clean_fields(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Keep known attributes and normalize verified and text fields."""
        cleaned = {}
        for key, value in data.items():
            if key not in EVENT_FIELDS:
                logger.debug(f"Dropping unknown event attribute: {key}")
                continue
            if key == 'verified':
                cleaned[key] = normalize_verified(value)
            else:
                cleaned[key] = normalize_text(value)
        return cleaned

    def _item_to_record(self, item: dict) -> EventRecord:
        """
        Convert DynamoDB item to EventRecord object.

        Args:
            item: DynamoDB item dictionary

        Returns:
            EventRecord with verified as a boolean and every other field
            as a string or None
        """
        attributes = {
            key: normalize_text(item[key]) for key in EVENT_FIELDS if key in item
        }
        attributes['event_id'] = str(item['event_id'])
        attributes['verified'] = normalize_verified(item.get('verified'))
        return EventRecord(**attributes)

    def _record_to_item(self, record: EventRecord) -> dict:
        """
        Convert EventRecord object to DynamoDB item, skipping empty attributes.

        Args:
            record: EventRecord object

        Returns:
            DynamoDB item dictionary
        """
        item = {}
        for key in EVENT_FIELDS:
            value = getattr(record, key)
            if value is None:
                continue
            item[key] = value
        return item
