"""Maintenance job that removes events the listing already shows as past."""
import logging
from datetime import datetime
from typing import Optional

from processor.event_ranker import EventRanker
from processor.models import CleanupResult
from storage.dynamodb_manager import DynamoDBManager

logger = logging.getLogger(__name__)


class PastEventCleaner:
    """Deletes every stored event whose parsed time is before `now`."""

    def __init__(self, store: DynamoDBManager, ranker: Optional[EventRanker] = None):
        self.store = store
        self.ranker = ranker or EventRanker()

    def run(self, now: datetime) -> CleanupResult:
        """
        Scan the table and delete past events.

        Uses the same parsing rules as the listing, so anything hidden from
        the listing as past is exactly what gets deleted.

        Args:
            now: Reference time for the classification pass

        Returns:
            CleanupResult with scanned and deleted counts

        Raises:
            StorageError: If the table cannot be scanned or nothing could be deleted
        """
        records = self.store.list_events()
        past_ids = self.ranker.past_event_ids(records, now)

        logger.info(
            f"Cleanup plan: {len(past_ids)} past events out of {len(records)}"
        )

        errors = []
        deleted = 0
        if past_ids:
            deleted = self.store.batch_delete_events(past_ids)
            if deleted < len(past_ids):
                errors.append(
                    f"{len(past_ids) - deleted} past events could not be deleted"
                )

        for error in errors:
            logger.warning(error)

        logger.info(f"Cleanup complete: {deleted} events deleted")
        return CleanupResult(scanned=len(records), deleted=deleted, errors=errors)
