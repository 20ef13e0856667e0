"""Ranks stored events by time and distance for the listing views."""
import logging
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from processor.distance import distance_km, parse_coordinate
from processor.models import EventRecord, ParsedTemporal, RankedEvent, RankedView
from processor.temporal_parser import TemporalParser, format_event_time

logger = logging.getLogger(__name__)

Coordinate = Tuple[float, float]


def combine_date_time(date: Optional[str], time: Optional[str]) -> str:
    """
    Join the free-text date and time fields into one parseable string.

    Args:
        date: Event date text, e.g. "21 Nov"
        time: Event time text, e.g. "5:30 PM"

    Returns:
        "<date>, <time>", whichever one is present, or an empty string
    """
    # Non-string values count as missing
    date = date if isinstance(date, str) else None
    time = time if isinstance(time, str) else None
    if date and time:
        return f"{date}, {time}"
    return date or time or ''


class EventRanker:
    """Classifies events as today, upcoming or past and orders them."""

    DEFAULT_NAME = 'Untitled Event'
    DEFAULT_LOCATION = 'Location TBA'

    def __init__(self, parser: Optional[TemporalParser] = None):
        self.parser = parser or TemporalParser()

    def parse_record_time(self, record: EventRecord, now: datetime) -> ParsedTemporal:
        """Parse a record's date and time fields relative to `now`."""
        return self.parser.parse(combine_date_time(record.date, record.time), now)

    def rank_event(
        self,
        record: EventRecord,
        now: datetime,
        observer: Optional[Coordinate] = None
    ) -> RankedEvent:
        """
        Build the display view of a single record.

        Args:
            record: Stored event
            now: Reference time for the current ranking pass
            observer: Optional (latitude, longitude) of the viewer

        Returns:
            RankedEvent with distance, display time and flags
        """
        parsed = self.parse_record_time(record, now)

        latitude = parse_coordinate(record.gps_latitude)
        longitude = parse_coordinate(record.gps_longitude)
        observer_lat, observer_lon = observer if observer else (None, None)

        return RankedEvent(
            event_id=record.event_id,
            name=record.event_name or self.DEFAULT_NAME,
            location=record.location or self.DEFAULT_LOCATION,
            category=record.food_type or '',
            verified=record.verified,
            latitude=latitude,
            longitude=longitude,
            distance_km=distance_km(observer_lat, observer_lon, latitude, longitude),
            display_time=format_event_time(parsed.date, now),
            event_time=parsed.date,
            is_today=parsed.is_today,
            is_past=parsed.is_past
        )

    def rank_events(
        self,
        records: Iterable[EventRecord],
        now: datetime,
        observer: Optional[Coordinate] = None
    ) -> RankedView:
        """
        Partition and order events for the listing and past-events views.

        Current events are ordered by time, then by distance with unknown
        distances last. Past events are ordered most recent first.

        Args:
            records: Stored events, in any order
            now: Reference time, captured once for the whole pass
            observer: Optional (latitude, longitude) of the viewer

        Returns:
            RankedView with today, upcoming and past lists
        """
        ranked = [self.rank_event(record, now, observer) for record in records]

        current = sorted(
            (event for event in ranked if not event.is_past),
            key=lambda event: (event.event_time, event.distance_km)
        )
        past = sorted(
            (event for event in ranked if event.is_past),
            key=lambda event: event.event_time,
            reverse=True
        )

        view = RankedView(
            today=[event for event in current if event.is_today],
            upcoming=[event for event in current if not event.is_today],
            past=past
        )

        logger.debug(
            f"Ranked {len(ranked)} events: {len(view.today)} today, "
            f"{len(view.upcoming)} upcoming, {len(view.past)} past"
        )
        return view

    def past_event_ids(self, records: Iterable[EventRecord], now: datetime) -> List[str]:
        """Return ids of records the listing would classify as past."""
        return [
            record.event_id for record in records
            if self.parse_record_time(record, now).is_past
        ]
