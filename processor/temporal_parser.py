"""Parser for the loosely formatted date/time strings admins type in."""
import re
from datetime import datetime, timedelta
from typing import Optional, Tuple

from dateutil import parser as date_parser

from processor.models import ParsedTemporal


MONTHS = {
    'jan': 1, 'january': 1,
    'feb': 2, 'february': 2,
    'mar': 3, 'march': 3,
    'apr': 4, 'april': 4,
    'may': 5,
    'jun': 6, 'june': 6,
    'jul': 7, 'july': 7,
    'aug': 8, 'august': 8,
    'sep': 9, 'september': 9,
    'oct': 10, 'october': 10,
    'nov': 11, 'november': 11,
    'dec': 12, 'december': 12,
}

MONTH_ABBREVIATIONS = [
    'Jan', 'Feb', 'Mar', 'Apr', 'May', 'Jun',
    'Jul', 'Aug', 'Sep', 'Oct', 'Nov', 'Dec',
]

# Longest names first so "june" wins over "jun"
_MONTH_PATTERN = '|'.join(sorted(MONTHS, key=len, reverse=True))

TIME_PATTERN = re.compile(r'(\d{1,2}):?(\d{2})?\s*(AM|PM)', re.IGNORECASE)

DATE_PATTERN = re.compile(
    r'\b(?P<day>\d{1,2})(?:st|nd|rd|th)?\s+(?P<month>' + _MONTH_PATTERN + r')\b'
    r'(?:\s+(?P<year>\d{4})\b)?'
    r'|\b(?P<month2>' + _MONTH_PATTERN + r')\s+(?P<day2>\d{1,2})(?:st|nd|rd|th)?\b'
    r'(?:\s+(?P<year2>\d{4})\b)?',
    re.IGNORECASE
)

# Two defaults that differ in every date field, to tell whether the
# generic parser found a full date or filled parts in from the default.
_PROBE_DEFAULTS = (datetime(2001, 1, 1), datetime(2002, 2, 2))

DEFAULT_HOUR = 12
END_OF_DAY = (23, 59)


def parse_clock_time(text: str) -> Optional[Tuple[int, int]]:
    """
    Extract an `H[:MM] AM|PM` time and convert it to 24-hour form.

    Args:
        text: Text that may contain a 12-hour clock time

    Returns:
        Tuple of (hours, minutes) or None when no time is present
    """
    match = TIME_PATTERN.search(text)
    if not match:
        return None

    hours = int(match.group(1))
    minutes = int(match.group(2)) if match.group(2) else 0
    period = match.group(3).lower()

    if period == 'pm' and hours != 12:
        hours += 12
    if period == 'am' and hours == 12:
        hours = 0

    return hours, minutes


def _at_time(day: datetime, hours: int, minutes: int) -> datetime:
    # Out-of-range values carry over into the next day instead of failing
    return day + timedelta(hours=hours, minutes=minutes)


def _build_date(year: int, month: int, day: int, tzinfo) -> datetime:
    # Overflowing days roll into the next month ("31 Feb" -> early March)
    return datetime(year, month, 1, tzinfo=tzinfo) + timedelta(days=day - 1)


class TemporalParser:
    """Turns free-text event dates into comparable timestamps."""

    def parse(self, text: Optional[str], now: datetime) -> ParsedTemporal:
        """
        Parse an event date/time string relative to `now`.

        Never raises: anything unrecognisable resolves to tomorrow at noon.

        Args:
            text: Free-text date and/or time, e.g. "21 Nov, 5:30 PM"
            now: Reference time for the current ranking pass

        Returns:
            ParsedTemporal with the resolved timestamp and flags
        """
        today = now.replace(hour=0, minute=0, second=0, microsecond=0)

        if not isinstance(text, str) or not text.strip():
            return ParsedTemporal(
                date=self._tomorrow_noon(today),
                is_today=False,
                is_past=False
            )

        event_date = self._resolve(text, today)

        is_today = event_date.date() == now.date()
        is_past = event_date < now

        return ParsedTemporal(date=event_date, is_today=is_today, is_past=is_past)

    def _resolve(self, text: str, today: datetime) -> datetime:
        lowered = text.lower()

        if 'today' in lowered:
            clock = parse_clock_time(text) or END_OF_DAY
            return _at_time(today, *clock)

        if 'tomorrow' in lowered:
            clock = parse_clock_time(text) or (DEFAULT_HOUR, 0)
            return _at_time(today + timedelta(days=1), *clock)

        # Only the segment after the first comma is read as the time
        segments = [segment.strip() for segment in text.split(',')]
        date_part = segments[0]
        time_part = segments[1] if len(segments) > 1 else ''

        try:
            event_day = self._parse_named_date(date_part, today)
        except (ValueError, OverflowError):
            return self._tomorrow_noon(today)

        if event_day is None:
            return self._parse_generic(text, today)

        clock = parse_clock_time(time_part) if time_part else None
        try:
            return _at_time(event_day, *(clock or (DEFAULT_HOUR, 0)))
        except OverflowError:
            return self._tomorrow_noon(today)

    def _parse_named_date(self, date_part: str, today: datetime) -> Optional[datetime]:
        """Match "21 Nov [2025]" or "Nov 21 [2025]"; None when neither fits."""
        match = DATE_PATTERN.search(date_part)
        if not match:
            return None

        if match.group('day'):
            day = int(match.group('day'))
            month = MONTHS[match.group('month').lower()]
            year = match.group('year')
        else:
            day = int(match.group('day2'))
            month = MONTHS[match.group('month2').lower()]
            year = match.group('year2')

        if year:
            return _build_date(int(year), month, day, today.tzinfo)

        event_day = _build_date(today.year, month, day, today.tzinfo)
        if event_day < today:
            event_day = _build_date(today.year + 1, month, day, today.tzinfo)
        return event_day

    def _parse_generic(self, text: str, today: datetime) -> datetime:
        """Fall back to dateutil, accepting only strings that carry a full date."""
        try:
            first, second = (
                date_parser.parse(text, default=default) for default in _PROBE_DEFAULTS
            )
        except (ValueError, OverflowError, TypeError):
            return self._tomorrow_noon(today)

        if first.date() != second.date():
            return self._tomorrow_noon(today)

        if first.tzinfo is None:
            return first.replace(tzinfo=today.tzinfo)
        if today.tzinfo is None:
            return first.astimezone().replace(tzinfo=None)
        return first.astimezone(today.tzinfo)

    def _tomorrow_noon(self, today: datetime) -> datetime:
        return _at_time(today + timedelta(days=1), DEFAULT_HOUR, 0)


def format_event_time(event_time: datetime, now: datetime) -> str:
    """
    Render an event time for listings.

    Args:
        event_time: Parsed event timestamp
        now: Reference time for the current ranking pass

    Returns:
        "Today at 5:30 PM", "Tomorrow at 9:00 AM" or "21 Nov at 12:00 PM"
    """
    period = 'PM' if event_time.hour >= 12 else 'AM'
    display_hour = event_time.hour % 12 or 12
    time_string = f"{display_hour}:{event_time.minute:02d} {period}"

    event_day = event_time.date()
    if event_day == now.date():
        return f"Today at {time_string}"
    if event_day == now.date() + timedelta(days=1):
        return f"Tomorrow at {time_string}"

    month = MONTH_ABBREVIATIONS[event_time.month - 1]
    return f"{event_time.day} {month} at {time_string}"
