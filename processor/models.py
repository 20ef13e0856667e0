"""Data models for event listing and ranking."""
import math
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class EventRecord:
    """Stored event as entered by an admin or a submitter."""
    event_id: str
    event_name: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    location: Optional[str] = None
    food_type: Optional[str] = None
    verified: bool = False
    verified_by: Optional[str] = None
    verified_at: Optional[str] = None
    verification_method: Optional[str] = None
    gps_latitude: Optional[str] = None
    gps_longitude: Optional[str] = None
    sender_number: Optional[str] = None
    media_url: Optional[str] = None
    raw_text: Optional[str] = None
    location_maps_link: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for API responses; `id` mirrors `event_id`."""
        data = asdict(self)
        data['id'] = self.event_id
        return data


@dataclass(frozen=True)
class ParsedTemporal:
    """Concrete point in time for an event plus today/past flags."""
    date: datetime
    is_today: bool
    is_past: bool


@dataclass(frozen=True)
class RankedEvent:
    """Event prepared for display, ordered by time then distance."""
    event_id: str
    name: str
    location: str
    category: str
    verified: bool
    latitude: Optional[float]
    longitude: Optional[float]
    distance_km: float
    display_time: str
    event_time: datetime
    is_today: bool
    is_past: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.event_id,
            'name': self.name,
            'location': self.location,
            'category': self.category,
            'verified': self.verified,
            'lat': self.latitude,
            'lng': self.longitude,
            # JSON has no infinity
            'distance': None if math.isinf(self.distance_km) else round(self.distance_km, 3),
            'displayTime': self.display_time,
            'eventDate': self.event_time.isoformat(),
            'isToday': self.is_today,
            'isPast': self.is_past,
        }


@dataclass(frozen=True)
class RankedView:
    """Partitioned listing produced by a single ranking pass."""
    today: List[RankedEvent] = field(default_factory=list)
    upcoming: List[RankedEvent] = field(default_factory=list)
    past: List[RankedEvent] = field(default_factory=list)

    @property
    def current(self) -> List[RankedEvent]:
        """Non-past events, today first, in ranking order."""
        return self.today + self.upcoming

    def to_dict(self) -> Dict[str, Any]:
        return {
            'today': [event.to_dict() for event in self.today],
            'upcoming': [event.to_dict() for event in self.upcoming],
            'past': [event.to_dict() for event in self.past],
        }


@dataclass
class CleanupResult:
    """Result of a past-event cleanup run."""
    scanned: int
    deleted: int
    errors: list[str]
