"""
Doctor Availability - the single parse/format point.

A doctor's weekly schedule is stored as

    {"working_hours": {"monday": ["09:00-12:00", "14:00-17:00"], ...}}

Every read and write of that document goes through Availability.parse and
Availability.to_dict, so malformed, inverted or overlapping ranges are
rejected in exactly one place.
"""

import re
from dataclasses import dataclass, field
from datetime import time
from typing import Any, Dict, List, Mapping, Optional, Tuple

from core.errors import ParseError


# Index matches date.weekday()
WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

_RANGE_PATTERN = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*-\s*(\d{1,2}):(\d{2})\s*$")


def _to_time(hours: str, minutes: str, text: str) -> time:
    h, m = int(hours), int(minutes)
    if h > 23 or m > 59:
        raise ParseError(f"Invalid time in range '{text}'", field="availability")
    return time(h, m)


@dataclass(frozen=True, order=True)
class TimeRange:
    """A contiguous window [start, end) within one day."""
    start: time
    end: time

    @classmethod
    def parse(cls, text: Any) -> "TimeRange":
        """Parse an 'HH:MM-HH:MM' string."""
        if not isinstance(text, str):
            raise ParseError(f"Time range must be a string, got {type(text).__name__}", field="availability")
        match = _RANGE_PATTERN.match(text)
        if not match:
            raise ParseError(f"Malformed time range '{text}', expected HH:MM-HH:MM", field="availability")
        start = _to_time(match.group(1), match.group(2), text)
        end = _to_time(match.group(3), match.group(4), text)
        if start >= end:
            raise ParseError(f"Time range '{text}' must start before it ends", field="availability")
        return cls(start=start, end=end)

    def contains(self, moment: time) -> bool:
        return self.start <= moment < self.end

    def overlaps(self, other: "TimeRange") -> bool:
        return self.start < other.end and other.start < self.end

    def __str__(self) -> str:
        return f"{self.start:%H:%M}-{self.end:%H:%M}"


@dataclass(frozen=True)
class Availability:
    """
    Validated weekly availability.

    Attributes:
        working_hours: Weekday key -> ranges sorted by start. A key that is
            present with an empty tuple means the doctor is closed that day;
            an absent key means nothing was declared for it.
    """
    working_hours: Dict[str, Tuple[TimeRange, ...]] = field(default_factory=dict)

    @classmethod
    def parse(cls, raw: Any) -> "Availability":
        """
        Parse a stored or submitted availability document.

        Accepts either the full document ({"working_hours": {...}}) or the
        bare day mapping.

        Raises:
            ParseError: On unknown day keys, malformed range strings,
                inverted ranges or overlapping ranges within a day
        """
        if not isinstance(raw, Mapping):
            raise ParseError("Availability must be an object", field="availability")

        days = raw["working_hours"] if "working_hours" in raw else raw
        if not isinstance(days, Mapping):
            raise ParseError("working_hours must be an object", field="availability")

        working_hours: Dict[str, Tuple[TimeRange, ...]] = {}
        for key, values in days.items():
            day = str(key).strip().lower()
            if day not in WEEKDAYS:
                raise ParseError(f"Unknown day '{key}'", field="availability")
            if day in working_hours:
                raise ParseError(f"Day '{day}' declared more than once", field="availability")
            if values is None:
                values = []
            if not isinstance(values, (list, tuple)):
                raise ParseError(f"Ranges for '{day}' must be a list", field="availability")

            ranges = sorted(TimeRange.parse(value) for value in values)
            for previous, current in zip(ranges, ranges[1:]):
                if previous.overlaps(current):
                    raise ParseError(
                        f"Ranges {previous} and {current} overlap on {day}",
                        field="availability",
                    )
            working_hours[day] = tuple(ranges)

        return cls(working_hours=working_hours)

    def ranges_for(self, day: str) -> Optional[Tuple[TimeRange, ...]]:
        """Ranges declared for a weekday key, or None when the key is absent."""
        return self.working_hours.get(day)

    def to_dict(self) -> Dict[str, Any]:
        """Format back into the stored document shape (days in week order)."""
        days: Dict[str, List[str]] = {}
        for day in WEEKDAYS:
            if day in self.working_hours:
                days[day] = [str(r) for r in self.working_hours[day]]
        return {"working_hours": days}
