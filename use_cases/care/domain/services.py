"""
Domain Services - Scheduling and Care Record Operations.

Pure functions with no I/O: slot generation, date/slot parsing, clinic-time
conversion, and the text composed for timeline events and visit reports.
"""

from datetime import date, datetime, time, timezone, tzinfo
from typing import List, Optional, Sequence, Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from core.errors import ValidationError

from .availability import WEEKDAYS, Availability


# =============================================================================
# SLOT GENERATION
# =============================================================================

# Offered only when a doctor has never declared any availability
DEFAULT_SLOTS = (
    time(9, 0),
    time(10, 0),
    time(11, 0),
    time(14, 0),
    time(15, 0),
    time(16, 0),
)


class _Unavailable:
    """Sentinel for 'explicitly closed that day'. Falsy, compared by identity."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNAVAILABLE"


UNAVAILABLE = _Unavailable()

SlotResult = Union[List[time], _Unavailable]


def weekday_key(day: date) -> str:
    return WEEKDAYS[day.weekday()]


def generate_slots(day: date, availability: Availability) -> SlotResult:
    """
    Turn a date and a weekly availability into offerable start times.

    One slot per whole hour h:00 with start <= h:00 < end, for every range
    declared on that weekday. Ranges are disjoint, so the result is strictly
    ascending.

    Args:
        day: The calendar date (interpreted in clinic time)
        availability: The doctor's validated availability

    Returns:
        Ascending list of times, or UNAVAILABLE when the weekday is absent
        from the availability or declared with no ranges
    """
    ranges = availability.ranges_for(weekday_key(day))
    if not ranges:
        return UNAVAILABLE

    slots: List[time] = []
    for window in ranges:
        hour = window.start.hour if window.start.minute == 0 else window.start.hour + 1
        while hour < 24 and time(hour, 0) < window.end:
            slots.append(time(hour, 0))
            hour += 1
    return slots


def format_slot(slot: time) -> str:
    return slot.strftime("%H:%M")


def format_slots(slots: SlotResult) -> Optional[List[str]]:
    """Slots as 'HH:MM' strings, or None for UNAVAILABLE."""
    if slots is UNAVAILABLE:
        return None
    return [format_slot(s) for s in slots]


# =============================================================================
# PARSING & CLINIC TIME
# =============================================================================

def parse_visit_date(value: Union[str, date, None]) -> date:
    """Parse a 'YYYY-MM-DD' visit date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value or not isinstance(value, str):
        raise ValidationError("A visit date is required", field="date")
    try:
        return date.fromisoformat(value.strip())
    except ValueError as e:
        raise ValidationError(f"Malformed date '{value}', expected YYYY-MM-DD", field="date") from e


def parse_slot(value: Union[str, time, None]) -> time:
    """Parse an 'HH:MM' slot."""
    if isinstance(value, time):
        return value
    if not value or not isinstance(value, str):
        raise ValidationError("A time slot is required", field="slot")
    try:
        parsed = datetime.strptime(value.strip(), "%H:%M")
    except ValueError as e:
        raise ValidationError(f"Malformed slot '{value}', expected HH:MM", field="slot") from e
    return parsed.time()


def clinic_zone(name: str) -> tzinfo:
    """Resolve the clinic timezone name."""
    if not name or name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError as e:
        raise ValidationError(f"Unknown timezone '{name}'", field="clinic_timezone") from e


def to_scheduled_at(day: date, slot: time, zone: tzinfo) -> datetime:
    """Combine a clinic-local date and slot into an aware UTC timestamp."""
    return datetime.combine(day, slot, tzinfo=zone).astimezone(timezone.utc)


def slot_claim_id(doctor_id: str, scheduled_at: datetime) -> str:
    """Key serializing bookings of one doctor at one instant."""
    moment = scheduled_at.astimezone(timezone.utc)
    return f"{doctor_id}_{moment:%Y%m%dT%H%MZ}"


# =============================================================================
# CARE RECORD TEXT
# =============================================================================

def doctor_display_name(first_name: str, last_name: str) -> str:
    name = f"{first_name or ''} {last_name or ''}".strip()
    return f"Dr. {name}" if name else "Dr. Unknown"


def appointment_event_text(
    doctor_first_name: str,
    doctor_last_name: str,
    specialty: str,
    issue: Optional[str],
) -> Tuple[str, str]:
    """Title and description for a confirmed appointment's timeline entry."""
    title = f"Appointment with {doctor_display_name(doctor_first_name, doctor_last_name)}"
    description = (
        f"Confirmed appointment with {specialty or 'General'} specialist. "
        f"Issue: {issue or 'Not specified'}"
    )
    return title, description


def report_title(patient_name: str, visit_day: date) -> str:
    return f"Visit Report: {patient_name} - {visit_day.isoformat()}"


def report_content(
    patient_name: str,
    doctor_name: str,
    specialty: str,
    visit_day: date,
    visit_summary: str,
    notes: Optional[str] = None,
) -> str:
    """Markdown body of a visit report."""
    lines = [
        "# Medical Visit Report",
        "",
        f"**Date:** {visit_day.isoformat()}",
        f"**Patient:** {patient_name}",
        f"**Doctor:** {doctor_name} ({specialty or 'Specialist'})",
        "",
        "## Summary",
        visit_summary.strip(),
        "",
        "## Notes",
    ]
    if notes and notes.strip():
        lines.append(notes.strip())
        lines.append("")
    lines.append(
        "This report was generated based on doctor-patient consultation. "
        "The information contained should be reviewed by the healthcare provider for accuracy."
    )
    return "\n".join(lines) + "\n"


def join_names(names: Sequence[str], empty: str = "None reported") -> str:
    cleaned = [n for n in names if n]
    return ", ".join(cleaned) if cleaned else empty
