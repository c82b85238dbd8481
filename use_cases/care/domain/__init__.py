"""
Care Domain Layer.

Pure business logic for appointment scheduling - no I/O dependencies.
"""

from .availability import WEEKDAYS, Availability, TimeRange
from .policies import (
    ActorRole,
    AppointmentAction,
    AppointmentStatus,
    TransitionContext,
    TransitionPolicy,
    parse_status,
)
from .services import (
    DEFAULT_SLOTS,
    UNAVAILABLE,
    format_slot,
    format_slots,
    generate_slots,
    parse_slot,
    parse_visit_date,
)

__all__ = [
    # Availability
    "WEEKDAYS",
    "Availability",
    "TimeRange",
    # Policies
    "ActorRole",
    "AppointmentAction",
    "AppointmentStatus",
    "TransitionContext",
    "TransitionPolicy",
    "parse_status",
    # Services
    "DEFAULT_SLOTS",
    "UNAVAILABLE",
    "format_slot",
    "format_slots",
    "generate_slots",
    "parse_slot",
    "parse_visit_date",
]
