"""
Availability Store - doctor schedules and offerable slots.
"""

import logging
from datetime import date
from typing import Any, Optional

from core.errors import AuthorizationError

from .domain.availability import Availability
from .domain.services import DEFAULT_SLOTS, SlotResult, generate_slots, parse_visit_date
from .repositories import DoctorRepository

logger = logging.getLogger(__name__)


class AvailabilityStore:
    """
    Reads and writes each doctor's recurring weekly availability.

    Availability is read fresh on every call, so slot computation always
    sees the last committed schedule.
    """

    def __init__(self, doctors: DoctorRepository):
        self._doctors = doctors

    def get_availability(self, doctor_id: str) -> Optional[Availability]:
        """
        Get a doctor's parsed availability.

        Returns:
            The Availability, or None if the doctor never declared one

        Raises:
            NotFoundError: Unknown doctor
            ParseError: The stored schedule is malformed
        """
        doctor = self._doctors.require(doctor_id)
        if doctor.availability is None:
            return None
        return Availability.parse(doctor.availability)

    def set_availability(self, doctor_id: str, acting_doctor_id: Optional[str], raw: Any) -> Availability:
        """
        Replace a doctor's availability. Only the doctor may edit their own schedule.

        Raises:
            NotFoundError: Unknown doctor
            AuthorizationError: The actor is not that doctor
            ParseError: The submitted schedule is malformed
        """
        doctor = self._doctors.require(doctor_id)
        if not acting_doctor_id or acting_doctor_id != doctor.id:
            raise AuthorizationError(
                "Only the doctor can edit their own availability",
                {"doctor_id": doctor_id},
            )

        availability = Availability.parse(raw)
        doctor.availability = availability.to_dict()
        self._doctors.save(doctor)
        logger.info(f"Updated availability for doctor {doctor_id}: {sorted(availability.working_hours)}")
        return availability

    def slots_for(self, doctor_id: str, day: Any) -> SlotResult:
        """
        Offerable slots for a doctor on a date.

        The generic default list is used only when the doctor has no
        availability record at all. A declared schedule that omits the
        weekday, or leaves it empty, yields UNAVAILABLE.
        """
        visit_day: date = parse_visit_date(day)
        availability = self.get_availability(doctor_id)
        if availability is None:
            return list(DEFAULT_SLOTS)
        return generate_slots(visit_day, availability)
