"""
Walkthrough of a full booking: availability, request, confirmation,
rejection and the visit report, through the wired services.
"""

import pytest

from conftest import GENERALIST, MONDAY, OTHER_PATIENT, PATIENT, TUESDAY
from use_cases.care.domain.policies import AppointmentStatus
from use_cases.care.domain.services import UNAVAILABLE, format_slots
from use_cases.care.models import EventKind


@pytest.fixture
def weekday_doctor(services):
    services.availability.set_availability(GENERALIST, GENERALIST, {"working_hours": {"monday": ["09:00-17:00"]}})
    return GENERALIST


class TestBookingWalkthrough:
    def test_full_monday_offers_eight_slots(self, services, weekday_doctor):
        slots = format_slots(services.availability.slots_for(weekday_doctor, MONDAY))

        assert slots == ["09:00", "10:00", "11:00", "12:00", "13:00", "14:00", "15:00", "16:00"]

    def test_undeclared_tuesday_is_unavailable_not_default(self, services, weekday_doctor):
        assert services.availability.slots_for(weekday_doctor, TUESDAY) is UNAVAILABLE

    def test_request_then_confirm_projects_one_event(self, services, weekday_doctor):
        appointment = services.registry.request_appointment(PATIENT, weekday_doctor, MONDAY, "10:00", issue="Sore throat")
        assert appointment.status == AppointmentStatus.PENDING

        confirmed = services.registry.confirm(appointment.id, weekday_doctor)
        services.relay.drain()
        services.relay.drain()

        assert confirmed.status == AppointmentStatus.CONFIRMED
        events = services.projector.list(PATIENT)
        assert len(events) == 1
        assert events[0].kind == EventKind.APPOINTMENT
        assert events[0].report_id is None

    def test_reject_creates_no_timeline_event(self, services, weekday_doctor):
        appointment = services.registry.request_appointment(PATIENT, weekday_doctor, MONDAY, "11:00")

        rejected = services.registry.reject(appointment.id, weekday_doctor)

        assert rejected.status == AppointmentStatus.CANCELED
        assert services.relay.drain() == 0
        assert services.projector.list(PATIENT) == []

    @pytest.mark.asyncio
    async def test_report_for_patient_without_records(self, services, store, text_service, weekday_doctor):
        appointment = services.registry.request_appointment(OTHER_PATIENT, weekday_doctor, MONDAY, "14:00")
        services.registry.confirm(appointment.id, weekday_doctor)

        report = await services.reports.generate(
            "patient reports sore throat for 3 days", notes="no fever", appointment_id=appointment.id,
        )

        assert report.visit_summary.startswith("S:")
        assert report.prescription
        assert report.appointment_id == appointment.id
        assert store.reports.get_by_id(report.id).appointment_id == appointment.id
        assert text_service.calls[0][1].context.is_empty
