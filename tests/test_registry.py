"""
Tests for the appointment registry: booking, transitions and slot claims.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import pytest

from conftest import (
    CARDIOLOGIST,
    DERMATOLOGIST,
    GENERALIST,
    MONDAY,
    OTHER_PATIENT,
    PATIENT,
    SATURDAY,
    TUESDAY,
)
from core.errors import (
    AuthorizationError,
    NotFoundError,
    PersistenceError,
    StateConflictError,
    ValidationError,
)
from use_cases.care.domain.policies import (
    AppointmentAction,
    AppointmentStatus,
    TransitionContext,
    TransitionPolicy,
)
from use_cases.care.registry import APPOINTMENT_CONFIRMED, AppointmentRegistry


class TestTransitionPolicy:
    def _context(self, status, action, actor_id):
        return TransitionContext(
            status=status, action=action, doctor_id="doc", patient_id="pat", actor_id=actor_id,
        )

    def test_doctor_confirms_pending(self):
        decision = TransitionPolicy().evaluate(
            self._context(AppointmentStatus.PENDING, AppointmentAction.CONFIRM, "doc"),
        )

        assert decision.is_approved
        assert decision.metadata["to_status"] == AppointmentStatus.CONFIRMED

    def test_actor_checked_before_state(self):
        decision = TransitionPolicy().evaluate(
            self._context(AppointmentStatus.COMPLETED, AppointmentAction.CONFIRM, "stranger"),
        )

        assert decision.is_denied
        assert decision.metadata["denial"] == "actor"

    def test_terminal_statuses_have_no_transitions(self):
        for status in (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELED):
            assert status.is_terminal
            for target in AppointmentStatus:
                assert not status.can_transition_to(target)

    def test_patient_may_cancel_but_not_confirm(self):
        policy = TransitionPolicy()

        assert policy.evaluate(self._context(AppointmentStatus.CONFIRMED, AppointmentAction.CANCEL, "pat")).is_approved
        assert policy.evaluate(self._context(AppointmentStatus.PENDING, AppointmentAction.CONFIRM, "pat")).is_denied


class TestRequestAppointment:
    def test_creates_pending_appointment(self, services, book):
        appointment = book()

        assert appointment.status == AppointmentStatus.PENDING
        assert appointment.scheduled_at == datetime(2030, 1, 7, 9, 0, tzinfo=timezone.utc)
        assert appointment.issue == "Chest pain"
        assert appointment.id.startswith("APPT-")
        assert services.registry.get(appointment.id).version is not None

    def test_doctor_without_record_offers_default_slots(self, book):
        appointment = book(doctor_id=GENERALIST, date=SATURDAY, slot="14:00")

        assert appointment.status == AppointmentStatus.PENDING

    def test_missing_patient(self, book):
        with pytest.raises(ValidationError) as exc_info:
            book(patient_id="")
        assert exc_info.value.field == "patient_id"

    def test_unknown_doctor(self, book):
        with pytest.raises(NotFoundError):
            book(doctor_id="doc-unknown")

    def test_closed_day(self, book):
        with pytest.raises(ValidationError) as exc_info:
            book(date=SATURDAY)
        assert exc_info.value.field == "date"

    def test_undeclared_day(self, book):
        with pytest.raises(ValidationError) as exc_info:
            book(date=TUESDAY)
        assert exc_info.value.field == "date"

    def test_slot_not_offered_lists_available_slots(self, book):
        with pytest.raises(ValidationError) as exc_info:
            book(slot="12:00")

        assert exc_info.value.field == "slot"
        assert exc_info.value.details["available_slots"] == ["09:00", "10:00", "11:00", "14:00", "15:00", "16:00"]

    def test_malformed_slot(self, book):
        with pytest.raises(ValidationError):
            book(slot="nine")

    def test_soft_hold_allows_competing_requests(self, book):
        first = book(patient_id=PATIENT)
        second = book(patient_id=OTHER_PATIENT)

        assert first.id != second.id
        assert first.status == second.status == AppointmentStatus.PENDING

    def test_exclusive_policy_rejects_competing_request(self, exclusive_services):
        registry = exclusive_services.registry
        registry.request_appointment(PATIENT, CARDIOLOGIST, MONDAY, "09:00")

        with pytest.raises(StateConflictError):
            registry.request_appointment(OTHER_PATIENT, CARDIOLOGIST, MONDAY, "09:00")

    def test_exclusive_policy_frees_slot_after_rejection(self, exclusive_services):
        registry = exclusive_services.registry
        first = registry.request_appointment(PATIENT, CARDIOLOGIST, MONDAY, "09:00")
        registry.reject(first.id, CARDIOLOGIST)

        second = registry.request_appointment(OTHER_PATIENT, CARDIOLOGIST, MONDAY, "09:00")
        confirmed = registry.confirm(second.id, CARDIOLOGIST)

        assert confirmed.status == AppointmentStatus.CONFIRMED

    def test_unknown_booking_policy(self, store):
        with pytest.raises(ValueError):
            AppointmentRegistry(store.appointments, store.slot_claims, None, booking_policy="first_come")


class TestTransitions:
    def test_doctor_confirms(self, services, book):
        appointment = book()

        confirmed = services.registry.confirm(appointment.id, CARDIOLOGIST)

        assert confirmed.status == AppointmentStatus.CONFIRMED
        assert services.registry.get(appointment.id).status == AppointmentStatus.CONFIRMED

    def test_confirm_writes_one_outbox_event(self, services, store, book):
        appointment = book()
        services.registry.confirm(appointment.id, CARDIOLOGIST)

        events = store.appointments.pending_events()
        assert len(events) == 1
        assert events[0].event_type == APPOINTMENT_CONFIRMED
        assert events[0].aggregate_id == appointment.id
        assert events[0].data["status"] == "confirmed"

    def test_other_doctor_cannot_confirm(self, services, book):
        appointment = book()

        with pytest.raises(AuthorizationError):
            services.registry.confirm(appointment.id, DERMATOLOGIST)
        assert services.registry.get(appointment.id).status == AppointmentStatus.PENDING

    def test_patient_cannot_confirm(self, services, book):
        appointment = book()

        with pytest.raises(AuthorizationError):
            services.registry.confirm(appointment.id, PATIENT)

    def test_confirm_twice_conflicts(self, services, store, book):
        appointment = book()
        services.registry.confirm(appointment.id, CARDIOLOGIST)

        with pytest.raises(StateConflictError):
            services.registry.confirm(appointment.id, CARDIOLOGIST)
        assert len(store.appointments.pending_events()) == 1

    def test_second_confirmation_for_same_slot_conflicts(self, services, book):
        first = book(patient_id=PATIENT)
        second = book(patient_id=OTHER_PATIENT)
        services.registry.confirm(first.id, CARDIOLOGIST)

        with pytest.raises(StateConflictError, match="already been booked"):
            services.registry.confirm(second.id, CARDIOLOGIST)
        assert services.registry.get(second.id).status == AppointmentStatus.PENDING

    def test_failed_confirm_write_frees_slot(self, services, store, book, monkeypatch):
        first = book(patient_id=PATIENT)
        second = book(patient_id=OTHER_PATIENT)
        original_save = store.appointments.save

        def failing_save(entity, events=()):
            raise PersistenceError("Cosmos batch failed with 503")

        monkeypatch.setattr(store.appointments, "save", failing_save)
        with pytest.raises(PersistenceError):
            services.registry.confirm(first.id, CARDIOLOGIST)
        monkeypatch.setattr(store.appointments, "save", original_save)

        assert services.registry.get(first.id).status == AppointmentStatus.PENDING
        confirmed = services.registry.confirm(second.id, CARDIOLOGIST)
        assert confirmed.status == AppointmentStatus.CONFIRMED
        assert store.appointments.pending_events()[0].aggregate_id == second.id

    def test_doctor_rejects_pending(self, services, book):
        appointment = book()

        rejected = services.registry.reject(appointment.id, CARDIOLOGIST)

        assert rejected.status == AppointmentStatus.CANCELED

    def test_reject_confirmed_conflicts(self, services, book):
        appointment = book()
        services.registry.confirm(appointment.id, CARDIOLOGIST)

        with pytest.raises(StateConflictError):
            services.registry.reject(appointment.id, CARDIOLOGIST)

    def test_patient_cancels_confirmed_and_frees_slot(self, services, book):
        first = book(patient_id=PATIENT)
        second = book(patient_id=OTHER_PATIENT)
        services.registry.confirm(first.id, CARDIOLOGIST)

        canceled = services.registry.cancel(first.id, PATIENT)
        confirmed = services.registry.confirm(second.id, CARDIOLOGIST)

        assert canceled.status == AppointmentStatus.CANCELED
        assert confirmed.status == AppointmentStatus.CONFIRMED

    def test_unrelated_user_cannot_cancel(self, services, book):
        appointment = book()
        services.registry.confirm(appointment.id, CARDIOLOGIST)

        with pytest.raises(AuthorizationError):
            services.registry.cancel(appointment.id, OTHER_PATIENT)

    def test_cancel_pending_conflicts(self, services, book):
        appointment = book()

        with pytest.raises(StateConflictError):
            services.registry.cancel(appointment.id, PATIENT)

    def test_complete_confirmed(self, services, book):
        appointment = book()
        services.registry.confirm(appointment.id, CARDIOLOGIST)

        completed = services.registry.complete(appointment.id)

        assert completed.status == AppointmentStatus.COMPLETED

    def test_complete_pending_conflicts(self, services, book):
        appointment = book()

        with pytest.raises(StateConflictError):
            services.registry.complete(appointment.id)

    def test_terminal_appointment_rejects_every_action(self, services, book):
        appointment = book()
        services.registry.reject(appointment.id, CARDIOLOGIST)

        with pytest.raises(StateConflictError):
            services.registry.confirm(appointment.id, CARDIOLOGIST)
        with pytest.raises(StateConflictError):
            services.registry.cancel(appointment.id, PATIENT)
        with pytest.raises(StateConflictError):
            services.registry.complete(appointment.id)

    def test_unknown_appointment(self, services):
        with pytest.raises(NotFoundError):
            services.registry.confirm("APPT-missing", CARDIOLOGIST)

    def test_stale_version_is_rejected(self, services, store, book):
        appointment = book()
        stale = store.appointments.get_by_id(appointment.id)
        services.registry.confirm(appointment.id, CARDIOLOGIST)

        stale.status = AppointmentStatus.CANCELED
        with pytest.raises(StateConflictError):
            store.appointments.save(stale)
        assert services.registry.get(appointment.id).status == AppointmentStatus.CONFIRMED


class TestConcurrentConfirmation:
    def test_exactly_one_confirmation_wins(self, services, store):
        patients = [f"pat-{i}" for i in range(8)]
        appointments = [
            services.registry.request_appointment(p, CARDIOLOGIST, MONDAY, "10:00") for p in patients
        ]
        barrier = threading.Barrier(len(appointments))

        def confirm(appointment_id):
            barrier.wait()
            try:
                services.registry.confirm(appointment_id, CARDIOLOGIST)
                return True
            except StateConflictError:
                return False

        with ThreadPoolExecutor(max_workers=len(appointments)) as pool:
            results = list(pool.map(confirm, [a.id for a in appointments]))

        assert results.count(True) == 1
        confirmed = services.registry.list_by_doctor(CARDIOLOGIST, "confirmed")
        assert len(confirmed) == 1
        assert len(store.appointments.pending_events()) == 1


class TestQueries:
    def test_list_by_patient_sorted_by_time(self, services, book):
        late = book(slot="16:00")
        early = book(slot="09:00")

        listed = services.registry.list_by_patient(PATIENT)

        assert [a.id for a in listed] == [early.id, late.id]

    def test_status_filter(self, services, book):
        kept = book(slot="09:00")
        dropped = book(slot="10:00")
        services.registry.confirm(kept.id, CARDIOLOGIST)
        services.registry.reject(dropped.id, CARDIOLOGIST)

        assert [a.id for a in services.registry.list_by_doctor(CARDIOLOGIST, "confirmed")] == [kept.id]
        assert [a.id for a in services.registry.list_by_patient(PATIENT, "canceled")] == [dropped.id]
        assert services.registry.list_by_patient(OTHER_PATIENT) == []

    def test_unknown_status_filter(self, services):
        with pytest.raises(ValidationError):
            services.registry.list_by_patient(PATIENT, "archived")
