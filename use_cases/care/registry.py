"""
Appointment Registry - the only writer of appointments.

Flow for every transition:
1. Load the appointment (with its version token)
2. Ask TransitionPolicy whether the actor may apply the action
3. Apply the new status and persist with an optimistic version check
4. On confirm, write the appointment.confirmed outbox event in the same
   atomic write

Double booking is serialized through a per-(doctor, instant) slot claim.
With the soft_hold policy the claim is taken at confirm time, so several
patients may request the same slot and the doctor picks one. With the
exclusive policy it is taken at request time.
"""

import logging
from typing import Any, List, Optional, Sequence

from core.domain import DomainEvent, new_id, utc_now
from core.errors import AuthorizationError, CareError, StateConflictError, ValidationError

from .availability_store import AvailabilityStore
from .domain.policies import (
    DENIED_ACTOR,
    AppointmentAction,
    AppointmentStatus,
    TransitionContext,
    TransitionPolicy,
    parse_status,
)
from .domain.services import (
    UNAVAILABLE,
    clinic_zone,
    format_slots,
    parse_slot,
    parse_visit_date,
    slot_claim_id,
    to_scheduled_at,
    weekday_key,
)
from .models import Appointment, SlotClaim
from .repositories import AppointmentRepository, SlotClaimRepository

logger = logging.getLogger(__name__)

APPOINTMENT_CONFIRMED = "appointment.confirmed"

BOOKING_SOFT_HOLD = "soft_hold"
BOOKING_EXCLUSIVE = "exclusive"
BOOKING_POLICIES = (BOOKING_SOFT_HOLD, BOOKING_EXCLUSIVE)


class AppointmentRegistry:
    """Owns the appointment entity and its state machine."""

    def __init__(
        self,
        appointments: AppointmentRepository,
        slot_claims: SlotClaimRepository,
        availability: AvailabilityStore,
        booking_policy: str = BOOKING_SOFT_HOLD,
        clinic_timezone: str = "UTC",
        policy: Optional[TransitionPolicy] = None,
    ):
        if booking_policy not in BOOKING_POLICIES:
            raise ValueError(f"Unknown booking policy '{booking_policy}', expected one of {BOOKING_POLICIES}")
        self._appointments = appointments
        self._claims = slot_claims
        self._availability = availability
        self._booking_policy = booking_policy
        self._zone = clinic_zone(clinic_timezone)
        self._policy = policy or TransitionPolicy()

    # =========================================================================
    # REQUEST
    # =========================================================================

    def request_appointment(
        self,
        patient_id: str,
        doctor_id: str,
        date: Any,
        slot: Any,
        issue: str = "",
        notes: str = "",
    ) -> Appointment:
        """
        Create a Pending appointment for an offered slot.

        Args:
            patient_id: The requesting patient
            doctor_id: The doctor being booked
            date: Visit date, 'YYYY-MM-DD' in clinic time
            slot: Start time 'HH:MM' that must be among the doctor's slots that day
            issue: Reason for the visit
            notes: Free-text notes

        Returns:
            The stored Pending appointment

        Raises:
            ValidationError: Missing ids, malformed date/slot, closed day, or slot not offered
            NotFoundError: Unknown doctor
            StateConflictError: Slot already held (exclusive booking only)
        """
        if not patient_id:
            raise ValidationError("A patient id is required", field="patient_id")
        if not doctor_id:
            raise ValidationError("A doctor id is required", field="doctor_id")
        visit_day = parse_visit_date(date)
        start = parse_slot(slot)

        offered = self._availability.slots_for(doctor_id, visit_day)
        if offered is UNAVAILABLE:
            raise ValidationError(
                f"The doctor is not available on {weekday_key(visit_day).title()}s",
                field="date",
            )
        if start not in offered:
            raise ValidationError(
                f"{start:%H:%M} is not an available slot on {visit_day.isoformat()}",
                field="slot",
                details={"available_slots": format_slots(offered)},
            )

        now = utc_now()
        appointment = Appointment(
            id=new_id("APPT"),
            patient_id=patient_id,
            doctor_id=doctor_id,
            scheduled_at=to_scheduled_at(visit_day, start, self._zone),
            status=AppointmentStatus.PENDING,
            issue=(issue or "").strip(),
            notes=(notes or "").strip(),
            created_at=now,
            updated_at=now,
        )

        if self._booking_policy == BOOKING_EXCLUSIVE:
            self._claim_slot(appointment)

        saved = self._appointments.add(appointment)
        logger.info(
            f"Appointment {saved.id} requested: patient={patient_id} doctor={doctor_id} "
            f"at={saved.scheduled_at.isoformat()}"
        )
        return saved

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    def confirm(self, appointment_id: str, acting_doctor_id: Optional[str]) -> Appointment:
        """Pending -> Confirmed. Emits appointment.confirmed through the outbox."""
        return self._transition(appointment_id, AppointmentAction.CONFIRM, acting_doctor_id)

    def reject(self, appointment_id: str, acting_doctor_id: Optional[str]) -> Appointment:
        """Pending -> Canceled."""
        return self._transition(appointment_id, AppointmentAction.REJECT, acting_doctor_id)

    def complete(self, appointment_id: str) -> Appointment:
        """Confirmed -> Completed (system process)."""
        return self._transition(appointment_id, AppointmentAction.COMPLETE, None)

    def cancel(self, appointment_id: str, actor_id: Optional[str]) -> Appointment:
        """Confirmed -> Canceled, by the assigned doctor or the patient."""
        return self._transition(appointment_id, AppointmentAction.CANCEL, actor_id)

    def _transition(self, appointment_id: str, action: AppointmentAction, actor_id: Optional[str]) -> Appointment:
        appointment = self._appointments.require(appointment_id)

        decision = self._policy.evaluate(TransitionContext(
            status=appointment.status,
            action=action,
            doctor_id=appointment.doctor_id,
            patient_id=appointment.patient_id,
            actor_id=actor_id,
        ))
        if decision.is_denied:
            logger.info(f"Denied {action.value} on {appointment_id} by {actor_id}: {decision.reason}")
            if decision.metadata.get("denial") == DENIED_ACTOR:
                raise AuthorizationError(decision.reason, {"appointment_id": appointment_id})
            raise StateConflictError(
                decision.reason,
                {"appointment_id": appointment_id, "status": appointment.status.value},
            )

        previous = appointment.status
        appointment.status = decision.metadata["to_status"]
        appointment.updated_at = utc_now()

        events: Sequence[DomainEvent] = ()
        claimed = False
        if action == AppointmentAction.CONFIRM:
            claimed = self._claim_slot(appointment)
            events = [DomainEvent(
                event_type=APPOINTMENT_CONFIRMED,
                aggregate_id=appointment.id,
                data=appointment.to_snapshot(),
            )]

        try:
            saved = self._appointments.save(appointment, events)
        except Exception:
            if claimed:
                self._release_unless_confirmed(appointment)
            raise

        if saved.status == AppointmentStatus.CANCELED:
            self._release_slot(saved)

        logger.info(f"Appointment {appointment_id}: {previous.value} -> {saved.status.value} ({action.value})")
        return saved

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get(self, appointment_id: str) -> Appointment:
        return self._appointments.require(appointment_id)

    def list_by_patient(self, patient_id: str, status: Optional[str] = None) -> List[Appointment]:
        return self._list(patient_id=patient_id, status=parse_status(status))

    def list_by_doctor(self, doctor_id: str, status: Optional[str] = None) -> List[Appointment]:
        return self._list(doctor_id=doctor_id, status=parse_status(status))

    def _list(self, **filters: Any) -> List[Appointment]:
        appointments = self._appointments.find_all(**filters)
        return sorted(appointments, key=lambda a: a.scheduled_at)

    # =========================================================================
    # SLOT CLAIMS
    # =========================================================================

    def _claim_slot(self, appointment: Appointment) -> bool:
        """
        Take the (doctor, instant) claim for an appointment.

        A claim held by a canceled or missing appointment, or released
        earlier, is taken over.

        Returns:
            True if this call took the claim, False if the appointment already held it

        Raises:
            StateConflictError: Another live appointment holds the slot
        """
        claim_id = slot_claim_id(appointment.doctor_id, appointment.scheduled_at)
        existing = self._claims.get_by_id(claim_id)

        if existing is None:
            try:
                self._claims.add(SlotClaim(
                    id=claim_id,
                    doctor_id=appointment.doctor_id,
                    scheduled_at=appointment.scheduled_at,
                    appointment_id=appointment.id,
                ))
            except StateConflictError as e:
                raise self._slot_taken(appointment) from e
            return True

        if existing.appointment_id == appointment.id and existing.active:
            return False

        if existing.active:
            holder = self._appointments.get_by_id(existing.appointment_id)
            if holder is not None and holder.status != AppointmentStatus.CANCELED:
                raise self._slot_taken(appointment)
            logger.info(f"Taking over stale slot claim {claim_id} from {existing.appointment_id}")

        existing.appointment_id = appointment.id
        existing.active = True
        existing.updated_at = utc_now()
        try:
            self._claims.save(existing)
        except StateConflictError as e:
            raise self._slot_taken(appointment) from e
        return True

    def _release_slot(self, appointment: Appointment) -> None:
        claim_id = slot_claim_id(appointment.doctor_id, appointment.scheduled_at)
        claim = self._claims.get_by_id(claim_id)
        if claim is None or claim.appointment_id != appointment.id or not claim.active:
            return
        claim.active = False
        claim.updated_at = utc_now()
        try:
            self._claims.save(claim)
        except StateConflictError:
            # The next claimant sees a canceled holder and takes the claim over
            logger.warning(f"Slot claim {claim_id} changed while releasing it for {appointment.id}")

    def _release_unless_confirmed(self, appointment: Appointment) -> None:
        """Give back a claim taken for a confirm whose write did not land."""
        try:
            current = self._appointments.get_by_id(appointment.id)
            if current is None or current.status != AppointmentStatus.CONFIRMED:
                self._release_slot(appointment)
        except CareError as e:
            logger.error(f"Could not release slot claim for {appointment.id}: {e}", exc_info=True)

    @staticmethod
    def _slot_taken(appointment: Appointment) -> StateConflictError:
        return StateConflictError(
            "This time slot has already been booked",
            {
                "doctor_id": appointment.doctor_id,
                "scheduled_at": appointment.scheduled_at.isoformat(),
            },
        )
