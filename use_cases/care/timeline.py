"""
Timeline Projection.

TimelineProjector is the only writer of timeline events. Projected entries
(confirmed appointments, generated reports) use deterministic ids, so
re-delivery of the same event returns the existing entry instead of
appending a duplicate.

OutboxRelay moves appointment.confirmed events from the appointment outbox
into the projector, at least once, acknowledging each after it is
projected.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from core.domain import DomainEvent, new_id, parse_date, utc_now
from core.errors import StateConflictError, ValidationError

from .domain.policies import AppointmentStatus
from .domain.services import appointment_event_text
from .models import Appointment, EventKind, Report, TimelineEvent
from .registry import APPOINTMENT_CONFIRMED
from .repositories import AppointmentRepository, DoctorRepository, ReportRepository, TimelineRepository

logger = logging.getLogger(__name__)

# Kinds patients may record directly; appointment entries come only from confirmations
PATIENT_EVENT_KINDS = tuple(k for k in EventKind if k != EventKind.APPOINTMENT)


class TimelineProjector:
    """Maintains one append-only, date-ordered timeline per patient."""

    def __init__(
        self,
        timeline: TimelineRepository,
        appointments: AppointmentRepository,
        doctors: DoctorRepository,
        reports: ReportRepository,
        record_reports: bool = True,
    ):
        self._timeline = timeline
        self._appointments = appointments
        self._doctors = doctors
        self._reports = reports
        self._record_reports = record_reports

    # =========================================================================
    # PROJECTIONS
    # =========================================================================

    def on_appointment_confirmed(self, snapshot: Union[Appointment, Dict[str, Any]]) -> TimelineEvent:
        """
        Append the timeline entry for a confirmed appointment.

        Idempotent on the appointment id: a repeated delivery returns the
        entry created by the first one.

        Args:
            snapshot: The confirmed appointment, or its snapshot dict

        Returns:
            The (new or existing) appointment event

        Raises:
            ValidationError: Malformed snapshot or status other than confirmed
            NotFoundError: The appointment's doctor is unknown
        """
        appointment = snapshot if isinstance(snapshot, Appointment) else Appointment.from_snapshot(snapshot)
        if appointment.status != AppointmentStatus.CONFIRMED:
            raise ValidationError(
                f"Only confirmed appointments are projected, got '{appointment.status.value}'",
                field="status",
            )

        event_id = TimelineEvent.appointment_event_id(appointment.id)
        existing = self._timeline.get_for_user(appointment.patient_id, event_id)
        if existing is not None:
            logger.info(f"Appointment {appointment.id} already on timeline as {event_id}")
            return existing

        doctor = self._doctors.require(appointment.doctor_id)
        title, description = appointment_event_text(
            doctor.first_name, doctor.last_name, doctor.specialty, appointment.issue,
        )
        reports = self._reports.find_all(appointment_id=appointment.id)

        event = TimelineEvent(
            id=event_id,
            user_id=appointment.patient_id,
            date=appointment.scheduled_at,
            title=title,
            description=description,
            kind=EventKind.APPOINTMENT,
            report_id=reports[0].id if reports else None,
            source_appointment_id=appointment.id,
        )
        return self._append(event)

    def on_report_created(self, report: Report) -> Optional[TimelineEvent]:
        """Reference a newly generated report as a visit entry (when enabled)."""
        if not self._record_reports:
            return None

        event_id = TimelineEvent.report_event_id(report.id)
        existing = self._timeline.get_for_user(report.patient_id, event_id)
        if existing is not None:
            return existing

        return self._append(TimelineEvent(
            id=event_id,
            user_id=report.patient_id,
            date=report.created_at,
            title=report.title,
            description="Visit report available. Prescription suggestions require doctor approval.",
            kind=EventKind.VISIT,
            report_id=report.id,
            source_report_id=report.id,
        ))

    def handle_appointment_change(self, payload: Dict[str, Any]) -> Optional[TimelineEvent]:
        """
        State-change trigger: {"type": "UPDATE", "record": {...appointment...}}.

        The record only names the appointment. It is re-read from the
        registry's store and projected only when the stored status is
        confirmed; anything else is acknowledged and ignored.

        Raises:
            ValidationError: Malformed payload or record without an id
            NotFoundError: No appointment with the record's id
        """
        if not isinstance(payload, dict):
            raise ValidationError("Trigger payload must be an object")
        change_type = str(payload.get("type") or "").upper()
        record = payload.get("record")
        if change_type != "UPDATE":
            logger.info(f"Ignoring appointment change of type '{change_type or 'unknown'}'")
            return None
        if not isinstance(record, dict):
            raise ValidationError("Trigger payload has no record", field="record")
        appointment_id = record.get("id")
        if not appointment_id or not isinstance(appointment_id, str):
            raise ValidationError("Trigger record has no appointment id", field="id")
        if record.get("status") != AppointmentStatus.CONFIRMED.value:
            logger.info(f"Ignoring appointment {appointment_id} with status '{record.get('status')}'")
            return None

        appointment = self._appointments.require(appointment_id)
        if appointment.status != AppointmentStatus.CONFIRMED:
            logger.warning(
                f"Trigger reported {appointment_id} as confirmed but it is '{appointment.status.value}', ignoring"
            )
            return None
        return self.on_appointment_confirmed(appointment)

    # =========================================================================
    # PATIENT ENTRIES
    # =========================================================================

    def record_event(self, user_id: str, event: Dict[str, Any]) -> TimelineEvent:
        """
        Append a patient-authored entry (lab result, note, medication change).

        Args:
            user_id: The patient
            event: title, date, kind (or type), optional description and related_file_url
        """
        if not user_id:
            raise ValidationError("A user id is required", field="user_id")
        title = (event.get("title") or "").strip()
        if not title:
            raise ValidationError("A title is required", field="title")

        raw_kind = event.get("kind") or event.get("type") or EventKind.VISIT.value
        try:
            kind = EventKind(str(raw_kind).lower())
        except ValueError as e:
            raise ValidationError(f"Unknown event kind '{raw_kind}'", field="kind") from e
        if kind not in PATIENT_EVENT_KINDS:
            raise ValidationError("Appointment entries are created when an appointment is confirmed", field="kind")

        raw_date = event.get("date")
        if isinstance(raw_date, datetime):
            when = raw_date if raw_date.tzinfo else raw_date.replace(tzinfo=timezone.utc)
        elif raw_date:
            when = parse_date(str(raw_date))
            if when is None:
                raise ValidationError(f"Malformed date '{raw_date}'", field="date")
        else:
            when = utc_now()

        return self._append(TimelineEvent(
            id=new_id("EVT"),
            user_id=user_id,
            date=when.astimezone(timezone.utc),
            title=title,
            description=(event.get("description") or "").strip(),
            kind=kind,
            related_file_url=event.get("related_file_url"),
        ))

    def list(self, user_id: str) -> List[TimelineEvent]:
        """Events for a patient, most recent first."""
        return self._timeline.list_for_user(user_id)

    def _append(self, event: TimelineEvent) -> TimelineEvent:
        try:
            saved = self._timeline.add(event)
        except StateConflictError:
            # A concurrent delivery created it first
            existing = self._timeline.get_for_user(event.user_id, event.id)
            if existing is None:
                raise
            return existing
        logger.info(f"Timeline event {saved.id} ({saved.kind.value}) added for user {saved.user_id}")
        return saved


class OutboxRelay:
    """Delivers pending outbox events to the projector (at least once)."""

    def __init__(self, appointments: AppointmentRepository, projector: TimelineProjector, batch_size: int = 50):
        self._appointments = appointments
        self._projector = projector
        self._batch_size = batch_size

    def drain(self) -> int:
        """
        Deliver every pending event once.

        An event whose projection fails stays pending and is retried on the
        next drain.

        Returns:
            Number of events delivered and acknowledged
        """
        delivered = 0
        for event in self._appointments.pending_events(self._batch_size):
            try:
                self._deliver(event)
                self._appointments.ack_event(event)
            except Exception as e:
                logger.error(f"Outbox event {event.id} ({event.event_type}) not delivered: {e}", exc_info=True)
                continue
            delivered += 1
        if delivered:
            logger.info(f"Outbox relay delivered {delivered} event(s)")
        return delivered

    def _deliver(self, event: DomainEvent) -> None:
        if event.event_type == APPOINTMENT_CONFIRMED:
            self._projector.on_appointment_confirmed(event.data)
        else:
            logger.warning(f"Outbox event {event.id} has unknown type '{event.event_type}', acknowledging")

    async def run(self, interval_seconds: float, stop: asyncio.Event) -> None:
        """Drain periodically until `stop` is set."""
        logger.info(f"Outbox relay started (every {interval_seconds}s)")
        while not stop.is_set():
            try:
                await asyncio.to_thread(self.drain)
            except Exception as e:
                logger.error(f"Outbox relay pass failed: {e}", exc_info=True)
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval_seconds)
            except asyncio.TimeoutError:
                continue
        logger.info("Outbox relay stopped")
