"""
Report Coordinator - visit report pipeline and dispatch.

Pipeline (sequential, each step may fail on its own):
1. Gather patient context (active medications, active conditions, allergies)
2. Summarize the consultation in SOAP format
3. Draft advisory prescription suggestions from the summary
4. Persist the Report, then reference it into the patient's timeline

A failure in step 2 or 3 aborts the run before anything is stored, so the
caller can retry with the same transcription. Cancelling the surrounding
task stops the pipeline at its current await; nothing is persisted.
"""

import asyncio
import logging
from typing import Optional

from core.domain import new_id, utc_now
from core.errors import CareError, StateConflictError, ValidationError

from .ai_services import ClinicalTextService, VisitSummaryRequest
from .domain.services import report_content, report_title
from .models import Report
from .notifications import CHANNELS, NotificationDispatcher, NotificationMessage
from .repositories import AppointmentRepository, DoctorRepository, PatientRecordRepository, ReportRepository
from .timeline import TimelineProjector

logger = logging.getLogger(__name__)


class ReportCoordinator:
    """The only creator of reports."""

    def __init__(
        self,
        reports: ReportRepository,
        appointments: AppointmentRepository,
        doctors: DoctorRepository,
        patient_records: PatientRecordRepository,
        text_service: ClinicalTextService,
        dispatcher: NotificationDispatcher,
        projector: Optional[TimelineProjector] = None,
    ):
        self._reports = reports
        self._appointments = appointments
        self._doctors = doctors
        self._records = patient_records
        self._text = text_service
        self._dispatcher = dispatcher
        self._projector = projector

    async def generate(
        self,
        transcription: str,
        notes: str = "",
        appointment_id: Optional[str] = None,
        doctor_id: Optional[str] = None,
        patient_id: Optional[str] = None,
    ) -> Report:
        """
        Produce and persist a visit report.

        Doctor and patient default to the appointment's when an appointment
        id is given.

        Args:
            transcription: Consultation transcript (required)
            notes: Free-text notes from the patient or doctor
            appointment_id: Appointment the report belongs to
            doctor_id: Authoring doctor
            patient_id: Patient the report is about

        Returns:
            The persisted Report

        Raises:
            ValidationError: Missing transcription or participants, or ids that contradict the appointment
            NotFoundError: Unknown appointment or doctor
            ExternalServiceError: Summarization or prescription drafting failed
        """
        if not transcription or not transcription.strip():
            raise ValidationError("A consultation transcription is required", field="transcription")

        if appointment_id:
            appointment = await asyncio.to_thread(self._appointments.require, appointment_id)
            if doctor_id and doctor_id != appointment.doctor_id:
                raise ValidationError("Doctor does not match the appointment", field="doctor_id")
            if patient_id and patient_id != appointment.patient_id:
                raise ValidationError("Patient does not match the appointment", field="patient_id")
            doctor_id = appointment.doctor_id
            patient_id = appointment.patient_id

        if not doctor_id:
            raise ValidationError("A doctor id is required", field="doctor_id")
        if not patient_id:
            raise ValidationError("A patient id is required", field="patient_id")

        # Step 1: context
        doctor = await asyncio.to_thread(self._doctors.require, doctor_id)
        profile = await asyncio.to_thread(self._records.get_profile, patient_id)
        context = await asyncio.to_thread(self._records.get_context, patient_id)
        patient_name = profile.full_name if profile and profile.full_name else patient_id
        logger.info(
            f"Generating report for patient {patient_id} (appointment={appointment_id}): "
            f"{len(context.medications)} medications, {len(context.conditions)} conditions, "
            f"{len(context.allergies)} allergies"
        )

        # Step 2: summary
        visit_summary = await self._text.summarize_visit(VisitSummaryRequest(
            patient_name=patient_name,
            doctor=doctor,
            context=context,
            notes=(notes or "").strip(),
            transcription=transcription.strip(),
        ))

        # Step 3: prescription
        prescription = await self._text.draft_prescription(patient_name, context, visit_summary)

        # Step 4: persist
        now = utc_now()
        report = Report(
            id=new_id("RPT"),
            appointment_id=appointment_id,
            doctor_id=doctor_id,
            patient_id=patient_id,
            title=report_title(patient_name, now.date()),
            content=report_content(
                patient_name=patient_name,
                doctor_name=doctor.display_name,
                specialty=doctor.specialty,
                visit_day=now.date(),
                visit_summary=visit_summary,
                notes=notes,
            ),
            visit_summary=visit_summary,
            prescription=prescription,
            created_at=now,
            updated_at=now,
        )
        saved = await asyncio.to_thread(self._reports.add, report)
        logger.info(f"Report {saved.id} created for patient {patient_id}")

        if self._projector is not None:
            try:
                await asyncio.to_thread(self._projector.on_report_created, saved)
            except CareError as e:
                # The report stands on its own; the reference is a convenience
                logger.warning(f"Report {saved.id} not referenced in timeline: {e}", exc_info=True)

        return saved

    def get(self, report_id: str) -> Report:
        return self._reports.require(report_id)

    async def send_report(self, report_id: str, channel: str, recipient_id: Optional[str] = None) -> Report:
        """
        Dispatch a report to a recipient, then mark it sent.

        Args:
            report_id: The report to send
            channel: 'email' or 'whatsapp'
            recipient_id: Profile to send to (defaults to the report's patient)

        Raises:
            ValidationError: Unknown channel, or the recipient has no address for it
            NotFoundError: Unknown report or recipient
            ExternalServiceError: Dispatch failed; the report is left unchanged
        """
        channel = (channel or "").strip().lower()
        if channel not in CHANNELS:
            raise ValidationError(f"Unknown channel '{channel}', expected one of: {', '.join(CHANNELS)}", field="channel")

        report = await asyncio.to_thread(self._reports.require, report_id)
        recipient_id = recipient_id or report.patient_id
        profile = await asyncio.to_thread(self._records.get_profile, recipient_id)
        if profile is None:
            raise ValidationError(f"Recipient '{recipient_id}' has no contact profile", field="recipient_id")

        address = profile.email if channel == "email" else profile.phone
        if not address:
            raise ValidationError(f"Recipient has no {'email address' if channel == 'email' else 'phone number'}", field="channel")

        await self._dispatcher.send(NotificationMessage(
            report_id=report.id,
            channel=channel,
            recipient_name=profile.full_name or recipient_id,
            address=address,
            subject=report.title,
            body=report.content,
        ))
        return await asyncio.to_thread(self.mark_sent, report.id, channel)

    def mark_sent(self, report_id: str, channel: str) -> Report:
        """Flip is_sent after a successful dispatch. Retries once on a concurrent edit."""
        for attempt in range(2):
            report = self._reports.require(report_id)
            report.is_sent = True
            report.sent_via = channel
            report.updated_at = utc_now()
            try:
                saved = self._reports.save(report)
            except StateConflictError:
                if attempt == 1:
                    raise
                continue
            logger.info(f"Report {report_id} marked sent via {channel}")
            return saved
        raise StateConflictError(f"Report '{report_id}' could not be marked sent")
