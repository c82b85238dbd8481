"""
HTTP request models and response serializers for the care API.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .domain.services import SlotResult, format_slots
from .models import Appointment, Doctor, Report, TimelineEvent


# =============================================================================
# REQUESTS
# =============================================================================

class AvailabilityRequest(BaseModel):
    """Weekly availability: weekday -> ["HH:MM-HH:MM", ...]."""
    working_hours: Dict[str, Any]


class AppointmentRequest(BaseModel):
    """Booking request model."""
    patient_id: str
    doctor_id: str
    date: str = Field(description="Visit date, YYYY-MM-DD")
    slot: str = Field(description="Start time, HH:MM")
    issue: str = ""
    notes: str = ""


class AppointmentChange(BaseModel):
    """State-change trigger payload."""
    type: str
    record: Optional[Dict[str, Any]] = None
    old_record: Optional[Dict[str, Any]] = None


class TimelineEventRequest(BaseModel):
    """Patient-authored timeline entry."""
    title: str
    date: Optional[str] = None
    kind: str = "visit"
    description: str = ""
    related_file_url: Optional[str] = None


class ReportRequest(BaseModel):
    """Report generation request model."""
    transcription: str
    notes: str = ""
    appointment_id: Optional[str] = None
    doctor_id: Optional[str] = None
    patient_id: Optional[str] = None


class SendReportRequest(BaseModel):
    channel: str = Field(description="email or whatsapp")
    recipient_id: Optional[str] = None


class SpecialtyRequest(BaseModel):
    symptoms: str


class ChatRequest(BaseModel):
    message: str
    user_id: Optional[str] = None


# =============================================================================
# RESPONSES
# =============================================================================

def doctor_to_response(doctor: Doctor) -> Dict[str, Any]:
    return {
        "id": doctor.id,
        "first_name": doctor.first_name,
        "last_name": doctor.last_name,
        "full_name": doctor.full_name,
        "specialty": doctor.specialty,
        "qualification": doctor.qualification,
        "experience_years": doctor.experience_years,
    }


def appointment_to_response(appointment: Appointment) -> Dict[str, Any]:
    return appointment.to_snapshot()


def timeline_event_to_response(event: TimelineEvent) -> Dict[str, Any]:
    body = event.to_document()
    body["kind"] = body.pop("type")
    return body


def report_to_response(report: Report) -> Dict[str, Any]:
    return report.to_document()


def slots_to_response(doctor_id: str, date: str, slots: SlotResult) -> Dict[str, Any]:
    formatted: Optional[List[str]] = format_slots(slots)
    return {
        "doctor_id": doctor_id,
        "date": date,
        "available": formatted is not None,
        "slots": formatted or [],
        "message": None if formatted is not None else "Not available",
    }
