"""
Care Entities.

Dataclasses for everything the service persists, each with a symmetric
to_document/from_document pair. The document shape is the Cosmos DB item
shape; the in-memory backend stores the same documents so both backends
behave identically. `version` mirrors the store's `_etag`.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from core.domain import parse_date, utc_now
from core.errors import ValidationError

from .domain.policies import AppointmentStatus
from .domain.services import doctor_display_name


def _iso(moment: Optional[datetime]) -> Optional[str]:
    return moment.isoformat() if moment else None


def _required_date(doc: Dict[str, Any], key: str) -> datetime:
    parsed = parse_date(doc.get(key))
    if parsed is None:
        raise ValidationError(f"'{key}' is missing or not an ISO timestamp", field=key)
    return parsed


# =============================================================================
# DOCTORS & PATIENTS
# =============================================================================

@dataclass
class Doctor:
    """
    A doctor in the directory.

    `availability` is kept as the raw stored document; AvailabilityStore is
    the only place that parses it, so a malformed schedule never breaks the
    directory listing.
    """
    id: str
    first_name: str = ""
    last_name: str = ""
    specialty: str = ""
    qualification: str = ""
    experience_years: int = 0
    availability: Optional[Dict[str, Any]] = None
    version: Optional[str] = None

    @property
    def display_name(self) -> str:
        return doctor_display_name(self.first_name, self.last_name)

    @property
    def full_name(self) -> str:
        return f"{self.display_name} ({self.specialty or 'General'})"

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "specialty": self.specialty,
            "qualification": self.qualification,
            "experience_years": self.experience_years,
            "availability": self.availability,
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Doctor":
        return cls(
            id=doc["id"],
            first_name=doc.get("first_name") or "",
            last_name=doc.get("last_name") or "",
            specialty=doc.get("specialty") or "",
            qualification=doc.get("qualification") or "",
            experience_years=int(doc.get("experience_years") or 0),
            availability=doc.get("availability"),
            version=doc.get("_etag"),
        )


@dataclass
class PatientProfile:
    """Contact details used for report titles and dispatch."""
    id: str
    first_name: str = ""
    last_name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    date_of_birth: Optional[str] = None
    gender: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "date_of_birth": self.date_of_birth,
            "gender": self.gender,
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "PatientProfile":
        return cls(
            id=doc["id"],
            first_name=doc.get("first_name") or "",
            last_name=doc.get("last_name") or "",
            email=doc.get("email"),
            phone=doc.get("phone"),
            date_of_birth=doc.get("date_of_birth"),
            gender=doc.get("gender"),
        )


@dataclass
class Medication:
    id: str
    user_id: str
    name: str
    dosage: Optional[str] = None
    frequency: Optional[str] = None
    is_active: bool = True

    def describe(self) -> str:
        return f"{self.name} ({self.dosage or 'no dosage'}, {self.frequency or 'no frequency'})"

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "dosage": self.dosage,
            "frequency": self.frequency,
            "is_active": self.is_active,
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Medication":
        return cls(
            id=doc["id"],
            user_id=doc["user_id"],
            name=doc.get("name") or "",
            dosage=doc.get("dosage"),
            frequency=doc.get("frequency"),
            is_active=bool(doc.get("is_active", True)),
        )


@dataclass
class MedicalCondition:
    id: str
    user_id: str
    name: str
    is_active: bool = True

    def to_document(self) -> Dict[str, Any]:
        return {"id": self.id, "user_id": self.user_id, "name": self.name, "is_active": self.is_active}

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "MedicalCondition":
        return cls(
            id=doc["id"],
            user_id=doc["user_id"],
            name=doc.get("name") or "",
            is_active=bool(doc.get("is_active", True)),
        )


@dataclass
class Allergy:
    id: str
    user_id: str
    name: str
    reaction: Optional[str] = None
    severity: Optional[str] = None

    def describe(self) -> str:
        details = ", ".join(part for part in (self.reaction, self.severity) if part)
        return f"{self.name} ({details})" if details else self.name

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "reaction": self.reaction,
            "severity": self.severity,
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Allergy":
        return cls(
            id=doc["id"],
            user_id=doc["user_id"],
            name=doc.get("name") or "",
            reaction=doc.get("reaction"),
            severity=doc.get("severity"),
        )


@dataclass
class PatientContext:
    """Read-only clinical context gathered before AI calls. Missing data is empty."""
    medications: List[Medication] = field(default_factory=list)
    conditions: List[MedicalCondition] = field(default_factory=list)
    allergies: List[Allergy] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.medications or self.conditions or self.allergies)


# =============================================================================
# APPOINTMENTS
# =============================================================================

@dataclass
class Appointment:
    """An appointment request and its lifecycle state. Never deleted."""
    id: str
    patient_id: str
    doctor_id: str
    scheduled_at: datetime
    status: AppointmentStatus = AppointmentStatus.PENDING
    issue: str = ""
    notes: str = ""
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    version: Optional[str] = None

    DOC_TYPE = "appointment"

    def to_snapshot(self) -> Dict[str, Any]:
        """The appointment as carried by events and the state-change trigger."""
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "doctor_id": self.doctor_id,
            "scheduled_at": _iso(self.scheduled_at),
            "issue": self.issue,
            "notes": self.notes,
            "status": self.status.value,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def to_document(self) -> Dict[str, Any]:
        doc = self.to_snapshot()
        doc["appointment_id"] = self.id
        doc["doc_type"] = self.DOC_TYPE
        return doc

    @classmethod
    def from_snapshot(cls, doc: Dict[str, Any]) -> "Appointment":
        """Build from a snapshot or stored document; raises ValidationError on bad shape."""
        missing = [key for key in ("id", "patient_id", "doctor_id") if not doc.get(key)]
        if missing:
            raise ValidationError(f"Appointment record is missing {', '.join(missing)}", field=missing[0])
        try:
            status = AppointmentStatus(doc.get("status") or AppointmentStatus.PENDING.value)
        except ValueError as e:
            raise ValidationError(f"Unknown appointment status '{doc.get('status')}'", field="status") from e
        return cls(
            id=doc["id"],
            patient_id=doc["patient_id"],
            doctor_id=doc["doctor_id"],
            scheduled_at=_required_date(doc, "scheduled_at"),
            status=status,
            issue=doc.get("issue") or "",
            notes=doc.get("notes") or "",
            created_at=parse_date(doc.get("created_at")) or utc_now(),
            updated_at=parse_date(doc.get("updated_at")) or utc_now(),
            version=doc.get("_etag"),
        )

    from_document = from_snapshot


@dataclass
class SlotClaim:
    """
    The serialization point for booking one doctor at one instant.

    Claims are never deleted: releasing one clears `active`, and a later
    booking takes the document over.
    """
    id: str
    doctor_id: str
    scheduled_at: datetime
    appointment_id: str
    active: bool = True
    updated_at: datetime = field(default_factory=utc_now)
    version: Optional[str] = None

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "doctor_id": self.doctor_id,
            "scheduled_at": _iso(self.scheduled_at),
            "appointment_id": self.appointment_id,
            "active": self.active,
            "updated_at": _iso(self.updated_at),
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "SlotClaim":
        return cls(
            id=doc["id"],
            doctor_id=doc["doctor_id"],
            scheduled_at=_required_date(doc, "scheduled_at"),
            appointment_id=doc["appointment_id"],
            active=bool(doc.get("active", True)),
            updated_at=parse_date(doc.get("updated_at")) or utc_now(),
            version=doc.get("_etag"),
        )


# =============================================================================
# TIMELINE
# =============================================================================

class EventKind(str, Enum):
    """Kinds of timeline entries."""
    PRESCRIPTION = "prescription"
    LAB = "lab"
    VISIT = "visit"
    MEDICINE = "medicine"
    ALERT = "alert"
    APPOINTMENT = "appointment"


@dataclass
class TimelineEvent:
    """
    One dated entry in a patient's medical history. Append-only.

    Projected entries use deterministic ids (appt-<appointment id>,
    report-<report id>) so (user_id, id) doubles as the dedupe key.
    """
    id: str
    user_id: str
    date: datetime
    title: str
    kind: EventKind
    description: str = ""
    related_file_url: Optional[str] = None
    report_id: Optional[str] = None
    source_appointment_id: Optional[str] = None
    source_report_id: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    version: Optional[str] = None

    @staticmethod
    def appointment_event_id(appointment_id: str) -> str:
        return f"appt-{appointment_id}"

    @staticmethod
    def report_event_id(report_id: str) -> str:
        return f"report-{report_id}"

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "date": _iso(self.date),
            "title": self.title,
            "description": self.description,
            "type": self.kind.value,
            "related_file_url": self.related_file_url,
            "report_id": self.report_id,
            "source_appointment_id": self.source_appointment_id,
            "source_report_id": self.source_report_id,
            "created_at": _iso(self.created_at),
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "TimelineEvent":
        return cls(
            id=doc["id"],
            user_id=doc["user_id"],
            date=_required_date(doc, "date"),
            title=doc.get("title") or "",
            kind=EventKind(doc.get("type") or EventKind.VISIT.value),
            description=doc.get("description") or "",
            related_file_url=doc.get("related_file_url"),
            report_id=doc.get("report_id"),
            source_appointment_id=doc.get("source_appointment_id"),
            source_report_id=doc.get("source_report_id"),
            created_at=parse_date(doc.get("created_at")) or utc_now(),
            version=doc.get("_etag"),
        )


# =============================================================================
# REPORTS
# =============================================================================

@dataclass
class Report:
    """A generated visit report. Only is_sent/sent_via change after creation."""
    id: str
    doctor_id: str
    patient_id: str
    title: str
    content: str
    visit_summary: str
    prescription: str
    appointment_id: Optional[str] = None
    is_sent: bool = False
    sent_via: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    version: Optional[str] = None

    def to_document(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "appointment_id": self.appointment_id,
            "doctor_id": self.doctor_id,
            "patient_id": self.patient_id,
            "title": self.title,
            "content": self.content,
            "visit_summary": self.visit_summary,
            "prescription": self.prescription,
            "is_sent": self.is_sent,
            "sent_via": self.sent_via,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Report":
        return cls(
            id=doc["id"],
            appointment_id=doc.get("appointment_id"),
            doctor_id=doc.get("doctor_id") or "",
            patient_id=doc.get("patient_id") or "",
            title=doc.get("title") or "",
            content=doc.get("content") or "",
            visit_summary=doc.get("visit_summary") or "",
            prescription=doc.get("prescription") or "",
            is_sent=bool(doc.get("is_sent", False)),
            sent_via=doc.get("sent_via"),
            created_at=parse_date(doc.get("created_at")) or utc_now(),
            updated_at=parse_date(doc.get("updated_at")) or utc_now(),
            version=doc.get("_etag"),
        )
