"""
Shared pytest fixtures for the care tests.

Every test runs against the in-memory care store and a scripted clinical
text service, so nothing here needs Azure credentials or network access.
"""

from typing import Any, Dict, List, Optional, Sequence

import pytest

from core.errors import ExternalServiceError
from use_cases.care.ai_services import ClinicalTextService, VisitSummaryRequest
from use_cases.care.memory_store import InMemoryCareStore
from use_cases.care.models import (
    Allergy,
    Doctor,
    MedicalCondition,
    Medication,
    PatientContext,
    PatientProfile,
)
from use_cases.care.notifications import NotificationDispatcher, NotificationMessage
from use_cases.care.registry import BOOKING_EXCLUSIVE
from use_cases.care.service import build_services


# 2030-01-07 is a Monday
MONDAY = "2030-01-07"
TUESDAY = "2030-01-08"
WEDNESDAY = "2030-01-09"
SATURDAY = "2030-01-12"

CARDIOLOGIST = "doc-ana-reyes"
DERMATOLOGIST = "doc-omar-haddad"
GENERALIST = "doc-lena-fischer"

PATIENT = "pat-maria-lopez"
OTHER_PATIENT = "pat-david-chen"


# ============================================================================
# TEST DOUBLES
# ============================================================================


class FakeClinicalTextService(ClinicalTextService):
    """Scripted text service; set `fail_on` to make a step raise."""

    def __init__(self):
        self.summary = "S: Chest tightness on exertion.\nO: BP 135/85.\nA: Stable angina suspected.\nP: ECG."
        self.prescription = "Suggested: aspirin 81 mg daily. Requires approval by the treating doctor."
        self.specialty = "Cardiology"
        self.reply = "Keep taking your medication as prescribed."
        self.fail_on: set = set()
        self.calls: List[tuple] = []

    def _step(self, name: str, *args: Any) -> None:
        self.calls.append((name,) + args)
        if name in self.fail_on:
            raise ExternalServiceError(f"{name} failed", {"operation": name})

    async def summarize_visit(self, request: VisitSummaryRequest) -> str:
        self._step("summarize_visit", request)
        return self.summary

    async def draft_prescription(self, patient_name: str, context: PatientContext, visit_summary: str) -> str:
        self._step("draft_prescription", patient_name, context, visit_summary)
        return self.prescription

    async def classify_specialty(self, symptoms: str, specialties: Sequence[str]) -> str:
        self._step("classify_specialty", symptoms, list(specialties))
        return self.specialty

    async def answer(self, system_prompt: str, message: str) -> str:
        self._step("answer", system_prompt, message)
        return self.reply

    def step_names(self) -> List[str]:
        return [call[0] for call in self.calls]


class RecordingDispatcher(NotificationDispatcher):
    def __init__(self):
        self.sent: List[NotificationMessage] = []
        self.fail = False

    async def send(self, message: NotificationMessage) -> None:
        if self.fail:
            raise ExternalServiceError("Gateway unavailable", {"channel": message.channel})
        self.sent.append(message)


# ============================================================================
# DATA
# ============================================================================


def doctor_documents() -> List[Dict[str, Any]]:
    return [
        {
            "id": CARDIOLOGIST,
            "first_name": "Ana",
            "last_name": "Reyes",
            "specialty": "Cardiology",
            "qualification": "MD",
            "experience_years": 12,
            "availability": {
                "working_hours": {
                    "monday": ["09:00-12:00", "14:00-17:00"],
                    "wednesday": ["10:00-12:00"],
                    "saturday": [],
                }
            },
        },
        {
            "id": DERMATOLOGIST,
            "first_name": "Omar",
            "last_name": "Haddad",
            "specialty": "Dermatology",
            "availability": {"working_hours": {"tuesday": ["09:00-11:00"]}},
        },
        {
            "id": GENERALIST,
            "first_name": "Lena",
            "last_name": "Fischer",
            "specialty": "General Practice",
            "availability": None,
        },
    ]


def seed_store(store: InMemoryCareStore) -> None:
    for doc in doctor_documents():
        store.doctors.add(Doctor.from_document(doc))

    store.patient_records.add_profile(PatientProfile(
        id=PATIENT, first_name="Maria", last_name="Lopez",
        email="maria.lopez@example.com", phone="+15550100",
    ))
    store.patient_records.add_profile(PatientProfile(
        id=OTHER_PATIENT, first_name="David", last_name="Chen", email="david.chen@example.com",
    ))
    records = store.patient_records
    records.add_record("medications", Medication(id="med-1", user_id=PATIENT, name="Lisinopril", dosage="10 mg", frequency="daily"))
    records.add_record("medications", Medication(id="med-2", user_id=PATIENT, name="Ibuprofen", is_active=False))
    records.add_record("medical_conditions", MedicalCondition(id="cond-1", user_id=PATIENT, name="Hypertension"))
    records.add_record("medical_conditions", MedicalCondition(id="cond-2", user_id=PATIENT, name="Bronchitis", is_active=False))
    records.add_record("allergies", Allergy(id="alg-1", user_id=PATIENT, name="Penicillin", reaction="rash", severity="moderate"))


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture
def store() -> InMemoryCareStore:
    store = InMemoryCareStore()
    seed_store(store)
    return store


@pytest.fixture
def text_service() -> FakeClinicalTextService:
    return FakeClinicalTextService()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def services(store, text_service, dispatcher):
    return build_services(store, text_service, dispatcher=dispatcher)


@pytest.fixture
def exclusive_services(store, text_service, dispatcher):
    return build_services(store, text_service, dispatcher=dispatcher, booking_policy=BOOKING_EXCLUSIVE)


@pytest.fixture
def book(services):
    """Request an appointment with the cardiologist (Monday 09:00 by default)."""

    def _book(patient_id: str = PATIENT, slot: str = "09:00", date: str = MONDAY,
              doctor_id: str = CARDIOLOGIST, issue: Optional[str] = "Chest pain"):
        return services.registry.request_appointment(
            patient_id=patient_id, doctor_id=doctor_id, date=date, slot=slot, issue=issue,
        )

    return _book
