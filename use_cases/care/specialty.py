"""
Doctor directory and symptom-based specialty recommendation.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from core.errors import ValidationError

from .ai_services import ClinicalTextService
from .models import Doctor
from .repositories import DoctorRepository

logger = logging.getLogger(__name__)


class DoctorDirectory:
    """Read-only view over the doctors container."""

    def __init__(self, doctors: DoctorRepository):
        self._doctors = doctors

    def list_doctors(self, specialty: Optional[str] = None) -> List[Doctor]:
        """All doctors, or those whose specialty matches case-insensitively."""
        doctors = self._doctors.find_all()
        if specialty and specialty.lower() != "all":
            wanted = specialty.strip().lower()
            doctors = [d for d in doctors if d.specialty.lower() == wanted]
        return sorted(doctors, key=lambda d: (d.specialty.lower(), d.last_name.lower(), d.first_name.lower()))

    def specialties(self) -> List[str]:
        """Distinct specialties, in first-seen casing, sorted."""
        seen = {}
        for doctor in self._doctors.find_all():
            if doctor.specialty:
                seen.setdefault(doctor.specialty.lower(), doctor.specialty)
        return sorted(seen.values(), key=str.lower)

    def get(self, doctor_id: str) -> Doctor:
        return self._doctors.require(doctor_id)


@dataclass
class SpecialtyRecommendation:
    """
    specialty is None when the classifier's label matched no doctor
    specialty; doctors then holds every doctor ("all specialties").
    """
    specialty: Optional[str]
    label: str
    doctors: List[Doctor] = field(default_factory=list)


class SpecialtyRecommender:
    """Maps a free-text symptom description onto the doctor specialty set."""

    def __init__(self, directory: DoctorDirectory, text_service: ClinicalTextService):
        self._directory = directory
        self._text = text_service

    async def recommend(self, symptoms: str) -> SpecialtyRecommendation:
        """
        Classify symptoms and return matching doctors.

        Raises:
            ValidationError: Empty symptom description
            ExternalServiceError: The classifier failed
        """
        if not symptoms or not symptoms.strip():
            raise ValidationError("Describe your symptoms to get a recommendation", field="symptoms")

        specialties = await asyncio.to_thread(self._directory.specialties)
        label = (await self._text.classify_specialty(symptoms.strip(), specialties)).strip().strip(".\"'")

        match = next((s for s in specialties if s.lower() == label.lower()), None)
        if match is None:
            logger.info(f"Specialty label '{label}' matched no doctor specialty, showing all")
            doctors = await asyncio.to_thread(self._directory.list_doctors)
        else:
            doctors = await asyncio.to_thread(self._directory.list_doctors, match)
        return SpecialtyRecommendation(specialty=match, label=label, doctors=doctors)
