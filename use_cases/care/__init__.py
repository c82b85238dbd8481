"""
Care Use Case - MediFlow appointment coordination.

Components:
- AvailabilityStore / generate_slots: doctor schedules and offerable slots
- AppointmentRegistry: appointment state machine and slot claims
- TimelineProjector / OutboxRelay: per-patient medical timeline
- ReportCoordinator: AI visit reports and dispatch
- SpecialtyRecommender / DoctorDirectory: finding the right doctor
- HealthAssistant: patient-facing chat
"""

from .assistant import HealthAssistant
from .availability_store import AvailabilityStore
from .registry import AppointmentRegistry
from .reports import ReportCoordinator
from .service import CareServices, build_services, create_services
from .specialty import DoctorDirectory, SpecialtyRecommendation, SpecialtyRecommender
from .timeline import OutboxRelay, TimelineProjector

__all__ = [
    "AppointmentRegistry",
    "AvailabilityStore",
    "CareServices",
    "DoctorDirectory",
    "HealthAssistant",
    "OutboxRelay",
    "ReportCoordinator",
    "SpecialtyRecommendation",
    "SpecialtyRecommender",
    "TimelineProjector",
    "build_services",
    "create_services",
]
