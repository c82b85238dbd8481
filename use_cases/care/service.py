"""
Care service wiring.

Builds every care component over one storage backend and one clinical
text service. main.py uses create_services(settings); tests call
build_services with an in-memory store and a scripted text service.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from core.resilience import RetryPolicy

from .ai_services import AzureOpenAIClinicalTextService, ClinicalTextService
from .assistant import HealthAssistant
from .availability_store import AvailabilityStore
from .memory_store import InMemoryCareStore
from .notifications import LoggingNotificationDispatcher, NotificationDispatcher
from .registry import BOOKING_SOFT_HOLD, AppointmentRegistry
from .reports import ReportCoordinator
from .specialty import DoctorDirectory, SpecialtyRecommender
from .timeline import OutboxRelay, TimelineProjector

logger = logging.getLogger(__name__)


@dataclass
class CareServices:
    """Every component of the care use case, sharing one store."""
    store: Any
    availability: AvailabilityStore
    registry: AppointmentRegistry
    projector: TimelineProjector
    relay: OutboxRelay
    reports: ReportCoordinator
    directory: DoctorDirectory
    recommender: SpecialtyRecommender
    assistant: HealthAssistant


def build_services(
    store: Any,
    text_service: ClinicalTextService,
    dispatcher: Optional[NotificationDispatcher] = None,
    booking_policy: str = BOOKING_SOFT_HOLD,
    clinic_timezone: str = "UTC",
    record_reports: bool = True,
) -> CareServices:
    """
    Wire the care components.

    Args:
        store: InMemoryCareStore or CosmosCareStore (same repository attributes)
        text_service: Natural-language generation backend
        dispatcher: Report delivery port (defaults to logging only)
        booking_policy: 'soft_hold' or 'exclusive'
        clinic_timezone: IANA zone in which availability hours are declared
        record_reports: Reference generated reports in the patient timeline
    """
    availability = AvailabilityStore(store.doctors)
    registry = AppointmentRegistry(
        store.appointments,
        store.slot_claims,
        availability,
        booking_policy=booking_policy,
        clinic_timezone=clinic_timezone,
    )
    projector = TimelineProjector(
        store.timeline,
        store.appointments,
        store.doctors,
        store.reports,
        record_reports=record_reports,
    )
    directory = DoctorDirectory(store.doctors)
    return CareServices(
        store=store,
        availability=availability,
        registry=registry,
        projector=projector,
        relay=OutboxRelay(store.appointments, projector),
        reports=ReportCoordinator(
            store.reports,
            store.appointments,
            store.doctors,
            store.patient_records,
            text_service,
            dispatcher or LoggingNotificationDispatcher(),
            projector=projector,
        ),
        directory=directory,
        recommender=SpecialtyRecommender(directory, text_service),
        assistant=HealthAssistant(store.patient_records, store.timeline, text_service),
    )


def create_services(settings) -> CareServices:
    """Build services from application settings."""
    from azure_client import client_manager

    if settings.storage_backend == "memory":
        store = InMemoryCareStore()
        if settings.seed_sample_data:
            from data.sample.care_data import SAMPLE_DATA
            store.seed(SAMPLE_DATA)
        logger.info("Using in-memory care store")
    elif settings.storage_backend == "cosmos":
        from .cosmos_client import CosmosCareStore
        store = CosmosCareStore()
        logger.info("Using Cosmos DB care store")
    else:
        raise ValueError(f"Unknown storage backend '{settings.storage_backend}'")

    text_service = AzureOpenAIClinicalTextService(
        client_manager.get_client,
        settings.azure_openai_deployment,
        RetryPolicy(
            timeout_seconds=settings.ai_timeout_seconds,
            max_retries=settings.ai_max_retries,
            initial_backoff=settings.ai_backoff_initial_seconds,
            max_backoff=settings.ai_backoff_max_seconds,
        ),
    )
    return build_services(
        store,
        text_service,
        booking_policy=settings.booking_policy,
        clinic_timezone=settings.clinic_timezone,
        record_reports=settings.timeline_record_reports,
    )
