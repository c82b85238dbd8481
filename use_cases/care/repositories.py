"""
Care Repositories - data access contracts.

Two backends implement these: memory_store (process-local, used by tests
and local runs) and cosmos_client (Azure Cosmos DB). Services depend only
on the abstract classes below.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from core.data import Repository
from core.domain import DomainEvent

from .models import (
    Allergy,
    Appointment,
    Doctor,
    MedicalCondition,
    Medication,
    PatientContext,
    PatientProfile,
    Report,
    SlotClaim,
    TimelineEvent,
)


class DoctorRepository(Repository[Doctor]):
    entity_name = "Doctor"


class AppointmentRepository(Repository[Appointment]):
    """
    Appointments plus their transactional outbox.

    add/save accept domain events that are written in the same atomic
    operation as the appointment, so a status change and its event are
    either both stored or neither is.
    """

    entity_name = "Appointment"

    @abstractmethod
    def add(self, entity: Appointment, events: Sequence[DomainEvent] = ()) -> Appointment:
        pass

    @abstractmethod
    def save(self, entity: Appointment, events: Sequence[DomainEvent] = ()) -> Appointment:
        pass

    @abstractmethod
    def pending_events(self, limit: int = 50) -> List[DomainEvent]:
        """Undelivered outbox events, oldest first."""
        pass

    @abstractmethod
    def ack_event(self, event: DomainEvent) -> None:
        """Mark an outbox event as delivered."""
        pass


class SlotClaimRepository(Repository[SlotClaim]):
    entity_name = "Slot claim"


class TimelineRepository(Repository[TimelineEvent]):
    """Append-only timeline events, partitioned by user."""

    entity_name = "Timeline event"

    @abstractmethod
    def get_for_user(self, user_id: str, event_id: str) -> Optional[TimelineEvent]:
        pass

    @abstractmethod
    def list_for_user(self, user_id: str) -> List[TimelineEvent]:
        """All events for a user, most recent `date` first."""
        pass

    def save(self, entity: TimelineEvent) -> TimelineEvent:
        raise NotImplementedError("Timeline events are append-only")


class ReportRepository(Repository[Report]):
    entity_name = "Report"


class PatientRecordRepository(ABC):
    """Read access to patient-owned records (profile, medications, conditions, allergies)."""

    @abstractmethod
    def get_profile(self, user_id: str) -> Optional[PatientProfile]:
        pass

    @abstractmethod
    def list_medications(self, user_id: str) -> List[Medication]:
        pass

    @abstractmethod
    def list_conditions(self, user_id: str) -> List[MedicalCondition]:
        pass

    @abstractmethod
    def list_allergies(self, user_id: str) -> List[Allergy]:
        pass

    def get_context(self, user_id: str) -> PatientContext:
        """Active medications, active conditions and all allergies."""
        return PatientContext(
            medications=[m for m in self.list_medications(user_id) if m.is_active],
            conditions=[c for c in self.list_conditions(user_id) if c.is_active],
            allergies=self.list_allergies(user_id),
        )
