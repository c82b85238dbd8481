"""
In-Memory Care Store.

A process-local implementation of every care repository. Documents are
stored in the same shape as Cosmos DB items (including a synthetic
`_etag`), deep-copied on the way in and out, and guarded by one re-entrant
lock so an appointment write and its outbox events commit together.

Used by the test suite and by STORAGE_BACKEND=memory for local runs.
"""

import copy
import itertools
import logging
import threading
from enum import Enum
from typing import Any, Callable, Dict, Hashable, List, Optional, Sequence, TypeVar

from core.data import QueryOptions, QueryResult, Repository, paginate
from core.domain import DomainEvent, utc_now
from core.errors import NotFoundError, StateConflictError

from .models import (
    Allergy,
    Appointment,
    Doctor,
    MedicalCondition,
    Medication,
    PatientProfile,
    Report,
    SlotClaim,
    TimelineEvent,
)
from .repositories import (
    AppointmentRepository,
    DoctorRepository,
    PatientRecordRepository,
    ReportRepository,
    SlotClaimRepository,
    TimelineRepository,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _matches(doc: Dict[str, Any], filters: Dict[str, Any]) -> bool:
    for key, expected in filters.items():
        if expected is None:
            continue
        if isinstance(expected, Enum):
            expected = expected.value
        if doc.get(key) != expected:
            return False
    return True


class _MemoryRepository(Repository[T]):
    """Dictionary-backed repository with etag-based optimistic concurrency."""

    def __init__(self, lock: threading.RLock, from_document: Callable[[Dict[str, Any]], T]):
        self._lock = lock
        self._docs: Dict[Hashable, Dict[str, Any]] = {}
        self._from_document = from_document
        self._etags = itertools.count(1)

    def _key(self, doc: Dict[str, Any]) -> Hashable:
        return doc["id"]

    def _load(self, doc: Dict[str, Any]) -> T:
        return self._from_document(copy.deepcopy(doc))

    def _stamp(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        doc["_etag"] = f'"{next(self._etags)}"'
        return doc

    def get_by_id(self, id: str) -> Optional[T]:
        with self._lock:
            doc = self._docs.get(id)
            return self._load(doc) if doc is not None else None

    def find(self, options: Optional[QueryOptions] = None) -> QueryResult[T]:
        options = options or QueryOptions()
        with self._lock:
            docs = [d for d in self._docs.values() if _matches(d, options.filters)]
            if options.order_by:
                field_name = options.order_by
                docs.sort(
                    key=lambda d: (d.get(field_name) is None, d.get(field_name) or ""),
                    reverse=options.order_desc,
                )
            entities = [self._load(d) for d in docs]
        return paginate(entities, options)

    def add(self, entity: T) -> T:
        doc = entity.to_document()
        key = self._key(doc)
        with self._lock:
            if key in self._docs:
                raise StateConflictError(
                    f"{self.entity_name} '{doc['id']}' already exists",
                    {"entity": self.entity_name, "id": doc["id"]},
                )
            self._docs[key] = self._stamp(copy.deepcopy(doc))
            return self._load(self._docs[key])

    def save(self, entity: T) -> T:
        doc = entity.to_document()
        key = self._key(doc)
        with self._lock:
            current = self._docs.get(key)
            if current is None:
                raise NotFoundError(self.entity_name, doc["id"])
            if entity.version != current.get("_etag"):
                raise StateConflictError(
                    f"{self.entity_name} '{doc['id']}' was modified by another request",
                    {"entity": self.entity_name, "id": doc["id"]},
                )
            self._docs[key] = self._stamp(copy.deepcopy(doc))
            return self._load(self._docs[key])


# =============================================================================
# REPOSITORIES
# =============================================================================

class InMemoryDoctorRepository(_MemoryRepository[Doctor], DoctorRepository):
    def __init__(self, lock: threading.RLock):
        super().__init__(lock, Doctor.from_document)


class InMemorySlotClaimRepository(_MemoryRepository[SlotClaim], SlotClaimRepository):
    def __init__(self, lock: threading.RLock):
        super().__init__(lock, SlotClaim.from_document)


class InMemoryReportRepository(_MemoryRepository[Report], ReportRepository):
    def __init__(self, lock: threading.RLock):
        super().__init__(lock, Report.from_document)


class InMemoryAppointmentRepository(_MemoryRepository[Appointment], AppointmentRepository):
    """Appointments and outbox messages share the store lock."""

    def __init__(self, lock: threading.RLock):
        super().__init__(lock, Appointment.from_document)
        self._outbox: Dict[str, Dict[str, Any]] = {}

    def _enqueue(self, events: Sequence[DomainEvent]) -> None:
        for event in events:
            self._outbox[event.id] = {
                "id": event.id,
                "appointment_id": event.aggregate_id,
                "doc_type": "outbox",
                "status": "pending",
                "event": event.to_dict(),
                "created_at": utc_now().isoformat(),
            }

    def add(self, entity: Appointment, events: Sequence[DomainEvent] = ()) -> Appointment:
        with self._lock:
            saved = super().add(entity)
            self._enqueue(events)
            return saved

    def save(self, entity: Appointment, events: Sequence[DomainEvent] = ()) -> Appointment:
        with self._lock:
            saved = super().save(entity)
            self._enqueue(events)
            return saved

    def pending_events(self, limit: int = 50) -> List[DomainEvent]:
        with self._lock:
            pending = [d for d in self._outbox.values() if d["status"] == "pending"]
            pending.sort(key=lambda d: d["event"]["occurred_at"])
            return [DomainEvent.from_dict(copy.deepcopy(d["event"])) for d in pending[:limit]]

    def ack_event(self, event: DomainEvent) -> None:
        with self._lock:
            doc = self._outbox.get(event.id)
            if doc is None:
                raise NotFoundError("Outbox event", event.id)
            doc["status"] = "delivered"
            doc["delivered_at"] = utc_now().isoformat()

    def outbox_documents(self) -> List[Dict[str, Any]]:
        """Every outbox document, for inspection in tests and tooling."""
        with self._lock:
            return [copy.deepcopy(d) for d in self._outbox.values()]


class InMemoryTimelineRepository(_MemoryRepository[TimelineEvent], TimelineRepository):
    """Keyed by (user_id, id), mirroring the /user_id partition in Cosmos DB."""

    def __init__(self, lock: threading.RLock):
        super().__init__(lock, TimelineEvent.from_document)

    def _key(self, doc: Dict[str, Any]) -> Hashable:
        return (doc["user_id"], doc["id"])

    def get_by_id(self, id: str) -> Optional[TimelineEvent]:
        with self._lock:
            for (_, event_id), doc in self._docs.items():
                if event_id == id:
                    return self._load(doc)
        return None

    def get_for_user(self, user_id: str, event_id: str) -> Optional[TimelineEvent]:
        with self._lock:
            doc = self._docs.get((user_id, event_id))
            return self._load(doc) if doc is not None else None

    def list_for_user(self, user_id: str) -> List[TimelineEvent]:
        with self._lock:
            events = [self._load(d) for (owner, _), d in self._docs.items() if owner == user_id]
        events.sort(key=lambda e: (e.date, e.created_at), reverse=True)
        return events

    def save(self, entity: TimelineEvent) -> TimelineEvent:
        raise NotImplementedError("Timeline events are append-only")


class InMemoryPatientRecordRepository(PatientRecordRepository):
    def __init__(self, lock: threading.RLock):
        self._lock = lock
        self._profiles: Dict[str, Dict[str, Any]] = {}
        self._records: Dict[str, List[Dict[str, Any]]] = {
            "medications": [],
            "medical_conditions": [],
            "allergies": [],
        }

    def add_profile(self, profile: PatientProfile) -> None:
        with self._lock:
            self._profiles[profile.id] = profile.to_document()

    def add_record(self, kind: str, record: Any) -> None:
        """Store a Medication, MedicalCondition or Allergy under its record kind."""
        with self._lock:
            self._records[kind].append(record.to_document())

    def _list(self, kind: str, user_id: str, from_document: Callable[[Dict[str, Any]], Any]) -> List[Any]:
        with self._lock:
            return [from_document(copy.deepcopy(d)) for d in self._records[kind] if d["user_id"] == user_id]

    def get_profile(self, user_id: str) -> Optional[PatientProfile]:
        with self._lock:
            doc = self._profiles.get(user_id)
            return PatientProfile.from_document(copy.deepcopy(doc)) if doc else None

    def list_medications(self, user_id: str) -> List[Medication]:
        return self._list("medications", user_id, Medication.from_document)

    def list_conditions(self, user_id: str) -> List[MedicalCondition]:
        return self._list("medical_conditions", user_id, MedicalCondition.from_document)

    def list_allergies(self, user_id: str) -> List[Allergy]:
        return self._list("allergies", user_id, Allergy.from_document)


# =============================================================================
# STORE
# =============================================================================

class InMemoryCareStore:
    """All care repositories over one shared lock."""

    def __init__(self):
        self._lock = threading.RLock()
        self.doctors = InMemoryDoctorRepository(self._lock)
        self.appointments = InMemoryAppointmentRepository(self._lock)
        self.slot_claims = InMemorySlotClaimRepository(self._lock)
        self.timeline = InMemoryTimelineRepository(self._lock)
        self.reports = InMemoryReportRepository(self._lock)
        self.patient_records = InMemoryPatientRecordRepository(self._lock)

    def seed(self, data: Dict[str, List[Dict[str, Any]]]) -> None:
        """Load sample documents keyed by logical container name."""
        for doc in data.get("doctors", []):
            self.doctors.add(Doctor.from_document(doc))
        for doc in data.get("profiles", []):
            self.patient_records.add_profile(PatientProfile.from_document(doc))
        for doc in data.get("medications", []):
            self.patient_records.add_record("medications", Medication.from_document(doc))
        for doc in data.get("medical_conditions", []):
            self.patient_records.add_record("medical_conditions", MedicalCondition.from_document(doc))
        for doc in data.get("allergies", []):
            self.patient_records.add_record("allergies", Allergy.from_document(doc))
        logger.info(
            f"Seeded in-memory store with {len(data.get('doctors', []))} doctors "
            f"and {len(data.get('profiles', []))} profiles"
        )
