"""
Cosmos DB Client for the Care Use Case.

Provides the Azure Cosmos DB implementation of every care repository.
Uses DefaultAzureCredential for flexible authentication.

Concurrency:
- Every replace is conditional on the item's _etag; a lost race surfaces
  as StateConflictError.
- Appointments and their outbox messages live in one container under the
  same partition key (/appointment_id), so a status change and its events
  are written in one transactional batch.
- Timeline events use deterministic ids inside the /user_id partition; a
  duplicate create means the event was already projected.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

from azure.core import MatchConditions
from azure.core.exceptions import AzureError, ServiceRequestError
from azure.cosmos import CosmosClient
from azure.cosmos.exceptions import (
    CosmosAccessConditionFailedError,
    CosmosBatchOperationError,
    CosmosHttpResponseError,
    CosmosResourceExistsError,
    CosmosResourceNotFoundError,
)
from azure.identity import DefaultAzureCredential

from core.data import QueryOptions, QueryResult, Repository, paginate
from core.domain import DomainEvent, utc_now
from core.errors import NotFoundError, PersistenceError, StateConflictError
from core.resilience import retry_transient

# Import shared configuration
from shared.cosmos_config import (
    COSMOS_ENDPOINT,
    DATABASE_NAME,
    get_care_container_name,
)

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

# Request timeout, throttling, retry-with and service unavailable
TRANSIENT_STATUS_CODES = {408, 429, 449, 503}

# Errors the repositories translate themselves
_PASSTHROUGH_ERRORS = (
    CosmosResourceNotFoundError,
    CosmosResourceExistsError,
    CosmosAccessConditionFailedError,
    CosmosBatchOperationError,
)


def is_transient_cosmos_error(error: BaseException) -> bool:
    if isinstance(error, ServiceRequestError):
        return True
    return isinstance(error, CosmosHttpResponseError) and error.status_code in TRANSIENT_STATUS_CODES


@retry_transient(is_transient_cosmos_error)
def _run(operation: Callable[[], Any]) -> Any:
    return operation()


def _execute(action: str, operation: Callable[[], Any]) -> Any:
    """Run a Cosmos call with transient retries; other SDK failures become PersistenceError."""
    try:
        return _run(operation)
    except _PASSTHROUGH_ERRORS:
        raise
    except AzureError as e:
        status = getattr(e, "status_code", None)
        logger.error(f"Cosmos DB {action} failed (status={status}): {e}", exc_info=True)
        raise PersistenceError(f"Cosmos DB {action} failed", {"action": action, "status": status}) from e


def _filter_clauses(filters: Dict[str, Any]) -> tuple:
    clauses: List[str] = []
    params: List[Dict[str, Any]] = []
    for index, (key, value) in enumerate(filters.items()):
        if value is None:
            continue
        if not key.isidentifier():
            raise ValueError(f"Invalid filter field: {key}")
        value = getattr(value, "value", value)
        clauses.append(f"c.{key} = @p{index}")
        params.append({"name": f"@p{index}", "value": value})
    return clauses, params


class CareCosmosClient:
    """Client for accessing care data in Cosmos DB."""

    def __init__(self, endpoint: str = COSMOS_ENDPOINT, database: str = DATABASE_NAME):
        """Initialize the Cosmos DB client."""
        logger.info("Initializing Care Cosmos DB client...")
        self._credential = DefaultAzureCredential(
            exclude_interactive_browser_credential=False,
            exclude_shared_token_cache_credential=False,
        )
        self._client = CosmosClient(endpoint, credential=self._credential)
        self._database = self._client.get_database_client(database)
        self._containers = {}
        logger.info("Care Cosmos DB client initialized")

    def get_container(self, name: str):
        """Get a container client, caching for reuse."""
        if name not in self._containers:
            container_name = get_care_container_name(name)
            self._containers[name] = self._database.get_container_client(container_name)
        return self._containers[name]


# =============================================================================
# BASE REPOSITORY
# =============================================================================

class _CosmosRepository(Repository[T]):
    """Container-backed repository for items partitioned by /id."""

    doc_type: Optional[str] = None

    def __init__(self, container, from_document: Callable[[Dict[str, Any]], T]):
        self._container = container
        self._from_document = from_document

    def _partition_key(self, doc: Dict[str, Any]) -> str:
        return doc["id"]

    def _query(self, query: str, params: List[Dict[str, Any]], partition_key: Optional[str] = None) -> List[Dict[str, Any]]:
        if partition_key is not None:
            return _execute("query", lambda: list(self._container.query_items(
                query, parameters=params, partition_key=partition_key,
            )))
        return _execute("query", lambda: list(self._container.query_items(
            query, parameters=params, enable_cross_partition_query=True,
        )))

    def get_by_id(self, id: str) -> Optional[T]:
        try:
            doc = _execute("read", lambda: self._container.read_item(item=id, partition_key=id))
        except CosmosResourceNotFoundError:
            return None
        if self.doc_type and doc.get("doc_type") != self.doc_type:
            return None
        return self._from_document(doc)

    def find(self, options: Optional[QueryOptions] = None) -> QueryResult[T]:
        options = options or QueryOptions()
        clauses, params = _filter_clauses(options.filters)
        if self.doc_type:
            clauses.insert(0, "c.doc_type = @doc_type")
            params.append({"name": "@doc_type", "value": self.doc_type})

        query = "SELECT * FROM c"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        if options.order_by:
            if not options.order_by.isidentifier():
                raise ValueError(f"Invalid order field: {options.order_by}")
            query += f" ORDER BY c.{options.order_by} {'DESC' if options.order_desc else 'ASC'}"

        # Care partitions are small; paginate after the query
        docs = self._query(query, params)
        return paginate([self._from_document(d) for d in docs], options)

    def add(self, entity: T) -> T:
        doc = entity.to_document()
        try:
            created = _execute("create", lambda: self._container.create_item(body=doc))
        except CosmosResourceExistsError as e:
            raise StateConflictError(
                f"{self.entity_name} '{doc['id']}' already exists",
                {"entity": self.entity_name, "id": doc["id"]},
            ) from e
        return self._from_document(created)

    def save(self, entity: T) -> T:
        doc = entity.to_document()
        conditions: Dict[str, Any] = {}
        if entity.version:
            conditions = {"etag": entity.version, "match_condition": MatchConditions.IfNotModified}
        try:
            replaced = _execute("replace", lambda: self._container.replace_item(
                item=doc["id"], body=doc, **conditions,
            ))
        except CosmosResourceNotFoundError as e:
            raise NotFoundError(self.entity_name, doc["id"]) from e
        except CosmosAccessConditionFailedError as e:
            raise StateConflictError(
                f"{self.entity_name} '{doc['id']}' was modified by another request",
                {"entity": self.entity_name, "id": doc["id"]},
            ) from e
        return self._from_document(replaced)


# =============================================================================
# REPOSITORIES
# =============================================================================

class CosmosDoctorRepository(_CosmosRepository[Doctor], DoctorRepository):
    def __init__(self, container):
        super().__init__(container, Doctor.from_document)


class CosmosSlotClaimRepository(_CosmosRepository[SlotClaim], SlotClaimRepository):
    def __init__(self, container):
        super().__init__(container, SlotClaim.from_document)


class CosmosReportRepository(_CosmosRepository[Report], ReportRepository):
    def __init__(self, container):
        super().__init__(container, Report.from_document)


class CosmosAppointmentRepository(_CosmosRepository[Appointment], AppointmentRepository):
    """Appointment documents and outbox documents in Care_Appointments."""

    doc_type = Appointment.DOC_TYPE

    def __init__(self, container):
        super().__init__(container, Appointment.from_document)

    @staticmethod
    def _outbox_document(event: DomainEvent) -> Dict[str, Any]:
        return {
            "id": event.id,
            "appointment_id": event.aggregate_id,
            "doc_type": "outbox",
            "status": "pending",
            "event": event.to_dict(),
            "created_at": utc_now().isoformat(),
        }

    def _run_batch(self, entity: Appointment, operations: List[tuple]) -> Appointment:
        try:
            _execute("batch", lambda: self._container.execute_item_batch(
                batch_operations=operations, partition_key=entity.id,
            ))
        except CosmosBatchOperationError as e:
            failed = e.operation_responses[e.error_index] if e.operation_responses else {}
            status = failed.get("statusCode", e.status_code)
            if status in (409, 412):
                raise StateConflictError(
                    f"Appointment '{entity.id}' was modified by another request",
                    {"entity": self.entity_name, "id": entity.id},
                ) from e
            if status == 404:
                raise NotFoundError(self.entity_name, entity.id) from e
            logger.error(f"Appointment batch for {entity.id} failed with status {status}", exc_info=True)
            raise PersistenceError("Cosmos DB batch failed", {"action": "batch", "status": status}) from e
        return self.require(entity.id)

    def add(self, entity: Appointment, events: Sequence[DomainEvent] = ()) -> Appointment:
        if not events:
            return super().add(entity)
        operations = [("create", (entity.to_document(),))]
        operations += [("create", (self._outbox_document(event),)) for event in events]
        return self._run_batch(entity, operations)

    def save(self, entity: Appointment, events: Sequence[DomainEvent] = ()) -> Appointment:
        if not events:
            return super().save(entity)
        replace_options = {"if_match_etag": entity.version} if entity.version else {}
        operations = [("replace", (entity.id, entity.to_document()), replace_options)]
        operations += [("create", (self._outbox_document(event),)) for event in events]
        return self._run_batch(entity, operations)

    def pending_events(self, limit: int = 50) -> List[DomainEvent]:
        query = (
            "SELECT * FROM c WHERE c.doc_type = 'outbox' AND c.status = 'pending' "
            "ORDER BY c.created_at ASC OFFSET 0 LIMIT @limit"
        )
        docs = self._query(query, [{"name": "@limit", "value": limit}])
        return [DomainEvent.from_dict(d["event"]) for d in docs]

    def ack_event(self, event: DomainEvent) -> None:
        try:
            doc = _execute("read", lambda: self._container.read_item(
                item=event.id, partition_key=event.aggregate_id,
            ))
        except CosmosResourceNotFoundError as e:
            raise NotFoundError("Outbox event", event.id) from e
        doc["status"] = "delivered"
        doc["delivered_at"] = utc_now().isoformat()
        _execute("replace", lambda: self._container.replace_item(item=event.id, body=doc))


class CosmosTimelineRepository(_CosmosRepository[TimelineEvent], TimelineRepository):
    """Care_MedicalEvents, partitioned by /user_id."""

    def __init__(self, container):
        super().__init__(container, TimelineEvent.from_document)

    def get_by_id(self, id: str) -> Optional[TimelineEvent]:
        docs = self._query("SELECT * FROM c WHERE c.id = @id", [{"name": "@id", "value": id}])
        return self._from_document(docs[0]) if docs else None

    def get_for_user(self, user_id: str, event_id: str) -> Optional[TimelineEvent]:
        try:
            doc = _execute("read", lambda: self._container.read_item(item=event_id, partition_key=user_id))
        except CosmosResourceNotFoundError:
            return None
        return self._from_document(doc)

    def list_for_user(self, user_id: str) -> List[TimelineEvent]:
        docs = self._query(
            "SELECT * FROM c WHERE c.user_id = @user_id ORDER BY c.date DESC",
            [{"name": "@user_id", "value": user_id}],
            partition_key=user_id,
        )
        events = [self._from_document(d) for d in docs]
        events.sort(key=lambda e: (e.date, e.created_at), reverse=True)
        return events

    def save(self, entity: TimelineEvent) -> TimelineEvent:
        raise NotImplementedError("Timeline events are append-only")


class CosmosPatientRecordRepository(PatientRecordRepository):
    """Profiles (/id) and per-user clinical records (/user_id)."""

    def __init__(self, client: CareCosmosClient):
        self._client = client

    def _list(self, container_name: str, user_id: str, from_document: Callable[[Dict[str, Any]], Any]) -> List[Any]:
        container = self._client.get_container(container_name)
        docs = _execute("query", lambda: list(container.query_items(
            "SELECT * FROM c WHERE c.user_id = @user_id",
            parameters=[{"name": "@user_id", "value": user_id}],
            partition_key=user_id,
        )))
        return [from_document(d) for d in docs]

    def get_profile(self, user_id: str) -> Optional[PatientProfile]:
        container = self._client.get_container("profiles")
        try:
            doc = _execute("read", lambda: container.read_item(item=user_id, partition_key=user_id))
        except CosmosResourceNotFoundError:
            return None
        return PatientProfile.from_document(doc)

    def list_medications(self, user_id: str) -> List[Medication]:
        return self._list("medications", user_id, Medication.from_document)

    def list_conditions(self, user_id: str) -> List[MedicalCondition]:
        return self._list("medical_conditions", user_id, MedicalCondition.from_document)

    def list_allergies(self, user_id: str) -> List[Allergy]:
        return self._list("allergies", user_id, Allergy.from_document)


# =============================================================================
# FACTORY
# =============================================================================

class CosmosCareStore:
    """All care repositories over one Cosmos DB client."""

    def __init__(self, client: Optional[CareCosmosClient] = None):
        self.client = client or CareCosmosClient()
        self.doctors = CosmosDoctorRepository(self.client.get_container("doctors"))
        self.appointments = CosmosAppointmentRepository(self.client.get_container("appointments"))
        self.slot_claims = CosmosSlotClaimRepository(self.client.get_container("slot_claims"))
        self.timeline = CosmosTimelineRepository(self.client.get_container("medical_events"))
        self.reports = CosmosReportRepository(self.client.get_container("reports"))
        self.patient_records = CosmosPatientRecordRepository(self.client)
