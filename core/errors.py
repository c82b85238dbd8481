"""
Error Taxonomy.

Every failure a public operation can report is one of the exceptions below.
The HTTP layer maps each class to a status code:

    ValidationError      -> 422  (malformed or missing input)
    NotFoundError        -> 404  (unknown id)
    StateConflictError   -> 409  (illegal transition or lost race)
    AuthorizationError   -> 403  (actor not permitted)
    ExternalServiceError -> 502  (AI / network failure, including timeout)
    PersistenceError     -> 503  (storage layer failure)

The first four carry enough detail for the caller to correct the request.
The last two are logged in full and shown to end users as a generic failure.
"""

from typing import Any, Dict, Optional


class CareError(Exception):
    """Base class for all care coordination errors."""

    code = "care_error"
    status_code = 500
    user_safe = True

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "error": True,
            "code": self.code,
            "message": self.message if self.user_safe else self.public_message,
        }
        if self.user_safe and self.details:
            body["details"] = self.details
        return body

    @property
    def public_message(self) -> str:
        return "The request could not be completed. Please try again."


class ValidationError(CareError):
    """Malformed or missing input."""

    code = "validation_error"
    status_code = 422

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        if field:
            details.setdefault("field", field)
        super().__init__(message, details)
        self.field = field


class ParseError(ValidationError):
    """A stored or submitted value could not be parsed."""

    code = "parse_error"


class NotFoundError(CareError):
    """An id does not refer to a known entity."""

    code = "not_found"
    status_code = 404

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} '{entity_id}' not found", {"entity": entity, "id": entity_id})
        self.entity = entity
        self.entity_id = entity_id


class StateConflictError(CareError):
    """Illegal state transition, lost optimistic-concurrency race, or taken slot."""

    code = "state_conflict"
    status_code = 409


class AuthorizationError(CareError):
    """The acting user is not permitted to perform the operation."""

    code = "forbidden"
    status_code = 403


class ExternalServiceError(CareError):
    """An external service (AI, notification gateway) failed or timed out."""

    code = "external_service_error"
    status_code = 502
    user_safe = False

    @property
    def public_message(self) -> str:
        return "An external service is temporarily unavailable. Please try again."


class PersistenceError(CareError):
    """The storage layer failed."""

    code = "persistence_error"
    status_code = 503
    user_safe = False

    @property
    def public_message(self) -> str:
        return "The data store is temporarily unavailable. Please try again."
