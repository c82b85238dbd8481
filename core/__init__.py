"""
Core Framework for the care coordination service.

This module provides the base classes shared by the use case layers:

1. Domain Layer - Pure business rules, no I/O
2. Data Layer - Repository pattern for data access
3. Errors - The typed failure taxonomy every operation reports through
4. Resilience - Timeouts and bounded retries for external calls
"""

from .domain import DomainEvent, PolicyDecision, PolicyEngine, PolicyResult
from .data import QueryOptions, QueryResult, Repository
from .errors import (
    AuthorizationError,
    CareError,
    ExternalServiceError,
    NotFoundError,
    ParseError,
    PersistenceError,
    StateConflictError,
    ValidationError,
)
from .resilience import RetryPolicy, call_with_retry, retry_transient

__all__ = [
    # Domain
    "DomainEvent",
    "PolicyDecision",
    "PolicyEngine",
    "PolicyResult",
    # Data
    "QueryOptions",
    "QueryResult",
    "Repository",
    # Errors
    "CareError",
    "ValidationError",
    "ParseError",
    "NotFoundError",
    "StateConflictError",
    "AuthorizationError",
    "ExternalServiceError",
    "PersistenceError",
    # Resilience
    "RetryPolicy",
    "call_with_retry",
    "retry_transient",
]
