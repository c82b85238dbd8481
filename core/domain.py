"""
Domain Layer Base Classes.

Rules that decide what may happen to care entities live here and in each
use case's domain/ package. They take plain values, return decisions and
never touch storage, so the HTTP API, scripts and the outbox relay all
share them.

Example Usage:
    class TransitionPolicy(PolicyEngine):
        def evaluate(self, context: TransitionContext) -> PolicyDecision:
            ...
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class PolicyResult(Enum):
    """Result of a policy evaluation."""
    APPROVED = "approved"
    DENIED = "denied"


@dataclass
class PolicyDecision:
    """
    The outcome of a policy evaluation.

    Attributes:
        result: The policy decision result
        reason: Human-readable explanation
        metadata: Additional context for the decision
    """
    result: PolicyResult
    reason: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_approved(self) -> bool:
        return self.result == PolicyResult.APPROVED

    @property
    def is_denied(self) -> bool:
        return self.result == PolicyResult.DENIED

    @classmethod
    def approve(cls, reason: str = "Approved", **metadata: Any) -> "PolicyDecision":
        return cls(result=PolicyResult.APPROVED, reason=reason, metadata=metadata)

    @classmethod
    def deny(cls, reason: str, **metadata: Any) -> "PolicyDecision":
        return cls(result=PolicyResult.DENIED, reason=reason, metadata=metadata)


@dataclass
class DomainEvent:
    """
    A fact about an aggregate, written to the appointment outbox.

    Every event carries:
    - a unique id (for acknowledgement)
    - the aggregate it belongs to (for partitioning and dedupe)
    """
    event_type: str
    aggregate_id: str
    data: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: f"EVT-{uuid.uuid4().hex[:12].upper()}")
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "aggregate_id": self.aggregate_id,
            "data": self.data,
            "occurred_at": self.occurred_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, doc: Dict[str, Any]) -> "DomainEvent":
        return cls(
            id=doc["id"],
            event_type=doc["event_type"],
            aggregate_id=doc["aggregate_id"],
            data=doc.get("data") or {},
            occurred_at=parse_date(doc.get("occurred_at")) or datetime.now(timezone.utc),
        )


class PolicyEngine(ABC):
    """A set of rules that turns a context object into a PolicyDecision."""

    @abstractmethod
    def evaluate(self, context: Any) -> PolicyDecision:
        """
        Decide on one request.

        Args:
            context: Everything the rules look at

        Returns:
            An approval or a denial with its reason
        """
        pass


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_date(date_string: Optional[str]) -> Optional[datetime]:
    """Parse an ISO format date string safely (naive values are taken as UTC)."""
    if not date_string or not isinstance(date_string, str):
        return None
    try:
        if date_string.endswith("Z"):
            return datetime.fromisoformat(date_string[:-1] + "+00:00")
        parsed = datetime.fromisoformat(date_string)
    except (ValueError, TypeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def new_id(prefix: str) -> str:
    """Generate a readable unique id such as APPT-1A2B3C4D5E6F."""
    return f"{prefix}-{uuid.uuid4().hex[:12].upper()}"
