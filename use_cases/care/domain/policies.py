"""
Appointment Policies - Pure Business Rules.

The appointment lifecycle is a closed set of statuses plus an explicit
transition table. Nothing here touches storage: the registry loads the
appointment, asks TransitionPolicy for a decision, then persists.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

from core.domain import PolicyDecision, PolicyEngine
from core.errors import ValidationError


class AppointmentStatus(str, Enum):
    """Lifecycle status of an appointment."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    def can_transition_to(self, target: "AppointmentStatus") -> bool:
        return any(
            source == self and destination == target
            for (source, _), destination in TRANSITIONS.items()
        )


class AppointmentAction(str, Enum):
    """Operations that move an appointment between statuses."""
    CONFIRM = "confirm"
    REJECT = "reject"
    COMPLETE = "complete"
    CANCEL = "cancel"


class ActorRole(str, Enum):
    """Who may perform an action."""
    DOCTOR = "doctor"
    PATIENT = "patient"
    SYSTEM = "system"


# =============================================================================
# TRANSITION TABLE
# =============================================================================

TRANSITIONS: Dict[Tuple[AppointmentStatus, AppointmentAction], AppointmentStatus] = {
    (AppointmentStatus.PENDING, AppointmentAction.CONFIRM): AppointmentStatus.CONFIRMED,
    (AppointmentStatus.PENDING, AppointmentAction.REJECT): AppointmentStatus.CANCELED,
    (AppointmentStatus.CONFIRMED, AppointmentAction.COMPLETE): AppointmentStatus.COMPLETED,
    (AppointmentStatus.CONFIRMED, AppointmentAction.CANCEL): AppointmentStatus.CANCELED,
}

TERMINAL_STATUSES: FrozenSet[AppointmentStatus] = frozenset({
    AppointmentStatus.COMPLETED,
    AppointmentStatus.CANCELED,
})

# Completion is driven by a system process, so no actor is checked for it
ALLOWED_ACTORS: Dict[AppointmentAction, FrozenSet[ActorRole]] = {
    AppointmentAction.CONFIRM: frozenset({ActorRole.DOCTOR}),
    AppointmentAction.REJECT: frozenset({ActorRole.DOCTOR}),
    AppointmentAction.COMPLETE: frozenset({ActorRole.SYSTEM}),
    AppointmentAction.CANCEL: frozenset({ActorRole.DOCTOR, ActorRole.PATIENT}),
}

# Denial kinds carried in PolicyDecision.metadata["denial"]
DENIED_ACTOR = "actor"
DENIED_STATE = "state"


def parse_status(value: Optional[str]) -> Optional[AppointmentStatus]:
    """Parse an optional status filter; None passes through."""
    if value is None or value == "":
        return None
    if isinstance(value, AppointmentStatus):
        return value
    try:
        return AppointmentStatus(str(value).strip().lower())
    except ValueError as e:
        allowed = ", ".join(s.value for s in AppointmentStatus)
        raise ValidationError(f"Unknown status '{value}', expected one of: {allowed}", field="status") from e


@dataclass
class TransitionContext:
    """Everything needed to decide one transition."""
    status: AppointmentStatus
    action: AppointmentAction
    doctor_id: str
    patient_id: str
    actor_id: Optional[str] = None


# =============================================================================
# POLICIES
# =============================================================================

class TransitionPolicy(PolicyEngine):
    """
    Decide whether an actor may apply an action to an appointment.

    The actor is checked before the state so an unrelated user learns
    nothing about an appointment's status.

    On approval metadata["to_status"] holds the target status. On denial
    metadata["denial"] is DENIED_ACTOR or DENIED_STATE.
    """

    def evaluate(self, context: TransitionContext) -> PolicyDecision:
        role = self._role_of(context)
        allowed = ALLOWED_ACTORS[context.action]

        if ActorRole.SYSTEM not in allowed and role not in allowed:
            who = " or ".join(sorted(r.value for r in allowed))
            return PolicyDecision.deny(
                f"Only the assigned {who} may {context.action.value} this appointment",
                denial=DENIED_ACTOR,
                action=context.action.value,
            )

        target = TRANSITIONS.get((context.status, context.action))
        if target is None:
            return PolicyDecision.deny(
                f"Cannot {context.action.value} an appointment that is {context.status.value}",
                denial=DENIED_STATE,
                action=context.action.value,
                status=context.status.value,
            )

        return PolicyDecision.approve(
            f"{context.status.value} -> {target.value}",
            to_status=target,
        )

    @staticmethod
    def _role_of(context: TransitionContext) -> Optional[ActorRole]:
        if not context.actor_id:
            return None
        if context.actor_id == context.doctor_id:
            return ActorRole.DOCTOR
        if context.actor_id == context.patient_id:
            return ActorRole.PATIENT
        return None
