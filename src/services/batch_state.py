"""
Batch state machine.

A batch's state is the product of two small machines, expressed as a tagged
type so that illegal combinations cannot be constructed:

    Draft(qa=pending | hold | approved | rejected)
    Locked(qa=approved | rejected)

Lock axis:  Draft -> Locked (terminal).
QA axis (Draft only):
    pending  -> approved | rejected | hold
    hold     -> approved | rejected
    approved -> rejected | hold
    rejected -> approved | hold
Nothing returns to pending. Re-applying the current status is a no-op so
repeated saves are idempotent.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, Union

from src.models.enums import QaStatus
from src.services.exceptions import BatchLocked, InvalidQaTransition, QaNotResolved, ValidationError

QA_TRANSITIONS: Dict[QaStatus, FrozenSet[QaStatus]] = {
    QaStatus.PENDING: frozenset({QaStatus.APPROVED, QaStatus.REJECTED, QaStatus.HOLD}),
    QaStatus.HOLD: frozenset({QaStatus.APPROVED, QaStatus.REJECTED}),
    QaStatus.APPROVED: frozenset({QaStatus.REJECTED, QaStatus.HOLD}),
    QaStatus.REJECTED: frozenset({QaStatus.APPROVED, QaStatus.HOLD}),
}


def coerce_qa_status(value: Union[str, QaStatus]) -> QaStatus:
    """Parse a QA status; unknown values are a validation error."""
    if isinstance(value, QaStatus):
        return value
    try:
        return QaStatus(str(value).strip().lower())
    except ValueError:
        raise ValidationError(
            [
                f"Unknown QA status '{value}'. Use one of: "
                + ", ".join(status.value for status in QaStatus)
            ]
        ) from None


@dataclass(frozen=True)
class Draft:
    """An editable batch."""

    qa: QaStatus = QaStatus.PENDING

    is_locked = False

    def with_qa(self, requested: Union[str, QaStatus]) -> "Draft":
        """Return the draft with a new QA decision, enforcing the transition table."""
        target = coerce_qa_status(requested)
        if target == self.qa:
            return self
        if target not in QA_TRANSITIONS[self.qa]:
            raise InvalidQaTransition(self.qa.value, target.value)
        return Draft(target)

    def lock(self) -> "Locked":
        """Lock the draft; only a resolved QA decision can be locked."""
        if not self.qa.is_lockable:
            raise QaNotResolved(self.qa.value)
        return Locked(self.qa)


@dataclass(frozen=True)
class Locked:
    """A finalized batch. Terminal and immutable."""

    qa: QaStatus

    is_locked = True

    def __post_init__(self):
        if not self.qa.is_lockable:
            raise ValueError(f"A locked batch cannot have QA status '{self.qa.value}'")

    @property
    def materializes(self) -> bool:
        """Approved locked batches feed finished-goods inventory."""
        return self.qa == QaStatus.APPROVED


BatchState = Union[Draft, Locked]


def state_of(batch) -> BatchState:
    """Build the tagged state from a ProductionBatch row (or any object with
    ``is_locked`` and ``qa_status``)."""
    qa = coerce_qa_status(batch.qa_status)
    if batch.is_locked:
        return Locked(qa)
    return Draft(qa)


def require_draft(batch) -> Draft:
    """Return the batch's Draft state or raise BatchLocked."""
    state = state_of(batch)
    if isinstance(state, Locked):
        raise BatchLocked(batch.id, getattr(batch, "batch_code", None))
    return state
