"""Service layer exception classes for the Production Batch Tracker.

This module defines all custom exceptions used by the service layer to provide
consistent error handling across the application.

Exception Hierarchy:
    ServiceError (base)
    ├── ValidationError            - bad input, state unchanged
    │   ├── FractionalNotAllowed
    │   ├── MissingTag
    │   ├── UnknownUnit
    │   ├── UnknownTag
    │   └── InvalidQaTransition
    ├── PreconditionError          - operation not allowed in the current state
    │   ├── BatchLocked
    │   ├── NoOutputsDefined
    │   ├── InvalidDateRange
    │   ├── QaNotResolved
    │   └── MissingReason
    ├── ResourceError              - lot cannot satisfy the request
    │   ├── InsufficientQuantity
    │   └── LotUnusable
    ├── NotFoundError
    │   ├── BatchNotFound
    │   ├── LotNotFound
    │   ├── ConsumptionNotFound
    │   │   └── AlreadyReleased
    │   ├── OutputNotFound
    │   └── OperatorNotFound
    ├── IntegrityViolation         - store rejected a write; a bug, never user-facing
    └── TransientStoreError        - connection/lock trouble; safe to retry
"""

from decimal import Decimal
from typing import List, Optional


class ServiceError(Exception):
    """Base exception for all service layer errors.

    All service-specific exceptions inherit from this class.
    """

    retryable = False


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(ServiceError):
    """Raised when input validation fails.

    Args:
        errors: List of field error messages
    """

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__(f"Validation failed: {'; '.join(self.errors)}")


class FractionalNotAllowed(ValidationError):
    """Raised when a whole-number unit receives a fractional quantity.

    Example:
        >>> raise FractionalNotAllowed("bottles", Decimal("2.5"))
        FractionalNotAllowed: Validation failed: Unit 'bottles' does not allow decimal quantities (got 2.5)
    """

    def __init__(self, unit: str, quantity: Decimal):
        self.unit = unit
        self.quantity = quantity
        super().__init__(
            [f"Unit '{unit}' does not allow decimal quantities (got {quantity})"]
        )


class MissingTag(ValidationError):
    """Raised when an output is defined without a classification tag."""

    def __init__(self):
        super().__init__(["Produced goods tag is required"])


class UnknownUnit(ValidationError):
    """Raised when a unit is not in the unit directory (or is inactive)."""

    def __init__(self, unit: str, unit_type: str):
        self.unit = unit
        self.unit_type = unit_type
        super().__init__([f"Unit '{unit}' is not an active {unit_type} unit"])


class UnknownTag(ValidationError):
    """Raised when a tag reference does not exist or is inactive."""

    def __init__(self, tag_id):
        self.tag_id = tag_id
        super().__init__([f"Produced goods tag {tag_id} does not exist or is inactive"])


class InvalidQaTransition(ValidationError):
    """Raised when a QA status change is not an allowed transition."""

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__([f"QA status cannot change from '{current}' to '{requested}'"])


# =============================================================================
# Precondition Errors
# =============================================================================


class PreconditionError(ServiceError):
    """Base for operations refused because of the batch's current state."""

    pass


class BatchLocked(PreconditionError):
    """Raised when a mutation targets a locked batch."""

    def __init__(self, batch_id: int, batch_code: Optional[str] = None):
        self.batch_id = batch_id
        self.batch_code = batch_code
        label = batch_code or f"id {batch_id}"
        super().__init__(f"Batch {label} is locked and cannot be modified")


class NoOutputsDefined(PreconditionError):
    """Raised when finalizing a batch that has no outputs."""

    def __init__(self, batch_id: int):
        self.batch_id = batch_id
        super().__init__(f"Cannot finalize batch {batch_id}: no outputs defined")


class InvalidDateRange(PreconditionError):
    """Raised when production dates are missing or end before they start."""

    def __init__(self, start, end):
        self.start = start
        self.end = end
        if start is None or end is None:
            message = "Production start and end dates are both required"
        else:
            message = f"Production end date {end} is before start date {start}"
        super().__init__(message)


class QaNotResolved(PreconditionError):
    """Raised when finalizing a batch whose QA status is pending or hold."""

    def __init__(self, qa_status: str):
        self.qa_status = qa_status
        super().__init__(
            f"Cannot lock batch with QA status '{qa_status}': "
            "only approved or rejected batches can be locked"
        )


class MissingReason(PreconditionError):
    """Raised when a rejected batch is finalized without a QA reason."""

    def __init__(self, qa_status: str = "rejected"):
        self.qa_status = qa_status
        super().__init__(f"A reason is required when QA status is '{qa_status}'")


# =============================================================================
# Resource Errors
# =============================================================================


class ResourceError(ServiceError):
    """Base for lot pool errors; the caller may adjust and retry."""

    pass


class InsufficientQuantity(ResourceError):
    """Raised when a lot has less available than requested.

    Example:
        >>> raise InsufficientQuantity("RM-001", Decimal("150"), Decimal("100"), "Kg.")
        InsufficientQuantity: Insufficient quantity in lot RM-001: requested 150 Kg., available 100 Kg.
    """

    def __init__(self, lot_code: str, requested: Decimal, available: Decimal, unit: str):
        self.lot_code = lot_code
        self.requested = requested
        self.available = available
        self.unit = unit
        super().__init__(
            f"Insufficient quantity in lot {lot_code}: "
            f"requested {requested} {unit}, available {available} {unit}"
        )


class LotUnusable(ResourceError):
    """Raised when consuming from a lot flagged as not usable."""

    def __init__(self, lot_code: str):
        self.lot_code = lot_code
        super().__init__(f"Lot {lot_code} is flagged as not usable")


# =============================================================================
# Not Found Errors
# =============================================================================


class NotFoundError(ServiceError):
    """Base for missing entities."""

    pass


class BatchNotFound(NotFoundError):
    """Raised when a production batch cannot be found."""

    def __init__(self, batch_id):
        self.batch_id = batch_id
        super().__init__(f"Production batch {batch_id} not found")


class LotNotFound(NotFoundError):
    """Raised when a lot cannot be found."""

    def __init__(self, lot_id):
        self.lot_id = lot_id
        super().__init__(f"Lot {lot_id} not found")


class ConsumptionNotFound(NotFoundError):
    """Raised when a consumption record cannot be found."""

    def __init__(self, consumption_id: int):
        self.consumption_id = consumption_id
        super().__init__(f"Consumption record {consumption_id} not found")


class AlreadyReleased(ConsumptionNotFound):
    """Raised when releasing a consumption record that was already released."""

    def __init__(self, consumption_id: int):
        super().__init__(consumption_id)
        self.args = (f"Consumption record {consumption_id} was already released",)


class OutputNotFound(NotFoundError):
    """Raised when a batch output cannot be found."""

    def __init__(self, output_id: int):
        self.output_id = output_id
        super().__init__(f"Batch output {output_id} not found")


class OperatorNotFound(NotFoundError):
    """Raised when an operator does not exist or is inactive."""

    def __init__(self, operator_id):
        self.operator_id = operator_id
        super().__init__(f"Operator {operator_id} not found or inactive")


# =============================================================================
# Infrastructure Errors
# =============================================================================


class IntegrityViolation(ServiceError):
    """Raised when the store rejects a write on a constraint.

    Correct service logic never triggers this; it signals a bug and is logged
    at CRITICAL rather than shown to users as a validation message.
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        self.original_error = original_error
        super().__init__(f"Integrity violation: {message}")


class TransientStoreError(ServiceError):
    """Raised for connection failures, lock timeouts and concurrent-write conflicts.

    The transaction was rolled back, so the operation can be retried as-is.
    """

    retryable = True

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        self.original_error = original_error
        super().__init__(f"Transient database error: {message}")
