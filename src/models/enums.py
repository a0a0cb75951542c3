"""
Enumerations for production batch tracking.

This module contains enums used across batch-related models:
- QaStatus: Quality-assurance decision for a production batch
- LotType: Kind of inventory a lot holds
- MovementType: Kind of change recorded in the lot movement log
"""

from enum import Enum


class QaStatus(str, Enum):
    """
    Quality-assurance decision for a production batch.

    Values:
        PENDING: No decision yet (initial state)
        APPROVED: Outputs may become sellable inventory
        REJECTED: Batch may be locked, outputs are never materialized
        HOLD: Decision deferred; the batch cannot be locked
    """

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    HOLD = "hold"

    @property
    def requires_reason(self) -> bool:
        """Hold and rejected decisions carry a reason."""
        return self in (QaStatus.HOLD, QaStatus.REJECTED)

    @property
    def is_lockable(self) -> bool:
        """Only resolved decisions may be locked."""
        return self in (QaStatus.APPROVED, QaStatus.REJECTED)


class LotType(str, Enum):
    """Kind of inventory a lot holds."""

    RAW_MATERIAL = "raw_material"
    PACKAGING = "packaging"


class MovementType(str, Enum):
    """
    Lot movement classification.

    Values:
        INTAKE: Initial receipt of the lot
        CONSUMPTION: Quantity reserved into a batch consumption record
        RELEASE: Quantity returned when a consumption record is removed
    """

    INTAKE = "intake"
    CONSUMPTION = "consumption"
    RELEASE = "release"
