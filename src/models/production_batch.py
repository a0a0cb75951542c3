"""
ProductionBatch model - the aggregate root of the production workflow.

A batch starts as an editable draft with QA status "pending", accumulates
consumption records and outputs, and is finally locked. Locking is terminal:
a locked batch and all of its child records are immutable.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from .base import BaseModel
from src.utils.datetime_utils import today


class ProductionBatch(BaseModel):
    """
    ProductionBatch model.

    Attributes:
        batch_code: Sequential human-readable code (e.g., "BATCH-0007")
        batch_date: Business date of the batch
        responsible_operator_id: Operator responsible for the batch
        notes: Free-text notes
        is_locked: Write-once lock flag
        locked_at: When the lock was recorded
        qa_status: "pending", "approved", "rejected" or "hold"
        qa_reason: Reason for a hold or rejected decision
        production_start_date / production_end_date: Production window
        additional_information: Free text copied to materialized goods
        custom_fields: List of {"key", "value"} pairs (e.g., pH, temperature)
    """

    __tablename__ = "production_batches"

    batch_code = Column(String(50), nullable=False, unique=True, index=True)
    batch_date = Column(Date, nullable=False, default=today)
    responsible_operator_id = Column(
        Integer, ForeignKey("operators.id", ondelete="RESTRICT"), nullable=True
    )
    notes = Column(Text, nullable=True)

    is_locked = Column(Boolean, nullable=False, default=False)
    locked_at = Column(DateTime(timezone=True), nullable=True)

    qa_status = Column(String(20), nullable=False, default="pending")
    qa_reason = Column(Text, nullable=True)

    production_start_date = Column(Date, nullable=True)
    production_end_date = Column(Date, nullable=True)
    additional_information = Column(Text, nullable=True)
    custom_fields = Column(JSON, nullable=True)

    responsible_operator = relationship("Operator")
    consumptions = relationship(
        "BatchConsumption",
        back_populates="batch",
        cascade="all, delete-orphan",
        order_by="BatchConsumption.id",
    )
    outputs = relationship(
        "BatchOutput",
        back_populates="batch",
        cascade="all, delete-orphan",
        order_by="BatchOutput.id",
    )

    __table_args__ = (
        Index("idx_production_batch_date", "batch_date"),
        Index("idx_production_batch_qa_status", "qa_status"),
        Index("idx_production_batch_locked", "is_locked"),
        CheckConstraint(
            "qa_status IN ('pending', 'approved', 'rejected', 'hold')",
            name="ck_production_batch_qa_status_valid",
        ),
        # Locked + pending/hold is unrepresentable
        CheckConstraint(
            "NOT is_locked OR qa_status IN ('approved', 'rejected')",
            name="ck_production_batch_locked_qa_resolved",
        ),
    )

    def to_dict(self, include_relationships: bool = False) -> dict:
        """
        Convert batch to dictionary.

        Args:
            include_relationships: If True, include consumptions and outputs

        Returns:
            Dictionary representation; includes the responsible operator's name
            when the relationship is loaded.
        """
        result = super().to_dict(include_relationships)
        result["custom_fields"] = list(self.custom_fields or [])
        operator = self.__dict__.get("responsible_operator")
        result["responsible_operator_name"] = operator.full_name if operator else None
        return result
