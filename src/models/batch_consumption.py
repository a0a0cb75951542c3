"""
BatchConsumption model - lot quantity consumed by a production batch.

Each row is one reservation of one lot into one batch. Rows are only created
and deleted by the lot pool ledger (reserve/release), which keeps the lot's
quantity_available in step within the same transaction.
"""

from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import relationship

from .base import BaseModel


class BatchConsumption(BaseModel):
    """
    Consumption record for the batch/lot pair.

    Note: lot_code, item_name, lot_type and unit are snapshots taken when the
    quantity was reserved, so the record reads the same even if the lot is
    later renamed.

    Attributes:
        batch_id: Foreign key to the consuming ProductionBatch
        lot_id: Foreign key to the Lot drawn from (RESTRICT: a referenced lot
            cannot be deleted)
        lot_code: Snapshot of the lot code
        item_name: Snapshot of the lot's item name
        lot_type: Snapshot of the lot type
        quantity_consumed: Amount reserved (> 0)
        unit: Unit of measure at time of consumption
    """

    __tablename__ = "batch_consumptions"

    batch_id = Column(
        Integer,
        ForeignKey("production_batches.id", ondelete="CASCADE"),
        nullable=False,
    )
    lot_id = Column(
        Integer,
        ForeignKey("lots.id", ondelete="RESTRICT"),
        nullable=False,
    )

    lot_code = Column(String(50), nullable=False)
    item_name = Column(String(200), nullable=False)
    lot_type = Column(String(20), nullable=False)
    quantity_consumed = Column(Numeric(14, 3), nullable=False)
    unit = Column(String(50), nullable=False)

    batch = relationship("ProductionBatch", back_populates="consumptions")
    lot = relationship("Lot", back_populates="consumptions")

    __table_args__ = (
        Index("idx_batch_consumption_batch", "batch_id"),
        Index("idx_batch_consumption_lot", "lot_id"),
        CheckConstraint(
            "quantity_consumed > 0", name="ck_batch_consumption_quantity_positive"
        ),
        # Released ids are never reused
        {"sqlite_autoincrement": True},
    )

    def __repr__(self) -> str:
        """String representation of batch consumption."""
        return (
            f"BatchConsumption(id={self.id}, batch_id={self.batch_id}, "
            f"lot_code='{self.lot_code}', quantity={self.quantity_consumed} {self.unit})"
        )
