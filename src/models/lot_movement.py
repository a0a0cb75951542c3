"""
LotMovement model - append-only log of lot quantity changes.

Every intake, consumption and release writes one row in the same transaction
as the quantity change, so the log replays to the lot's current
quantity_available.
"""

from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from .base import BaseModel


class LotMovement(BaseModel):
    """
    One quantity change on a lot.

    Note: batch_id is nullable and SET NULL on delete so the audit trail
    survives deletion of a draft batch; batch_code keeps the readable reference.

    Attributes:
        lot_id: Lot the quantity moved on
        movement_type: "intake", "consumption" or "release"
        quantity: Amount moved (always positive; direction comes from type)
        unit: Unit at time of movement
        batch_id: Related batch, if any
        batch_code: Snapshot of the related batch code
        consumption_id: Consumption record that caused the movement, if any
        notes: Free text
    """

    __tablename__ = "lot_movements"

    lot_id = Column(Integer, ForeignKey("lots.id", ondelete="CASCADE"), nullable=False)
    movement_type = Column(String(20), nullable=False)
    quantity = Column(Numeric(14, 3), nullable=False)
    unit = Column(String(50), nullable=False)

    batch_id = Column(
        Integer, ForeignKey("production_batches.id", ondelete="SET NULL"), nullable=True
    )
    batch_code = Column(String(50), nullable=True)
    consumption_id = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)

    lot = relationship("Lot", back_populates="movements")

    __table_args__ = (
        Index("idx_lot_movement_lot", "lot_id"),
        Index("idx_lot_movement_batch", "batch_id"),
        CheckConstraint("quantity > 0", name="ck_lot_movement_quantity_positive"),
        CheckConstraint(
            "movement_type IN ('intake', 'consumption', 'release')",
            name="ck_lot_movement_type_valid",
        ),
    )

    @property
    def signed_quantity(self):
        """Quantity with the sign of its effect on quantity_available."""
        if self.movement_type == "consumption":
            return -self.quantity
        return self.quantity
