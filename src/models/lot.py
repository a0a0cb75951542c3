"""
Lot model for lot-tracked raw material and packaging inventory.

A lot is a finite, traceable quantity of one raw material or packaging item.
``quantity_received`` is the immutable intake snapshot; ``quantity_available``
is the mutable pool that batch consumption draws from.
"""

from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from .base import BaseModel


class Lot(BaseModel):
    """
    Lot model for the lot pool ledger.

    Closed-ledger identity: quantity_available plus the quantity of every live
    consumption record referencing the lot equals quantity_received.

    Concurrent writers are detected through ``version`` (optimistic
    versioning); a stale write raises and the transaction is retried.

    Attributes:
        lot_type: "raw_material" or "packaging"
        name: Item name (e.g., "Banana Extract")
        lot_code: Unique, human-readable lot identifier
        unit: Unit of measure for all quantities of this lot
        quantity_received: Original intake quantity (IMMUTABLE)
        quantity_available: Quantity not yet consumed (MUTABLE, never negative)
        usable: Optional usability flag; only False blocks consumption
        received_date: Date of intake
        supplier_name: Optional supplier reference
        notes: Optional storage notes
    """

    __tablename__ = "lots"

    lot_type = Column(String(20), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    lot_code = Column(String(50), nullable=False, unique=True, index=True)
    unit = Column(String(50), nullable=False)

    quantity_received = Column(Numeric(14, 3), nullable=False)
    quantity_available = Column(Numeric(14, 3), nullable=False)

    usable = Column(Boolean, nullable=True)
    received_date = Column(Date, nullable=True)
    supplier_name = Column(String(200), nullable=True)
    notes = Column(Text, nullable=True)

    version = Column(Integer, nullable=False, default=1)

    consumptions = relationship("BatchConsumption", back_populates="lot")
    movements = relationship(
        "LotMovement",
        back_populates="lot",
        order_by="LotMovement.id",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("quantity_received > 0", name="ck_lot_quantity_received_positive"),
        CheckConstraint("quantity_available >= 0", name="ck_lot_quantity_available_non_negative"),
        CheckConstraint(
            "quantity_available <= quantity_received",
            name="ck_lot_quantity_available_le_received",
        ),
        CheckConstraint(
            "lot_type IN ('raw_material', 'packaging')", name="ck_lot_type_valid"
        ),
        Index("idx_lot_type_name", "lot_type", "name"),
    )

    @property
    def is_usable(self) -> bool:
        """A lot is usable unless explicitly flagged otherwise."""
        return self.usable is not False

    @property
    def quantity_consumed(self) -> Decimal:
        """Quantity currently reserved by consumption records."""
        return Decimal(self.quantity_received) - Decimal(self.quantity_available)

    @property
    def is_depleted(self) -> bool:
        """True when nothing is left to consume."""
        return Decimal(self.quantity_available) <= 0

    def to_dict(self, include_relationships: bool = False) -> dict:
        """
        Convert lot to dictionary.

        Args:
            include_relationships: If True, include movement history

        Returns:
            Dictionary representation with calculated fields
        """
        result = super().to_dict(include_relationships=False)
        result["is_usable"] = self.is_usable
        result["is_depleted"] = self.is_depleted
        result["quantity_consumed"] = str(self.quantity_consumed)

        if include_relationships:
            result["movements"] = [movement.to_dict() for movement in self.movements]

        return result
