"""
BatchOutput model - a named finished product defined on a production batch.

Outputs are definitions only; they become inventory (MaterializedGood) when
the batch is locked with an approved QA decision.
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


class BatchOutput(BaseModel):
    """
    BatchOutput model.

    Attributes:
        batch_id: Foreign key to the owning ProductionBatch
        output_name: Product name (e.g., "Banana Alkyl Liquid")
        output_size: Optional physical size (e.g., 250)
        output_size_unit: Unit for output_size (e.g., "ml")
        produced_quantity: Quantity produced (> 0)
        produced_unit: Unit of produced_quantity (e.g., "bottles")
        produced_goods_tag_id: Mandatory classification tag
    """

    __tablename__ = "batch_outputs"

    batch_id = Column(
        Integer,
        ForeignKey("production_batches.id", ondelete="CASCADE"),
        nullable=False,
    )
    output_name = Column(String(200), nullable=False)
    output_size = Column(Numeric(14, 3), nullable=True)
    output_size_unit = Column(String(50), nullable=True)
    produced_quantity = Column(Numeric(14, 3), nullable=False)
    produced_unit = Column(String(50), nullable=False)
    produced_goods_tag_id = Column(
        Integer,
        ForeignKey("produced_goods_tags.id", ondelete="RESTRICT"),
        nullable=False,
    )

    batch = relationship("ProductionBatch", back_populates="outputs")
    tag = relationship("ProducedGoodsTag")

    __table_args__ = (
        Index("idx_batch_output_batch", "batch_id"),
        Index("idx_batch_output_tag", "produced_goods_tag_id"),
        CheckConstraint("produced_quantity > 0", name="ck_batch_output_quantity_positive"),
        CheckConstraint(
            "output_size IS NULL OR output_size > 0", name="ck_batch_output_size_positive"
        ),
    )

    def to_dict(self, include_relationships: bool = False) -> dict:
        """Convert output to dictionary, adding the tag display name when loaded."""
        result = super().to_dict(include_relationships)
        tag = self.__dict__.get("tag")
        result["produced_goods_tag_name"] = tag.display_name if tag else None
        return result
