"""
Finished-goods inventory created from approved batch outputs.

This module contains:
- MaterializedGood: one downstream inventory record per batch output
- BatchMaterialization: the per-batch claim row; its unique batch_id is what
  makes materialization happen at most once per batch
"""

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .base import BaseModel


class BatchMaterialization(BaseModel):
    """
    Record that a batch's outputs have been materialized.

    Attributes:
        batch_id: The materialized batch (unique)
        batch_code: Snapshot of the batch code
        goods_created: Number of MaterializedGood rows created in the pass
    """

    __tablename__ = "batch_materializations"

    batch_id = Column(
        Integer,
        ForeignKey("production_batches.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )
    batch_code = Column(String(50), nullable=False)
    goods_created = Column(Integer, nullable=False, default=0)

    goods = relationship("MaterializedGood", back_populates="materialization")


class MaterializedGood(BaseModel):
    """
    Finished-goods inventory record created from one BatchOutput.

    quantity_created is the immutable produced quantity; quantity_available is
    owned by the downstream inventory module (deliveries decrement it).

    Attributes:
        materialization_id: Owning BatchMaterialization
        batch_id: Source batch
        batch_output_id: Source output (unique together with batch_id)
        batch_reference: Snapshot of the batch code
        product_name: Output name
        quantity_created / quantity_available: Produced quantity
        unit: Produced unit
        output_size / output_size_unit: Optional physical size
        produced_goods_tag_id: Classification tag
        production_date: Production end date (or materialization date)
        qa_status: QA decision at lock time
        custom_fields / additional_information: Copied from the batch
    """

    __tablename__ = "materialized_goods"

    materialization_id = Column(
        Integer,
        ForeignKey("batch_materializations.id", ondelete="RESTRICT"),
        nullable=False,
    )
    batch_id = Column(
        Integer,
        ForeignKey("production_batches.id", ondelete="RESTRICT"),
        nullable=False,
    )
    batch_output_id = Column(
        Integer,
        ForeignKey("batch_outputs.id", ondelete="RESTRICT"),
        nullable=False,
    )
    batch_reference = Column(String(50), nullable=False)
    product_name = Column(String(200), nullable=False)
    quantity_created = Column(Numeric(14, 3), nullable=False)
    quantity_available = Column(Numeric(14, 3), nullable=False)
    unit = Column(String(50), nullable=False)
    output_size = Column(Numeric(14, 3), nullable=True)
    output_size_unit = Column(String(50), nullable=True)
    produced_goods_tag_id = Column(
        Integer,
        ForeignKey("produced_goods_tags.id", ondelete="RESTRICT"),
        nullable=False,
    )
    production_date = Column(Date, nullable=False)
    qa_status = Column(String(20), nullable=False)
    custom_fields = Column(JSON, nullable=True)
    additional_information = Column(Text, nullable=True)

    materialization = relationship("BatchMaterialization", back_populates="goods")

    __table_args__ = (
        UniqueConstraint("batch_id", "batch_output_id", name="uq_materialized_good_output"),
        Index("idx_materialized_good_batch", "batch_id"),
        Index("idx_materialized_good_tag", "produced_goods_tag_id"),
        CheckConstraint(
            "quantity_created > 0", name="ck_materialized_good_created_positive"
        ),
        CheckConstraint(
            "quantity_available >= 0 AND quantity_available <= quantity_created",
            name="ck_materialized_good_available_range",
        ),
    )
