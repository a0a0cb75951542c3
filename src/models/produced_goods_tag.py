"""
ProducedGoodsTag model - classification tags for batch outputs.
"""

from sqlalchemy import CheckConstraint, Column, String, Text

from .base import BaseModel


class ProducedGoodsTag(BaseModel):
    """
    Classification tag every batch output must carry.

    Attributes:
        tag_key: Stable unique key (e.g., "finished_liquid")
        display_name: Human-readable name
        description: Optional description
        status: "active" or "inactive"
    """

    __tablename__ = "produced_goods_tags"

    tag_key = Column(String(100), nullable=False, unique=True, index=True)
    display_name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="active")

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'inactive')", name="ck_produced_goods_tag_status_valid"
        ),
    )

    @property
    def is_active(self) -> bool:
        """True when the tag can be assigned to new outputs."""
        return self.status == "active"
