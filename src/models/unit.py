"""
Unit directory model.

Units are admin-controlled reference data, grouped by the kind of inventory
they measure. Each unit says whether fractional quantities are allowed.
Inactive units remain for historical records but cannot be selected for new
entries.
"""

from sqlalchemy import Boolean, CheckConstraint, Column, Integer, String, UniqueConstraint

from .base import BaseModel


class Unit(BaseModel):
    """
    Reference table for measurement units.

    Attributes:
        unit_type: "raw_material", "packaging" or "produced_goods"
        code: Unit code stored on other records (e.g., "Kg.", "bottles")
        display_name: Human-readable name
        allows_decimal: False means quantities in this unit must be whole numbers
        status: "active" or "inactive"
        sort_order: Display order within a unit type
    """

    __tablename__ = "units"

    unit_type = Column(String(20), nullable=False, index=True)
    code = Column(String(50), nullable=False, index=True)
    display_name = Column(String(100), nullable=False)
    allows_decimal = Column(Boolean, nullable=False, default=False)
    status = Column(String(20), nullable=False, default="active")
    sort_order = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("unit_type", "code", name="uq_unit_type_code"),
        CheckConstraint("status IN ('active', 'inactive')", name="ck_unit_status_valid"),
    )

    @property
    def is_active(self) -> bool:
        """True when the unit can be selected for new entries."""
        return self.status == "active"

    def __repr__(self) -> str:
        """Return string representation of Unit."""
        return f"Unit(code='{self.code}', unit_type='{self.unit_type}')"
