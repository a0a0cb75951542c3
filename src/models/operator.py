"""
Operator model - the people who can be made responsible for a batch.

The identity provider owns user accounts; this table mirrors the read-only
subset the batch workflow needs (identifier and display name).
"""

from sqlalchemy import Boolean, Column, String

from .base import BaseModel


class Operator(BaseModel):
    """
    Operator directory entry.

    Attributes:
        external_id: Identifier in the identity provider (unique, optional)
        full_name: Display name
        email: Optional contact email
        is_active: Inactive operators cannot be assigned to new batches
    """

    __tablename__ = "operators"

    external_id = Column(String(100), nullable=True, unique=True)
    full_name = Column(String(200), nullable=False)
    email = Column(String(200), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        """String representation of operator."""
        return f"Operator(id={self.id}, full_name='{self.full_name}')"
