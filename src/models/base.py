"""
Base model class for all database models.

Provides common functionality and fields for all models:
- Integer primary key plus a stable UUID for external references
- Timestamp fields (created_at, updated_at)
- to_dict() read projections with JSON-friendly values
- SQLAlchemy declarative base
"""

import uuid as uuid_lib
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.orm import declarative_base, validates

from src.utils.datetime_utils import utc_now

# Create the declarative base for all models
Base = declarative_base()


def _json_value(value: Any) -> Any:
    """Convert a column value to a JSON-compatible representation."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        # Strings preserve precision
        return str(value)
    return value


class BaseModel(Base):
    """
    Abstract base model with common fields and methods.

    All models inherit from this class to get:
    - id: Primary key
    - uuid: UUID identifier, stored as string for SQLite compatibility
    - created_at / updated_at timestamps
    - to_dict(): read projection consumed by the presentation and reporting layers
    """

    __abstract__ = True

    id = Column(Integer, primary_key=True, autoincrement=True)

    uuid = Column(
        String(36), unique=True, nullable=False, default=lambda: str(uuid_lib.uuid4()), index=True
    )

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    def to_dict(self, include_relationships: bool = False) -> Dict[str, Any]:
        """
        Convert model instance to dictionary.

        Args:
            include_relationships: If True, include loaded one-to-many relationships

        Returns:
            Dictionary representation of the model
        """
        result = {column.name: _json_value(getattr(self, column.name)) for column in self.__table__.columns}

        if include_relationships:
            for relationship in self.__mapper__.relationships:
                if not relationship.uselist:
                    continue
                rel_value = getattr(self, relationship.key)
                result[relationship.key] = [item.to_dict() for item in rel_value or []]

        return result

    @validates("uuid")
    def _validate_uuid(self, _key: str, value: Any) -> str:
        """Normalize UUID values to strings for SQLite compatibility."""
        if value is None:
            return value
        return str(value)

    def __repr__(self) -> str:
        """
        String representation of model instance.

        Returns:
            String like "ClassName(id=1, ...)"
        """
        class_name = self.__class__.__name__
        attrs = []

        if getattr(self, "id", None) is not None:
            attrs.append(f"id={self.id}")

        for label in ("batch_code", "lot_code", "code", "name"):
            value = getattr(self, label, None)
            if isinstance(value, str):
                attrs.append(f"{label}='{value}'")
                break

        return f"{class_name}({', '.join(attrs)})"
