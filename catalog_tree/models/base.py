"""
Base model class for all database models.

Provides common functionality and fields for all models:
- Integer primary key plus a UUID for external references
- Timestamp fields (created_at, updated_at)
- to_dict() serialization
- SQLAlchemy declarative base
"""

import uuid as uuid_lib
from datetime import datetime
from typing import Any, Dict

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.orm import declarative_base, validates

from catalog_tree.utils.datetime_utils import utc_now

Base = declarative_base()


class BaseModel(Base):
    """
    Abstract base model with common fields and methods.

    All models inherit from this class to get:
    - id: Primary key (Integer)
    - uuid: Stable external identifier
    - created_at / updated_at: Row timestamps
    - to_dict(): Convert model to dictionary
    """

    __abstract__ = True

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Stored as string for SQLite compatibility
    uuid = Column(
        String(36), unique=True, nullable=False, default=lambda: str(uuid_lib.uuid4()), index=True
    )

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert model instance to dictionary.

        Datetime values are rendered as ISO-8601 strings.

        Returns:
            Dictionary of column name to value
        """
        result = {}
        for column in self.__table__.columns:
            value = getattr(self, column.name)
            if isinstance(value, datetime):
                value = value.isoformat()
            result[column.name] = value
        return result

    @validates("uuid")
    def _validate_uuid(self, _key: str, value: Any) -> str:
        """Normalize UUID values to strings for SQLite compatibility."""
        if value is None:
            return value
        return str(value)

    def __repr__(self) -> str:
        class_name = self.__class__.__name__
        attrs = []
        if getattr(self, "id", None) is not None:
            attrs.append(f"id={self.id}")
        if getattr(self, "name", None) is not None:
            attrs.append(f"name='{self.name}'")
        return f"{class_name}({', '.join(attrs)})"
