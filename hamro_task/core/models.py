"""
Base database models with common fields and utilities.

This module provides:
- BaseModel with common fields (id, created_at, updated_at)
- Mixins for common functionality
- Utility functions for model operations
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import JSON, DateTime, String, Uuid, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a stored timestamp to an aware UTC datetime.

    SQLite hands back naive values for ``DateTime(timezone=True)`` columns;
    everything is written in UTC so a naive value is read as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all database models."""

    type_annotation_map = {
        str: String(255),
        uuid.UUID: Uuid(as_uuid=True),
        dict: JSON,
    }


class TimestampMixin:
    """Mixin for adding timestamp fields to models."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        doc="Timestamp when the record was created",
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
        doc="Timestamp when the record was last updated",
    )


class UUIDMixin:
    """Mixin for adding UUID primary key to models."""

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
        doc="Unique identifier for the record",
    )


class BaseModel(Base, UUIDMixin, TimestampMixin):
    """
    Base model class with common fields.

    All application models should inherit from this class to get:
    - UUID primary key (id)
    - Created timestamp (created_at)
    - Updated timestamp (updated_at)
    """

    __abstract__ = True

    def to_dict(self, exclude: Optional[set] = None) -> Dict[str, Any]:
        """
        Convert model instance to a JSON-friendly dictionary.

        Args:
            exclude: Set of field names to exclude from the dictionary

        Returns:
            Dictionary representation of the model
        """
        exclude = exclude or set()
        result = {}
        for attr in self.__mapper__.column_attrs:
            column = attr.columns[0]
            if column.name in exclude:
                continue
            value = getattr(self, attr.key)
            if isinstance(value, datetime):
                value = as_utc(value).isoformat()
            elif isinstance(value, uuid.UUID):
                value = str(value)
            elif hasattr(value, "isoformat"):
                value = value.isoformat()
            result[column.name] = value
        return result

    def update_from_dict(self, data: Dict[str, Any], exclude: Optional[set] = None) -> None:
        """
        Update model instance from dictionary.

        Args:
            data: Dictionary with field names and values
            exclude: Set of field names to exclude from update
        """
        exclude = exclude or {"id", "created_at"}

        for key, value in data.items():
            if key not in exclude and hasattr(self, key):
                setattr(self, key, value)

    def __repr__(self) -> str:
        class_name = self.__class__.__name__
        return f"<{class_name}(id={self.id})>"


def enum_value(value: Any) -> Any:
    """Plain value of an Enum member; anything else is returned unchanged."""
    return value.value if isinstance(value, Enum) else value
