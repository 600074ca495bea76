"""
Base model classes and mixins.

- UUIDMixin: random UUID primary key (ids are not enumerable)
- TimestampMixin: created_at, updated_at
"""

from datetime import datetime
from uuid import UUID as PyUUID, uuid4
from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from gatehouse.utils.timezone import utc_now


class Base(DeclarativeBase):
    """Base class for all models."""

    # All datetimes are timezone-aware
    type_annotation_map = {
        datetime: DateTime(timezone=True),
    }


class UUIDMixin:
    """
    Mixin for UUID primary key.

    Uses UUID v4 (random) so identifiers cannot be guessed by
    counting up from a known one.
    """

    id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )


class TimestampMixin:
    """
    Mixin for created_at and updated_at timestamps.

    Values are set client-side so they are available on the instance
    right after flush without another round trip.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        server_default=func.now(),
        nullable=False,
    )
