"""
SQLAlchemy declarative base and base model.
"""
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class TimestampMixin:
    """Mixin to add created_at and updated_at timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


def generate_uuid() -> str:
    """Generate a UUID string."""
    return str(uuid.uuid4())


class UUIDMixin:
    """Mixin to add UUID primary key as String(36)."""

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=generate_uuid,
    )


class PositionMixin:
    """
    Mixin for rows evaluated in a stable, explicit order.

    position is assigned once at creation (max + 1 within the owning
    survey), so evaluation order never depends on storage iteration order.
    """

    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
