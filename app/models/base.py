"""
Base model classes and mixins for SQLAlchemy ORM.
Provides common functionality for all database models.
"""
import os
import threading
import time
from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from app.utils.datetime_utils import utc_now


class Base(AsyncAttrs, DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    Includes AsyncAttrs mixin for async relationship access.
    All models should inherit from this class.
    """
    pass


_id_lock = threading.Lock()
_last_id_parts = [0, 0]  # [millis, sequence]


def generate_id() -> str:
    """
    Generate an opaque, globally unique, creation-ordered ID.

    Layout (26 lowercase hex chars): 12 chars of millisecond clock, 4 chars of
    per-millisecond sequence, 10 chars of randomness. IDs issued by one process
    sort strictly in creation order, which lets them double as pagination
    cursors and tie-breakers.

    The sequence is per process. With several workers, IDs minted in the same
    millisecond by different workers order randomly among themselves, so a
    cursor page may interleave messages sent within that millisecond. Across
    milliseconds the order holds as long as worker clocks agree.
    """
    with _id_lock:
        millis = int(time.time() * 1000)
        last_millis, sequence = _last_id_parts
        if millis <= last_millis:
            millis = last_millis
            sequence += 1
            if sequence > 0xFFFF:
                millis += 1
                sequence = 0
        else:
            sequence = 0
        _last_id_parts[0], _last_id_parts[1] = millis, sequence

    return f"{millis:012x}{sequence:04x}{os.urandom(5).hex()}"


class IDMixin:
    """Mixin for the string ID primary key."""

    id: Mapped[str] = mapped_column(
        String(32),
        primary_key=True,
        default=generate_id,
        doc="Creation-ordered string ID"
    )


class TimestampMixin:
    """Mixin for created_at timestamp, set in Python for sub-second precision."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
        doc="Timestamp when the record was created"
    )
